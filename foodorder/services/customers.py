import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from foodorder.db import run_with_retries
from foodorder.errors import InvalidInput
from foodorder.models.core import Customer, ResourceKind
from foodorder.services import resources

logger = logging.getLogger(__name__)


def find_or_create(db: Session, name: str, phone: str, email: str | None = None) -> Customer:
    """Look the customer up by phone, refreshing name/email; flushes but does not commit."""
    name, phone = (name or "").strip(), (phone or "").strip()
    if not name or not phone:
        raise InvalidInput("customer name and phone are required")

    c = db.scalars(select(Customer).where(Customer.phone == phone)).first()
    if c is None:
        c = Customer(name=name, phone=phone, email=email or None)
        db.add(c)
        db.flush()
        logger.info("customer %s created for phone %s", c.id, phone)
        return c
    if c.name != name:
        c.name = name
    if email and c.email != email:
        c.email = email
    return c


def upsert(db: Session, name: str, phone: str, email: str | None = None,
           table_number=None, room_number=None) -> Customer:
    """
    Login / QR-scan entry point. A table or room number seats the customer
    there when such a resource exists and is ignored otherwise.
    """
    def _apply() -> Customer:
        c = find_or_create(db, name, phone, email)
        if table_number not in (None, ""):
            resources.assign(db, ResourceKind.TABLE, table_number, c.id, commit=False)
        if room_number not in (None, ""):
            resources.assign(db, ResourceKind.ROOM, room_number, c.id, commit=False)
        db.commit()
        return c

    return run_with_retries(db, _apply, what=f"upsert customer {phone}")
