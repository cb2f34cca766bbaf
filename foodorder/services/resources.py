"""
Table and room registry.

A resource is occupied by assigning a customer to it and freed by `release`.
Customers cache the number of the table/room they were seated at; releasing
the resource clears that cache on every customer that still points at it.
The cache clean-up is a separate, best-effort step: the resource is freed
first so it can be reused even if the clean-up fails, and the failure is
reported as FanOutFailed so the caller can retry the release.
"""
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from foodorder.config import Settings
from foodorder.db import run_with_retries
from foodorder.errors import CodeGenerationFailed, Conflict, FanOutFailed, InvalidInput, NotFound
from foodorder.models.core import Customer, Order, Resource, ResourceKind, ResourceOrder, ResourceStatus
from foodorder.services.codegen import CodeGenerator, access_url, generate_bounded
from foodorder.util.audit import audit

logger = logging.getLogger(__name__)

CACHE_COLUMN = {
    ResourceKind.TABLE: Customer.table_number,
    ResourceKind.ROOM: Customer.room_number,
}


def parse_kind(value) -> ResourceKind:
    if isinstance(value, ResourceKind):
        return value
    try:
        return ResourceKind(str(value or "").strip().lower())
    except ValueError:
        raise InvalidInput("kind must be 'table' or 'room'")


def normalize_number(number) -> str:
    n = str(number if number is not None else "").strip()
    if not n:
        raise InvalidInput("number is required")
    return n


def get_resource(db: Session, resource_id: str) -> Resource:
    r = db.get(Resource, resource_id)
    if not r:
        raise NotFound("resource not found")
    return r


def find_resource(db: Session, kind, number) -> Resource | None:
    return db.scalars(
        select(Resource).where(Resource.kind == parse_kind(kind), Resource.number == str(number).strip())
    ).first()


def list_resources(db: Session, kind=None) -> list[Resource]:
    q = select(Resource)
    if kind:
        q = q.where(Resource.kind == parse_kind(kind))
    rows = list(db.scalars(q).all())
    # numeric tables sort 1, 2, 10 rather than 1, 10, 2
    return sorted(rows, key=lambda r: (r.kind.value, not r.number.isdigit(),
                                       int(r.number) if r.number.isdigit() else 0, r.number))


def create_resource(db: Session, kind, number, *, generator: CodeGenerator, settings: Settings,
                    actor: str | None = None) -> Resource:
    kind, number = parse_kind(kind), normalize_number(number)
    if find_resource(db, kind, number):
        raise Conflict(f"{kind.value} {number} already exists")
    # no transaction stays open across the generator call
    db.rollback()

    url = access_url(settings.PUBLIC_BASE_URL, kind.value, number)
    try:
        blob = generate_bounded(generator, url, settings.CODEGEN_TIMEOUT_SEC)
    except CodeGenerationFailed as exc:
        # not fatal here: the code can be regenerated later
        logger.warning("%s %s created without a code: %s", kind.value, number, exc.message)
        blob = ""

    r = Resource(kind=kind, number=number, access_url=url, code_blob=blob, status=ResourceStatus.AVAILABLE)
    db.add(r)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise Conflict(f"{kind.value} {number} already exists")
    audit(db, actor, "Resource", r.id, "CREATE", after={"kind": kind.value, "number": number})
    db.commit()
    logger.info("%s %s created", kind.value, number)
    return r


def assign(db: Session, kind, number, customer_id: str, *, commit: bool = True) -> Resource | None:
    """
    Seat `customer_id` at the table/room. A number that matches no resource
    is skipped silently (returns None) so a stale QR code never blocks
    ordering.
    """
    kind = parse_kind(kind)

    def _apply() -> Resource | None:
        r = find_resource(db, kind, number)
        if r is None:
            logger.info("assign skipped: no %s %s", kind.value, number)
            return None
        customer = db.get(Customer, customer_id)
        if customer is None:
            raise NotFound("customer not found")

        cache = CACHE_COLUMN[kind].key
        if r.assigned_user_id and r.assigned_user_id != customer_id:
            previous = db.get(Customer, r.assigned_user_id)
            if previous is not None and getattr(previous, cache) == r.number:
                setattr(previous, cache, None)

        r.status = ResourceStatus.OCCUPIED
        r.assigned_user_id = customer_id
        setattr(customer, cache, r.number)
        audit(db, customer_id, "Resource", r.id, "ASSIGN")
        if commit:
            db.commit()
        return r

    r = run_with_retries(db, _apply, what=f"assign {kind.value} {number}") if commit else _apply()
    if r is not None:
        logger.info("%s %s assigned to customer=%s", kind.value, r.number, customer_id)
    return r


def link_order(db: Session, kind, number, order: Order) -> Resource | None:
    """Point the resource at `order` inside the caller's transaction; missing resources are skipped."""
    r = find_resource(db, kind, number)
    if r is None:
        logger.info("order %s: no %s %s to link", order.id, parse_kind(kind).value, number)
        return None
    r.current_order_id = order.id
    r.status = ResourceStatus.OCCUPIED
    if order.user_id and not r.assigned_user_id:
        r.assigned_user_id = order.user_id
    r.order_history.append(ResourceOrder(order_id=order.id))
    return r


def _clear_customer_refs(db: Session, kind: ResourceKind, number: str) -> int:
    col = CACHE_COLUMN[kind]
    result = db.execute(
        update(Customer)
        .where(col == number)
        .values({col.key: None})
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


def release(db: Session, resource_id: str, actor: str | None = None) -> Resource:
    def _free() -> Resource:
        r = get_resource(db, resource_id)
        before = {"status": r.status.value, "assigned_user_id": r.assigned_user_id,
                  "current_order_id": r.current_order_id}
        r.status = ResourceStatus.AVAILABLE
        r.assigned_user_id = None
        r.current_order_id = None
        audit(db, actor, "Resource", r.id, "RELEASE", before=before)
        db.commit()
        return r

    r = run_with_retries(db, _free, what=f"release resource {resource_id}")
    logger.info("%s %s released", r.kind.value, r.number)

    try:
        cleared = _clear_customer_refs(db, r.kind, r.number)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("%s %s released but customer clean-up failed: %s", r.kind.value, r.number, exc)
        raise FanOutFailed(
            f"{r.kind.value} {r.number} is available but customer records still reference it",
            resource_id=r.id,
        ) from exc
    logger.info("%s %s: cleared %d customer reference(s)", r.kind.value, r.number, cleared)
    return r


def regenerate_code(db: Session, resource_id: str, *, generator: CodeGenerator, settings: Settings,
                    actor: str | None = None) -> Resource:
    """New URL and blob are written together or not at all."""
    r = get_resource(db, resource_id)
    kind, number = r.kind, r.number
    db.rollback()

    url = access_url(settings.PUBLIC_BASE_URL, kind.value, number)
    try:
        blob = generate_bounded(generator, url, settings.CODEGEN_TIMEOUT_SEC)
    except CodeGenerationFailed as exc:
        logger.error("%s %s: code regeneration failed: %s", kind.value, number, exc.message)
        raise

    def _apply() -> Resource:
        fresh = get_resource(db, resource_id)
        fresh.access_url = url
        fresh.code_blob = blob
        audit(db, actor, "Resource", fresh.id, "REGENERATE_CODE")
        db.commit()
        return fresh

    r = run_with_retries(db, _apply, what=f"regenerate code for {resource_id}")
    logger.info("%s %s: access code regenerated", r.kind.value, r.number)
    return r


def delete_resource(db: Session, resource_id: str, actor: str | None = None) -> str:
    """
    Remove a free table/room. Customers still caching its number are cleared
    in the same transaction; its order history rows are kept.
    """
    def _apply() -> tuple[ResourceKind, str, int]:
        r = get_resource(db, resource_id)
        if r.status == ResourceStatus.OCCUPIED or r.current_order_id:
            raise Conflict(f"{r.kind.value} {r.number} is in use; release it before deleting")
        kind, number = r.kind, r.number
        cleared = _clear_customer_refs(db, kind, number)
        audit(db, actor, "Resource", r.id, "DELETE", before={"kind": kind.value, "number": number})
        db.delete(r)
        db.commit()
        return kind, number, cleared

    kind, number, cleared = run_with_retries(db, _apply, what=f"delete resource {resource_id}")
    logger.info("%s %s deleted; cleared %d customer reference(s)", kind.value, number, cleared)
    return resource_id
