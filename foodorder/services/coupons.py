"""
Coupon ledger.

The ledger is the only writer of `Coupon.used_count` and the redemption
history. Redemption is a single conditional UPDATE (compare-and-increment):
the usage-limit check and the increment happen in one statement, so two
checkouts racing for the last use cannot both succeed no matter how they
interleave their reads.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.orm import Session

from foodorder.db import run_with_retries
from foodorder.errors import CouponExhausted, CouponInvalid, InvalidInput, NotFound
from foodorder.models.common import as_utc, utcnow
from foodorder.models.core import Coupon, CouponRedemption, DiscountType
from foodorder.util.audit import audit

logger = logging.getLogger(__name__)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def is_exhausted(c: Coupon) -> bool:
    return c.usage_limit is not None and c.used_count >= c.usage_limit


def find_by_code(db: Session, code: str) -> Coupon | None:
    return db.scalars(select(Coupon).where(Coupon.code == normalize_code(code))).first()


def get_coupon(db: Session, coupon_id: str) -> Coupon:
    c = db.get(Coupon, coupon_id)
    if not c:
        raise NotFound("coupon not found")
    return c


def list_coupons(db: Session, code: str | None = None, active_only: bool = False,
                 now: datetime | None = None) -> list[Coupon]:
    q = select(Coupon).order_by(Coupon.created_at.desc())
    if code:
        q = q.where(Coupon.code == normalize_code(code))
    if active_only:
        q = q.where(Coupon.is_active.is_(True))
    rows = list(db.scalars(q).all())
    if not active_only:
        return rows
    now = now or utcnow()
    return [c for c in rows if as_utc(c.expiry_date) > now and not is_exhausted(c)]


# ── validation ──────────────────────────────────────────────────────────────

def validate(db: Session, code: str, amount, now: datetime | None = None) -> Coupon:
    """
    Return the coupon if it can be applied to an order worth `amount`
    (subtotal + gst), else raise CouponInvalid with the reason.

    Exhaustion is reported before `inactive` because redeeming the last use
    also switches the coupon off.
    """
    amount = _parse_amount("amount", amount, positive=False)
    now = now or utcnow()
    c = find_by_code(db, code)
    if c is None:
        raise CouponInvalid("Invalid coupon. Please try another code.", CouponInvalid.NOT_FOUND)
    if is_exhausted(c):
        raise CouponInvalid("Coupon usage limit has been reached.", CouponInvalid.EXHAUSTED)
    if not c.is_active:
        raise CouponInvalid("This coupon is no longer active.", CouponInvalid.INACTIVE)
    if as_utc(c.expiry_date) <= now:
        raise CouponInvalid("This coupon has expired.", CouponInvalid.EXPIRED)
    if c.minimum_order_amount is not None and amount < c.minimum_order_amount:
        raise CouponInvalid(
            f"Minimum order amount for this coupon is {c.minimum_order_amount}.",
            CouponInvalid.BELOW_MINIMUM,
        )
    return c


# ── redemption ──────────────────────────────────────────────────────────────

def redeem(db: Session, code: str, user_id: str, order_id: str | None = None,
           *, commit: bool = True) -> CouponRedemption:
    """
    Consume one use of `code` for `user_id`.

    With commit=False the increment and the history row are left in the
    caller's transaction so they land together with the order they pay for.
    Raises CouponExhausted when another redemption took the last use first.
    """
    c = find_by_code(db, code)
    if c is None:
        raise CouponInvalid("Invalid coupon. Please try another code.", CouponInvalid.NOT_FOUND)

    reaches_limit = and_(Coupon.usage_limit.is_not(None), Coupon.used_count + 1 >= Coupon.usage_limit)
    stmt = (
        update(Coupon)
        .where(
            Coupon.id == c.id,
            Coupon.is_active.is_(True),
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
        )
        .values(
            used_count=Coupon.used_count + 1,
            is_active=case((reaches_limit, False), else_=Coupon.is_active),
            version=Coupon.version + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        db.expire(c)
        if is_exhausted(c):
            logger.warning("coupon %s: redemption lost the race for the last use (user=%s)", c.code, user_id)
            raise CouponExhausted(c.code)
        raise CouponInvalid("This coupon is no longer active.", CouponInvalid.INACTIVE)

    entry = CouponRedemption(coupon_id=c.id, user_id=user_id, order_id=order_id, redeemed_at=utcnow())
    db.add(entry)
    audit(db, user_id, "Coupon", c.id, "REDEEM", after={"order_id": order_id})
    db.expire(c)
    if commit:
        db.commit()
    logger.info("coupon %s redeemed by user=%s order=%s", c.code, user_id, order_id)
    return entry


# ── administration ──────────────────────────────────────────────────────────

def _parse_amount(name: str, raw, *, positive: bool) -> Decimal:
    if isinstance(raw, bool):
        raise InvalidInput(f"{name} must be a number")
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInput(f"{name} must be a number")
    if not value.is_finite():
        raise InvalidInput(f"{name} must be a number")
    if positive and value <= 0:
        raise InvalidInput(f"{name} must be greater than 0")
    if value < 0:
        raise InvalidInput(f"{name} must be a non-negative number")
    return value


def _parse_limit(raw) -> int | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise InvalidInput("usage_limit must be a positive integer")
    try:
        limit = int(str(raw).strip())
    except ValueError:
        raise InvalidInput("usage_limit must be a positive integer")
    if limit <= 0:
        raise InvalidInput("usage_limit must be a positive integer")
    return limit


def _parse_expiry(raw, now: datetime) -> datetime:
    if isinstance(raw, datetime):
        expiry = raw
    else:
        s = str(raw or "").strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            expiry = datetime.fromisoformat(s)
        except ValueError:
            raise InvalidInput("expiry_date must be a valid ISO-8601 datetime")
    expiry = as_utc(expiry)
    if expiry <= now:
        raise InvalidInput("Expiry date must be a valid future date")
    return expiry


def _clean_terms(db: Session, data: dict, now: datetime, exclude_id: str | None = None) -> dict:
    """Parse and range-check every field before anything is written."""
    code = normalize_code(data.get("code"))
    if not code:
        raise InvalidInput("code is required")

    raw_type = str(data.get("discount_type") or "").strip().lower()
    try:
        discount_type = DiscountType(raw_type)
    except ValueError:
        raise InvalidInput("discount_type must be 'percentage' or 'fixed'")

    value = _parse_amount("value", data.get("value"), positive=True)
    if discount_type == DiscountType.PERCENTAGE and value > 100:
        raise InvalidInput("Percentage discount must be between 0 and 100")

    minimum = data.get("minimum_order_amount")
    minimum = None if minimum in (None, "") else _parse_amount("minimum_order_amount", minimum, positive=False)

    dup = select(Coupon.id).where(func.upper(Coupon.code) == code)
    if exclude_id:
        dup = dup.where(Coupon.id != exclude_id)
    if db.scalars(dup).first():
        raise InvalidInput("Coupon code already exists")

    return {
        "code": code,
        "discount_type": discount_type,
        "value": value,
        "description": (data.get("description") or None),
        "expiry_date": _parse_expiry(data.get("expiry_date"), now),
        "usage_limit": _parse_limit(data.get("usage_limit")),
        "minimum_order_amount": minimum,
    }


def create_coupon(db: Session, data: dict, actor: str | None = None, now: datetime | None = None) -> Coupon:
    terms = _clean_terms(db, data, now or utcnow())
    c = Coupon(**terms, is_active=bool(data.get("is_active", True)), used_count=0)
    db.add(c)
    db.flush()
    audit(db, actor, "Coupon", c.id, "CREATE", after={"code": c.code})
    db.commit()
    logger.info("coupon %s created (%s %s)", c.code, c.discount_type.value, c.value)
    return c


def update_coupon(db: Session, coupon_id: str, data: dict, actor: str | None = None,
                  now: datetime | None = None) -> Coupon:
    """Replace the coupon's terms. The usage counter and history are untouched."""
    now = now or utcnow()

    def _apply() -> Coupon:
        c = get_coupon(db, coupon_id)
        terms = _clean_terms(db, data, now, exclude_id=c.id)
        if terms["usage_limit"] is not None and terms["usage_limit"] < c.used_count:
            raise InvalidInput(f"usage_limit cannot be below the {c.used_count} uses already redeemed")
        for k, v in terms.items():
            setattr(c, k, v)
        if "is_active" in data:
            c.is_active = bool(data["is_active"])
        audit(db, actor, "Coupon", c.id, "UPDATE", after={"code": c.code})
        db.commit()
        return c

    c = run_with_retries(db, _apply, what=f"update coupon {coupon_id}")
    logger.info("coupon %s updated", c.code)
    return c


def deactivate_coupon(db: Session, coupon_id: str, actor: str | None = None) -> Coupon:
    """Coupons referenced by past orders are never deleted, only switched off."""
    def _apply() -> Coupon:
        c = get_coupon(db, coupon_id)
        c.is_active = False
        audit(db, actor, "Coupon", c.id, "DEACTIVATE")
        db.commit()
        return c

    c = run_with_retries(db, _apply, what=f"deactivate coupon {coupon_id}")
    logger.info("coupon %s deactivated", c.code)
    return c
