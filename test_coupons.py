# test_coupons.py
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from foodorder.errors import CouponExhausted, CouponInvalid, InvalidInput
from foodorder.models.core import Coupon, CouponRedemption
from foodorder.services import coupons


def test_validate_returns_coupon_for_any_casing(db, make_coupon):
    make_coupon("SAVE10")
    c = coupons.validate(db, "  save10 ", 100)
    assert c.code == "SAVE10"


def test_validate_unknown_code(db):
    with pytest.raises(CouponInvalid) as ei:
        coupons.validate(db, "NOPE", 100)
    assert ei.value.reason == CouponInvalid.NOT_FOUND


def test_validate_expired(db, make_coupon, future):
    make_coupon("LATE")
    with pytest.raises(CouponInvalid) as ei:
        coupons.validate(db, "LATE", 100, now=future + timedelta(seconds=1))
    assert ei.value.reason == CouponInvalid.EXPIRED


def test_validate_inactive(db, make_coupon):
    c = make_coupon("OFF")
    coupons.deactivate_coupon(db, c.id)
    with pytest.raises(CouponInvalid) as ei:
        coupons.validate(db, "OFF", 100)
    assert ei.value.reason == CouponInvalid.INACTIVE


def test_validate_below_minimum(db, make_coupon):
    make_coupon("BIG", minimum_order_amount=500)
    with pytest.raises(CouponInvalid) as ei:
        coupons.validate(db, "BIG", 499.99)
    assert ei.value.reason == CouponInvalid.BELOW_MINIMUM
    assert coupons.validate(db, "BIG", 500).code == "BIG"


def test_validate_rejects_non_numeric_amounts(db, make_coupon):
    make_coupon("BIG", minimum_order_amount=50)
    for bad in ("nan", "inf", float("-inf"), -1, "abc", True):
        with pytest.raises(InvalidInput):
            coupons.validate(db, "BIG", bad)


def test_redeem_to_the_limit_switches_coupon_off(db, make_coupon):
    c = make_coupon("TWICE", usage_limit=2)
    coupons.redeem(db, "TWICE", "u1")
    coupons.redeem(db, "TWICE", "u2")

    db.refresh(c)
    assert c.used_count == 2
    assert c.is_active is False
    assert [r.user_id for r in c.usage_history] == ["u1", "u2"]

    with pytest.raises(CouponExhausted):
        coupons.redeem(db, "TWICE", "u3")
    db.rollback()
    with pytest.raises(CouponInvalid) as ei:
        coupons.validate(db, "TWICE", 100)
    # reported as exhausted, not merely inactive
    assert ei.value.reason == CouponInvalid.EXHAUSTED


def test_redeem_unlimited_coupon(db, make_coupon):
    c = make_coupon("FOREVER")
    for i in range(5):
        coupons.redeem(db, "FOREVER", f"u{i}")
    db.refresh(c)
    assert c.used_count == 5
    assert c.is_active is True


def test_concurrent_redemptions_never_exceed_limit(database, db, make_coupon):
    c = make_coupon("RUSH", usage_limit=3)
    coupon_id = c.id
    db.rollback()

    def attempt(i):
        with database.session() as s:
            try:
                coupons.redeem(s, "RUSH", f"user-{i}")
                return "ok"
            except CouponExhausted:
                return "exhausted"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(10)))

    assert outcomes.count("ok") == 3
    assert outcomes.count("exhausted") == 7

    with database.session() as s:
        fresh = s.get(Coupon, coupon_id)
        history = s.scalar(select(func.count()).select_from(CouponRedemption)
                           .where(CouponRedemption.coupon_id == coupon_id))
        assert fresh.used_count == 3
        assert history == fresh.used_count
        assert fresh.is_active is False


def test_create_coupon_rejects_bad_terms(db, make_coupon, future):
    with pytest.raises(InvalidInput):
        make_coupon("PCT", value=150)
    with pytest.raises(InvalidInput):
        make_coupon("ZERO", value=0)
    with pytest.raises(InvalidInput):
        make_coupon("KIND", discount_type="bogo")
    with pytest.raises(InvalidInput):
        make_coupon("LIMIT", usage_limit=0)
    with pytest.raises(InvalidInput):
        make_coupon("PAST", expiry_date=future - timedelta(days=60))
    with pytest.raises(InvalidInput):
        make_coupon("BADDATE", expiry_date="next tuesday")


def test_create_coupon_code_is_unique_ignoring_case(db, make_coupon):
    make_coupon("WELCOME")
    with pytest.raises(InvalidInput):
        make_coupon("welcome")


def test_update_cannot_drop_limit_below_uses(db, make_coupon, future):
    c = make_coupon("FEW", usage_limit=5)
    coupons.redeem(db, "FEW", "u1")
    coupons.redeem(db, "FEW", "u2")

    base = {"code": "FEW", "discount_type": "fixed", "value": 20, "expiry_date": future}
    with pytest.raises(InvalidInput):
        coupons.update_coupon(db, c.id, {**base, "usage_limit": 1})

    updated = coupons.update_coupon(db, c.id, {**base, "usage_limit": 2, "description": "flat 20"})
    assert updated.used_count == 2
    assert updated.discount_type.value == "fixed"
    assert updated.description == "flat 20"


def test_list_active_only_hides_exhausted_and_inactive(db, make_coupon):
    make_coupon("LIVE")
    make_coupon("ONCE", usage_limit=1)
    dead = make_coupon("DEAD")
    coupons.redeem(db, "ONCE", "u1")
    coupons.deactivate_coupon(db, dead.id)

    assert [c.code for c in coupons.list_coupons(db, active_only=True)] == ["LIVE"]
    assert len(coupons.list_coupons(db)) == 3
