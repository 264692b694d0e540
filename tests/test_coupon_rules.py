from datetime import timedelta
from decimal import Decimal

from conftest import NOW

from coursemarket.core.errors import CouponReason
from coursemarket.models.coupon import CouponRedemption
from coursemarket.services.scope import CartLine
from coursemarket.services.validator import CouponValidator

CART = [
    CartLine(1, "A", Decimal("100.00"), "dev", "inst-1"),
    CartLine(2, "B", Decimal("150.00"), "dev", "inst-1"),
]


def _validate(db, code, user="u1", lines=CART, now=NOW):
    return CouponValidator(db, clock=lambda: now).validate(code, user, lines)


def _redeemed(db, coupon, user="u1"):
    db.add(CouponRedemption(coupon_id=coupon.id, user_id=user, payment_id="pay-0", discount_amount=Decimal("1")))
    db.commit()


def test_valid_coupon_returns_breakdown(db, make_coupon):
    make_coupon("SAVE20")
    res = _validate(db, "save20 ")
    assert res.valid
    assert res.breakdown.discount_amount == Decimal("50.00")
    assert res.breakdown.final_total == Decimal("200.00")


def test_empty_cart_is_reported_first(db):
    assert _validate(db, "NOPE", lines=[]).reason is CouponReason.EMPTY_CART


def test_unknown_code(db):
    assert _validate(db, "NOPE").reason is CouponReason.NOT_FOUND


def test_inactive_before_window(db, make_coupon):
    make_coupon("OFF", is_active=False, valid_until=NOW - timedelta(minutes=1), valid_from=NOW - timedelta(days=2))
    assert _validate(db, "OFF").reason is CouponReason.INACTIVE


def test_window_is_half_open(db, make_coupon):
    make_coupon("WIN", valid_from=NOW, valid_until=NOW + timedelta(hours=1))
    assert _validate(db, "WIN", now=NOW - timedelta(seconds=1)).reason is CouponReason.NOT_YET_VALID
    assert _validate(db, "WIN", now=NOW).valid
    assert _validate(db, "WIN", now=NOW + timedelta(hours=1)).reason is CouponReason.EXPIRED


def test_expired_before_usage_limit(db, make_coupon):
    make_coupon(
        "OLD",
        valid_from=NOW - timedelta(days=10),
        valid_until=NOW - timedelta(days=1),
        usage_limit=1,
        used_count=1,
    )
    assert _validate(db, "OLD").reason is CouponReason.EXPIRED


def test_usage_limit_before_minimum(db, make_coupon):
    make_coupon("FULL", usage_limit=2, used_count=2, minimum_amount=Decimal("1000"))
    assert _validate(db, "FULL").reason is CouponReason.USAGE_LIMIT_REACHED


def test_minimum_before_already_redeemed(db, make_coupon):
    c = make_coupon("BIG", minimum_amount=Decimal("300"))
    _redeemed(db, c)
    assert _validate(db, "BIG").reason is CouponReason.MINIMUM_NOT_MET


def test_minimum_uses_scoped_base(db, make_coupon):
    # carrito 250 pero solo A (100) está en el alcance
    make_coupon("ONLYA", applicable_to="SPECIFIC_COURSES", targets=["A"], minimum_amount=Decimal("120"))
    assert _validate(db, "ONLYA").reason is CouponReason.MINIMUM_NOT_MET


def test_already_redeemed_before_not_applicable(db, make_coupon):
    c = make_coupon("ART", applicable_to="CATEGORY", targets=["art"])
    _redeemed(db, c)
    assert _validate(db, "ART").reason is CouponReason.ALREADY_REDEEMED
    assert _validate(db, "ART", user="u2").reason is CouponReason.NOT_APPLICABLE


def test_instructor_scope(db, make_coupon):
    make_coupon("INST", type="FIXED_AMOUNT", value=Decimal("30"), applicable_to="INSTRUCTOR", targets=["inst-1"])
    res = _validate(db, "INST", lines=CART + [CartLine(3, "C", Decimal("50.00"), "art", "inst-2")])
    assert res.valid
    assert res.breakdown.base_amount == Decimal("250.00")
    assert res.breakdown.applicable_line_ids == (1, 2)


def test_validation_writes_nothing(db, make_coupon, read_coupon):
    c = make_coupon("SAVE20", usage_limit=5)
    for _ in range(3):
        assert _validate(db, "SAVE20").valid
    db.rollback()
    assert read_coupon(c.id).used_count == 0
    assert db.query(CouponRedemption).count() == 0
