from decimal import Decimal

import pytest

from coursemarket.core.errors import CouponReason
from coursemarket.services.cart import CartService
from coursemarket.services.coupon_session import (
    CartCouponSession,
    preview_key,
    totals_key,
    validation_key,
)
from coursemarket.services.validator import CouponValidator


@pytest.fixture
def shop(db, cache, clock, make_course):
    make_course("A", "100.00", "dev", "inst-1")
    make_course("B", "150.00", "dev", "inst-1")
    make_course("C", "50.00", "art", "inst-2")
    cart = CartService(db, cache)
    session = CartCouponSession(CouponValidator(db, clock), cache, lines=cart.lines)
    return cart, session


def test_preview_is_stored_with_ttl(shop, cache, make_coupon):
    cart, session = shop
    make_coupon("SAVE20")
    cart.add("u1", "A")
    cart.add("u1", "B")

    res = session.preview("u1", "SAVE20")
    assert res.valid
    stored = cache.get_json(preview_key("u1"))
    assert stored["code"] == "SAVE20"
    assert stored["discount_amount"] == "50.00"
    assert 3590 < cache.ttl(preview_key("u1")) <= 3600


def test_invalid_preview_stores_nothing(shop, cache):
    cart, session = shop
    cart.add("u1", "A")
    res = session.preview("u1", "GHOST")
    assert res.reason is CouponReason.NOT_FOUND
    assert cache.get_json(preview_key("u1")) is None


def test_preview_does_not_touch_capacity(shop, db, make_coupon, read_coupon):
    cart, session = shop
    c = make_coupon("SAVE20", usage_limit=1)
    cart.add("u1", "A")
    for _ in range(3):
        assert session.preview("u1", "SAVE20").valid
    db.rollback()
    assert read_coupon(c.id).used_count == 0


def test_last_preview_wins(shop, cache, make_coupon):
    cart, session = shop
    make_coupon("SAVE20")
    make_coupon("FLAT30", type="FIXED_AMOUNT", value=Decimal("30"))
    cart.add("u1", "A")
    session.preview("u1", "SAVE20")
    session.preview("u1", "FLAT30")
    assert session.get("u1")["code"] == "FLAT30"


def test_clear_drops_preview_and_totals(shop, cache, make_coupon):
    cart, session = shop
    make_coupon("SAVE20")
    cart.add("u1", "A")
    session.preview("u1", "SAVE20")
    session.totals("u1")
    assert cache.get_json(totals_key("u1")) is not None

    removed = session.clear("u1")
    assert removed["code"] == "SAVE20"
    assert cache.get_json(preview_key("u1")) is None
    assert cache.get_json(totals_key("u1")) is None
    assert session.clear("u1") is None


def test_totals_are_cached_and_dropped_on_cart_change(shop, cache):
    cart, session = shop
    cart.add("u1", "A")
    first = session.totals("u1")
    assert first["subtotal"] == "100.00"
    assert 290 < cache.ttl(totals_key("u1")) <= 300

    cart.add("u1", "C")
    assert cache.get_json(totals_key("u1")) is None
    assert session.totals("u1")["subtotal"] == "150.00"


def test_removing_all_applicable_lines_drops_preview(shop, cache, make_coupon):
    cart, session = shop
    make_coupon("INSTR10", type="FIXED_AMOUNT", value=Decimal("30"), applicable_to="SPECIFIC_COURSES", targets=["A", "B"])
    cart.add("u1", "A")
    cart.add("u1", "C")
    assert session.preview("u1", "INSTR10").valid

    cart.remove("u1", "A")
    assert cache.get_json(preview_key("u1")) is None
    totals = session.totals("u1")
    assert totals["applied_coupon"] is None
    assert totals["total"] == "50.00"


def test_partial_removal_keeps_preview_but_flags_stale(shop, make_coupon):
    cart, session = shop
    make_coupon("SAVE20")
    cart.add("u1", "A")
    cart.add("u1", "B")
    session.preview("u1", "SAVE20")

    cart.remove("u1", "B")
    assert session.get("u1") is not None
    totals = session.totals("u1")
    assert totals["coupon_stale"] is True
    assert totals["discount"] == "20.00"
    assert totals["total"] == "80.00"
    assert totals["applied_coupon"]["previewed_discount"] == "50.00"


def test_totals_never_exceed_previewed_discount(shop, make_coupon):
    cart, session = shop
    make_coupon("SAVE20")
    cart.add("u1", "A")
    cart.add("u1", "B")
    session.preview("u1", "SAVE20")

    cart.add("u1", "C")
    totals = session.totals("u1")
    assert totals["subtotal"] == "300.00"
    assert totals["discount"] == "50.00"
    assert totals["coupon_stale"] is True


def test_fresh_preview_is_not_stale(shop, make_coupon):
    cart, session = shop
    make_coupon("SAVE20")
    cart.add("u1", "A")
    session.preview("u1", "SAVE20")
    totals = session.totals("u1")
    assert totals["coupon_stale"] is False
    assert totals["discount"] == "20.00"
    assert totals["currency"] == "INR"


def test_check_caches_the_answer_per_cart(shop, cache, make_coupon):
    cart, session = shop
    make_coupon("SAVE20")
    cart.add("u1", "A")
    assert session.check("u1", "SAVE20").valid
    key = validation_key("SAVE20", "u1", cart.lines("u1"))
    assert cache.get_json(key)["reason"] is None
    assert cache.get_json(preview_key("u1")) is None

    # otro carrito, otra clave
    cart.add("u1", "B")
    assert validation_key("SAVE20", "u1", cart.lines("u1")) != key


def test_check_caches_rejections(shop, cache):
    cart, session = shop
    cart.add("u1", "A")
    assert session.check("u1", "ghost").reason is CouponReason.NOT_FOUND
    cached = cache.get_json(validation_key("GHOST", "u1", cart.lines("u1")))
    assert cached["reason"] == "NOT_FOUND"
    assert session.check("u1", "GHOST").reason is CouponReason.NOT_FOUND


def test_totals_drop_discount_once_minimum_is_lost(shop, make_coupon):
    cart, session = shop
    make_coupon("MIN200", minimum_amount=Decimal("200"))
    cart.add("u1", "A")
    cart.add("u1", "B")
    assert session.preview("u1", "MIN200").valid

    cart.remove("u1", "B")
    totals = session.totals("u1")
    assert totals["discount"] == "0.00"
    assert totals["total"] == "100.00"
    assert totals["coupon_stale"] is True
    # sigue cacheado igual en la siguiente lectura
    assert session.totals("u1")["discount"] == "0.00"


def test_cached_check_keeps_the_breakdown(shop, make_coupon):
    cart, session = shop
    make_coupon("SAVE20")
    cart.add("u1", "A")
    cart.add("u1", "B")
    first = session.check("u1", "SAVE20")
    again = session.check("u1", "SAVE20")
    assert again.breakdown is not None
    assert again.breakdown.final_total == first.breakdown.final_total == Decimal("200.00")
    assert again.breakdown.applicable_line_ids == first.breakdown.applicable_line_ids
