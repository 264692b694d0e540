from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence, Tuple

from coursemarket.services.scope import CartLine, applicable_lines, scope_of

ZERO = Decimal("0.00")


def money(v) -> Decimal:
    return (v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            if isinstance(v, Decimal) else Decimal(str(v)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def total_of(lines: Sequence[CartLine]) -> Decimal:
    return money(sum((money(ln.price) for ln in lines), Decimal("0")))


@dataclass(frozen=True)
class DiscountBreakdown:
    cart_total: Decimal
    base_amount: Decimal
    discount_amount: Decimal
    final_total: Decimal
    applicable_line_ids: Tuple[int, ...]


def discount_for(coupon, base_amount: Decimal) -> Decimal:
    """Raw discount owed on base_amount, capped and rounded half-up to cents."""
    base = money(base_amount)
    if base <= 0:
        return ZERO
    ctype = (coupon.type or "").upper()
    value = Decimal(str(coupon.value))
    if ctype == "PERCENTAGE":
        discount = base * value / Decimal("100")
    elif ctype == "FIXED_AMOUNT":
        # un monto fijo nunca supera lo que descuenta
        discount = min(value, base)
    else:
        raise ValueError(f"unknown coupon type: {coupon.type!r}")

    if coupon.maximum_discount is not None:
        discount = min(discount, Decimal(str(coupon.maximum_discount)))

    if not discount.is_finite() or discount < 0:
        return ZERO
    return money(discount)


def compute(coupon, lines: Sequence[CartLine]) -> DiscountBreakdown:
    """
    Discount a coupon grants on a cart.

    Lines outside the coupon's scope count toward cart_total but not toward
    base_amount. Pure: identical inputs always give an identical breakdown.
    """
    matching = applicable_lines(scope_of(coupon), lines)
    cart_total = total_of(lines)
    base_amount = total_of(matching)
    discount = discount_for(coupon, base_amount)
    final_total = max(ZERO, money(cart_total - discount))
    return DiscountBreakdown(
        cart_total=cart_total,
        base_amount=base_amount,
        discount_amount=discount,
        final_total=final_total,
        applicable_line_ids=tuple(sorted(ln.line_id for ln in matching)),
    )
