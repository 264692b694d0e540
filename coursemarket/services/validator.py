from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from coursemarket.core.errors import CouponReason
from coursemarket.models.coupon import Coupon
from coursemarket.services import store
from coursemarket.services.discount import DiscountBreakdown, compute
from coursemarket.services.scope import CartLine, Scope, scope_of


def utc_now() -> datetime:
    # base UTC "naive", igual que las columnas DateTime
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class ValidationResult:
    reason: Optional[CouponReason] = None
    coupon: Optional[Coupon] = None
    scope: Optional[Scope] = None
    breakdown: Optional[DiscountBreakdown] = None

    @property
    def valid(self) -> bool:
        return self.reason is None


def _reject(reason: CouponReason, coupon: Optional[Coupon] = None) -> ValidationResult:
    return ValidationResult(reason=reason, coupon=coupon)


class CouponValidator:
    """
    Read-only eligibility predicate for (code, user, cart).

    Checks run in a fixed order and the first failure is the reported reason.
    Nothing is written, so calling it twice only differs when the stored
    state changed between the calls.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    def validate(self, code: str, user_id: str, lines: Sequence[CartLine]) -> ValidationResult:
        if not lines:
            return _reject(CouponReason.EMPTY_CART)

        coupon = store.find_by_code(self.db, code)
        if coupon is None:
            return _reject(CouponReason.NOT_FOUND)

        reason = self._gate(coupon, self.clock())
        if reason is not None:
            return _reject(reason, coupon)

        breakdown = compute(coupon, lines)
        if coupon.minimum_amount is not None and breakdown.base_amount < Decimal(
            str(coupon.minimum_amount)
        ):
            return _reject(CouponReason.MINIMUM_NOT_MET, coupon)

        if store.exists_for(self.db, coupon.id, user_id):
            return _reject(CouponReason.ALREADY_REDEEMED, coupon)

        if not breakdown.applicable_line_ids:
            return _reject(CouponReason.NOT_APPLICABLE, coupon)

        return ValidationResult(coupon=coupon, scope=scope_of(coupon), breakdown=breakdown)

    def check_redeemable(self, coupon: Coupon, user_id: str) -> Optional[CouponReason]:
        """Checks that do not depend on the cart: flag, window, capacity, reuse."""
        reason = self._gate(coupon, self.clock())
        if reason is not None:
            return reason
        if store.exists_for(self.db, coupon.id, user_id):
            return CouponReason.ALREADY_REDEEMED
        return None

    @staticmethod
    def _gate(coupon: Coupon, now: datetime) -> Optional[CouponReason]:
        if not coupon.is_active:
            return CouponReason.INACTIVE
        # ventana semiabierta [valid_from, valid_until)
        if now < coupon.valid_from:
            return CouponReason.NOT_YET_VALID
        if now >= coupon.valid_until:
            return CouponReason.EXPIRED
        if coupon.usage_limit is not None and (coupon.used_count or 0) >= coupon.usage_limit:
            return CouponReason.USAGE_LIMIT_REACHED
        return None
