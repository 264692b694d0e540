from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from coursemarket.core.errors import CouponReason
from coursemarket.services import store
from coursemarket.services.coupon_session import preview_key, totals_key
from coursemarket.services.discount import money
from coursemarket.services.validator import CouponValidator
from coursemarket.utils.cache import Cache
from coursemarket.utils.logger import get_logger

log = get_logger("redemption")


@dataclass(frozen=True)
class Redemption:
    id: int
    coupon_id: int
    code: str
    user_id: str
    payment_id: str
    discount_amount: Decimal
    created_at: datetime


@dataclass(frozen=True)
class RedemptionResult:
    reason: Optional[CouponReason] = None
    redemption: Optional[Redemption] = None

    @property
    def ok(self) -> bool:
        return self.reason is None


class RedemptionAccountant:
    """
    The only write path that consumes coupon capacity.

    One transaction: re-check the coupon, insert the ledger row (unique on
    coupon+user), then the conditional used_count increment. Zero rows
    affected by the increment means another checkout took the last unit;
    the ledger insert is rolled back with it. Caches are invalidated only
    after commit.

    Retrying after a timeout is safe: a repeat either finds the first
    attempt committed (ALREADY_REDEEMED) or redeems once.
    """

    def __init__(self, validator: CouponValidator, cache: Cache):
        self.validator = validator
        self.cache = cache
        self.db = validator.db

    def redeem(
        self, coupon_id: int, user_id: str, payment_id: str, discount_amount: Decimal
    ) -> RedemptionResult:
        db = self.db
        amount = money(discount_amount)
        user_id = str(user_id)

        try:
            coupon = store.find_by_id(db, coupon_id)
            if coupon is None:
                db.rollback()
                return RedemptionResult(reason=CouponReason.NOT_FOUND)
            code = coupon.code

            reason = self.validator.check_redeemable(coupon, user_id)
            if reason is not None:
                db.rollback()
                log.warning("redeem %s by %s rejected: %s", code, user_id, reason.value)
                return RedemptionResult(reason=reason)

            row = store.insert_unique(db, coupon.id, user_id, payment_id, amount)
            if row is None:
                db.rollback()
                log.warning("redeem %s by %s: ledger row already present", code, user_id)
                return RedemptionResult(reason=CouponReason.ALREADY_REDEEMED)

            if not store.increment_used_count(db, coupon.id):
                db.rollback()
                log.warning("redeem %s by %s lost the race for the last unit", code, user_id)
                return RedemptionResult(reason=CouponReason.CONCURRENCY_CONFLICT)

            # snapshot antes del commit: nada de lazy loads después
            redemption = Redemption(
                id=row.id,
                coupon_id=coupon.id,
                code=code,
                user_id=user_id,
                payment_id=str(payment_id),
                discount_amount=amount,
                created_at=row.created_at,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        log.info("redeemed %s by %s payment=%s discount=%s", code, user_id, payment_id, amount)
        self._invalidate(coupon_id, code, user_id)
        return RedemptionResult(redemption=redemption)

    def _invalidate(self, coupon_id: int, code: str, user_id: str) -> None:
        self.cache.invalidate(
            [
                f"coupon:{coupon_id}",
                "coupons:*",
                f"coupon_validation:{code}:*",
            ]
        )
        self.cache.delete(preview_key(user_id), totals_key(user_id))
