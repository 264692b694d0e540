from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from coursemarket.core.config import settings
from coursemarket.core.errors import CouponReason
from coursemarket.services import store
from coursemarket.services.discount import ZERO, DiscountBreakdown, compute, money, total_of
from coursemarket.services.scope import CartLine
from coursemarket.services.validator import CouponValidator
from coursemarket.utils.cache import Cache
from coursemarket.utils.logger import get_logger

log = get_logger("coupon_session")


def preview_key(user_id) -> str:
    return f"cart_coupon:{user_id}"


def totals_key(user_id) -> str:
    return f"cart_totals:{user_id}"


def validation_key(code: str, user_id, lines: Sequence[CartLine]) -> str:
    h = hashlib.sha1()
    for ln in sorted(lines, key=lambda x: x.line_id):
        h.update(f"{ln.line_id}:{ln.course_id}:{money(ln.price)};".encode("utf-8"))
    return f"coupon_validation:{store.normalize_code(code)}:{user_id}:{h.hexdigest()[:16]}"


def on_cart_changed(cache: Cache, user_id, remaining_line_ids: Iterable[int]) -> None:
    """
    Every cart mutation lands here. Totals are always dropped; the preview
    only goes once none of the lines it was computed against is left.
    """
    cache.delete(totals_key(user_id))
    preview = cache.get_json(preview_key(user_id))
    if not preview:
        return
    remaining = set(remaining_line_ids)
    if not remaining.intersection(preview.get("applicable_line_ids") or []):
        cache.delete(preview_key(user_id))
        log.info("preview %s dropped for user %s: applicable lines removed", preview.get("code"), user_id)


def _breakdown_to_json(bd: Optional[DiscountBreakdown]) -> Optional[Dict[str, Any]]:
    if bd is None:
        return None
    return {
        "cart_total": str(bd.cart_total),
        "base_amount": str(bd.base_amount),
        "discount_amount": str(bd.discount_amount),
        "final_total": str(bd.final_total),
        "applicable_line_ids": list(bd.applicable_line_ids),
    }


def _breakdown_from_json(data: Optional[Dict[str, Any]]) -> Optional[DiscountBreakdown]:
    if not data:
        return None
    return DiscountBreakdown(
        cart_total=Decimal(data["cart_total"]),
        base_amount=Decimal(data["base_amount"]),
        discount_amount=Decimal(data["discount_amount"]),
        final_total=Decimal(data["final_total"]),
        applicable_line_ids=tuple(data["applicable_line_ids"]),
    )


@dataclass(frozen=True)
class PreviewResult:
    reason: Optional[CouponReason] = None
    preview: Optional[Dict[str, Any]] = None
    breakdown: Optional[DiscountBreakdown] = None

    @property
    def valid(self) -> bool:
        return self.reason is None


class CartCouponSession:
    """
    Advisory "coupon applied to my cart" state. Lives only in the cache,
    last write wins, and never touches used_count or the ledger.
    """

    def __init__(
        self,
        validator: CouponValidator,
        cache: Cache,
        lines: Callable[[str], List[CartLine]],
    ):
        self.validator = validator
        self.cache = cache
        self.lines = lines

    def _end_read(self) -> None:
        # soltar la transacción de lectura antes de ir a la caché
        self.validator.db.rollback()

    def _lines(self, user_id: str) -> List[CartLine]:
        lines = self.lines(user_id)
        self._end_read()
        return lines

    def _evaluate(self, user_id: str, code: str, lines: Sequence[CartLine]) -> PreviewResult:
        res = self.validator.validate(code, user_id, lines)
        if not res.valid:
            self._end_read()
            return PreviewResult(reason=res.reason)
        coupon, bd = res.coupon, res.breakdown
        now = self.validator.clock()
        preview = {
            "coupon_id": coupon.id,
            "code": coupon.code,
            "title": coupon.title,
            "type": coupon.type,
            "value": str(money(coupon.value)),
            "discount_amount": str(bd.discount_amount),
            "base_amount": str(bd.base_amount),
            "applicable_line_ids": list(bd.applicable_line_ids),
            "applied_at": now.isoformat(),
            "expires_at": (now + timedelta(seconds=settings.coupon_preview_ttl)).isoformat(),
        }
        self._end_read()
        return PreviewResult(preview=preview, breakdown=bd)

    def preview(self, user_id: str, code: str) -> PreviewResult:
        result = self._evaluate(user_id, code, self._lines(user_id))
        if result.valid:
            self.cache.set_json(preview_key(user_id), result.preview, settings.coupon_preview_ttl)
            self.cache.delete(totals_key(user_id))
            log.info(
                "preview %s for user %s: discount=%s",
                result.preview["code"], user_id, result.preview["discount_amount"],
            )
        return result

    def check(self, user_id: str, code: str) -> PreviewResult:
        """Same answer as preview() without storing a preview."""
        lines = self._lines(user_id)
        key = validation_key(code, user_id, lines)
        cached = self.cache.get_json(key)
        if cached is not None:
            reason = CouponReason(cached["reason"]) if cached.get("reason") else None
            return PreviewResult(
                reason=reason,
                preview=cached.get("preview"),
                breakdown=_breakdown_from_json(cached.get("breakdown")),
            )
        result = self._evaluate(user_id, code, lines)
        self.cache.set_json(
            key,
            {
                "reason": result.reason.value if result.reason else None,
                "preview": result.preview,
                "breakdown": _breakdown_to_json(result.breakdown),
            },
            settings.coupon_validation_ttl,
        )
        return result

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.cache.get_json(preview_key(user_id))

    def clear(self, user_id: str) -> Optional[Dict[str, Any]]:
        existing = self.get(user_id)
        self.cache.delete(preview_key(user_id), totals_key(user_id))
        return existing

    @staticmethod
    def _still_owed(coupon, lines: Sequence[CartLine]) -> Decimal:
        """Discount the current cart still earns; zero once it stopped qualifying."""
        if coupon is None:
            return ZERO
        bd = compute(coupon, lines)
        if not bd.applicable_line_ids:
            return ZERO
        if coupon.minimum_amount is not None and bd.base_amount < Decimal(str(coupon.minimum_amount)):
            return ZERO
        return bd.discount_amount

    def totals(self, user_id: str) -> Dict[str, Any]:
        cached = self.cache.get_json(totals_key(user_id))
        if cached is not None:
            return cached

        lines = self._lines(user_id)
        subtotal = total_of(lines)
        discount = ZERO
        coupon_info = None
        stale = False

        preview = self.get(user_id)
        if preview:
            stored = Decimal(str(preview["discount_amount"]))
            coupon = store.find_by_id(self.validator.db, preview["coupon_id"])
            current_ids = {ln.line_id for ln in lines}
            missing = set(preview.get("applicable_line_ids") or []) - current_ids
            fresh = self._still_owed(coupon, lines)
            self._end_read()
            stale = bool(missing) or fresh != stored
            # nunca más de lo que se mostró en el preview
            discount = min(stored, fresh)
            if stale:
                log.warning(
                    "stale preview %s for user %s: stored=%s fresh=%s",
                    preview["code"], user_id, stored, fresh,
                )
            coupon_info = {
                "coupon_id": preview["coupon_id"],
                "code": preview["code"],
                "title": preview.get("title"),
                "type": preview.get("type"),
                "value": preview.get("value"),
                "discount_amount": str(discount),
                "previewed_discount": str(stored),
            }

        total = max(ZERO, money(subtotal - discount))
        totals = {
            "subtotal": str(subtotal),
            "discount": str(discount),
            "total": str(total),
            "savings": str(discount),
            "item_count": len(lines),
            "currency": settings.currency,
            "applied_coupon": coupon_info,
            "coupon_stale": stale,
            "breakdown": [
                {"line_id": ln.line_id, "course_id": ln.course_id, "price": str(money(ln.price))}
                for ln in lines
            ],
        }
        if lines:
            self.cache.set_json(totals_key(user_id), totals, settings.cart_totals_ttl)
        return totals
