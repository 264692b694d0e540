from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from coursemarket.core.config import settings
from coursemarket.services import store
from coursemarket.services.discount import money
from coursemarket.utils.cache import Cache


def coupon_stats(db: Session, cache: Cache, coupon_id: int) -> Optional[Dict[str, Any]]:
    """
    Usage figures for one coupon.

    Read without coordinating with redemptions: used_count and the ledger
    count are read separately, so right after a redemption they may disagree
    for a moment. Both are returned; consumers treat the percentages as
    eventually consistent.
    """
    key = f"coupon:{coupon_id}"
    cached = cache.get_json(key)
    if cached is not None:
        return cached

    coupon = store.find_by_id(db, coupon_id)
    if coupon is None:
        return None

    used = int(coupon.used_count or 0)
    limit = coupon.usage_limit
    redemptions = store.ledger_count(db, coupon.id)
    total_discount = store.ledger_discount_total(db, coupon.id)
    stats = {
        "coupon_id": coupon.id,
        "code": coupon.code,
        "title": coupon.title,
        "type": coupon.type,
        "value": str(money(coupon.value)),
        "applicable_to": coupon.applicable_to,
        "is_active": bool(coupon.is_active),
        "valid_from": coupon.valid_from.isoformat(),
        "valid_until": coupon.valid_until.isoformat(),
        "usage_limit": limit,
        "used_count": used,
        "ledger_count": redemptions,
        "remaining": (max(0, limit - used) if limit is not None else None),
        "usage_percentage": (round(used / limit * 100, 2) if limit else None),
        "total_discount": str(money(total_discount)),
        "average_discount": str(money(total_discount / redemptions)) if redemptions else "0.00",
        "terms_locked": coupon.terms_locked,
        "consistency": "eventual",
    }
    db.rollback()
    cache.set_json(key, stats, settings.coupon_detail_ttl)
    return stats
