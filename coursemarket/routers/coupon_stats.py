from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from coursemarket.db import get_db
from coursemarket.services.analytics import coupon_stats
from coursemarket.utils.cache import Cache, get_cache

router = APIRouter(prefix="/coupons", tags=["reports", "coupon"])


@router.get("/{coupon_id}/stats")
def get_coupon_stats(coupon_id: int, db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    stats = coupon_stats(db, cache, coupon_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="COUPON_NOT_FOUND")
    return stats
