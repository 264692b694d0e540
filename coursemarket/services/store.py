from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coursemarket.models.coupon import Coupon, CouponRedemption


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


# ---------- Coupon Store ----------
def find_by_code(db: Session, code: str) -> Optional[Coupon]:
    code_up = normalize_code(code)
    if not code_up:
        return None
    stmt = select(Coupon).where(Coupon.code == code_up).execution_options(populate_existing=True)
    return db.execute(stmt).scalars().first()


def find_by_id(db: Session, coupon_id: int) -> Optional[Coupon]:
    # populate_existing: never trust a copy already sitting in the identity map
    return db.get(Coupon, coupon_id, populate_existing=True)


def increment_used_count(db: Session, coupon_id: int) -> bool:
    """
    Consume one unit of capacity. False when the limit is already reached
    (zero rows affected); the caller must roll back.
    """
    res = db.execute(
        text(
            """
            UPDATE coupons SET used_count = used_count + 1
             WHERE id = :cid
               AND (usage_limit IS NULL OR used_count < usage_limit)
            """
        ),
        {"cid": coupon_id},
    )
    return bool(res.rowcount and res.rowcount > 0)


# ---------- Redemption Ledger ----------
def exists_for(db: Session, coupon_id: int, user_id: str) -> bool:
    row = db.execute(
        select(CouponRedemption.id).where(
            CouponRedemption.coupon_id == coupon_id,
            CouponRedemption.user_id == str(user_id),
        )
    ).first()
    return row is not None


def insert_unique(
    db: Session, coupon_id: int, user_id: str, payment_id: str, discount_amount: Decimal
) -> Optional[CouponRedemption]:
    """Insert the ledger row; None when (coupon, user) already has one."""
    row = CouponRedemption(
        coupon_id=coupon_id,
        user_id=str(user_id),
        payment_id=str(payment_id),
        discount_amount=discount_amount,
    )
    db.add(row)
    try:
        db.flush()
    except IntegrityError:
        return None
    return row


def ledger_count(db: Session, coupon_id: int) -> int:
    return int(
        db.execute(
            select(func.count(CouponRedemption.id)).where(CouponRedemption.coupon_id == coupon_id)
        ).scalar()
        or 0
    )


def ledger_discount_total(db: Session, coupon_id: int) -> Decimal:
    total = db.execute(
        select(func.coalesce(func.sum(CouponRedemption.discount_amount), 0)).where(
            CouponRedemption.coupon_id == coupon_id
        )
    ).scalar()
    return Decimal(str(total or 0))
