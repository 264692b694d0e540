from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CartItemIn(BaseModel):
    course_id: str = Field(..., min_length=1, max_length=64)


class CartBulkIn(BaseModel):
    course_ids: List[str] = Field(..., min_length=1, max_length=100)


class CartSyncIn(BaseModel):
    course_ids: List[str] = Field(default_factory=list, max_length=100)


class CouponCodeIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: str = Field(..., min_length=1, max_length=50)

    @field_validator("code", mode="before")
    @classmethod
    def _normalize_code(cls, v):
        return str(v).strip().upper() if v is not None else v


class RedeemIn(BaseModel):
    coupon_id: int = Field(..., gt=0)
    payment_id: str = Field(..., min_length=1, max_length=64)
    # 0.00 es válido: cupón acotado sobre un curso gratis
    discount_amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)

    @field_validator("discount_amount", mode="before")
    @classmethod
    def _money_to_decimal(cls, v):
        if v is None or isinstance(v, bool):
            return v
        return Decimal(str(v))


class RedemptionOut(BaseModel):
    redemption_id: int
    coupon_id: int
    code: str
    user_id: str
    payment_id: str
    discount_amount: Decimal
    created_at: datetime


class CouponPreviewOut(BaseModel):
    coupon_id: int
    code: str
    title: Optional[str] = None
    type: str
    value: Decimal
    discount_amount: Decimal
    base_amount: Decimal
    applicable_line_ids: List[int]
    applied_at: datetime
    expires_at: datetime
