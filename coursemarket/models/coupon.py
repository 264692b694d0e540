from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.orm import relationship, validates

from ..db import Base

COUPON_TYPES = ("PERCENTAGE", "FIXED_AMOUNT")
APPLICABLE_TO = ("ALL_COURSES", "SPECIFIC_COURSES", "CATEGORY", "INSTRUCTOR")


class Coupon(Base):
    __tablename__ = "coupons"
    id = Column(Integer, primary_key=True)
    code = Column(String(50), unique=True, index=True, nullable=False)  # siempre en mayúsculas
    title = Column(String(120), nullable=False)
    description = Column(Text)
    type = Column(String(20), nullable=False)  # PERCENTAGE | FIXED_AMOUNT
    value = Column(Numeric(10, 2), nullable=False)
    minimum_amount = Column(Numeric(10, 2))
    maximum_discount = Column(Numeric(10, 2))
    usage_limit = Column(Integer)
    used_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    applicable_to = Column(String(20), nullable=False, default="ALL_COURSES")
    created_by_id = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    targets = relationship(
        "CouponTarget", back_populates="coupon", cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint("used_count >= 0", name="ck_coupon_used_nonneg"),
        CheckConstraint(
            "usage_limit IS NULL OR used_count <= usage_limit", name="ck_coupon_used_le_limit"
        ),
        CheckConstraint("valid_from < valid_until", name="ck_coupon_window"),
        CheckConstraint(
            "value > 0 AND (type <> 'PERCENTAGE' OR value <= 100)", name="ck_coupon_value"
        ),
        CheckConstraint("type IN ('PERCENTAGE', 'FIXED_AMOUNT')", name="ck_coupon_type"),
        CheckConstraint(
            "applicable_to IN ('ALL_COURSES', 'SPECIFIC_COURSES', 'CATEGORY', 'INSTRUCTOR')",
            name="ck_coupon_applicable_to",
        ),
    )

    @property
    def target_ids(self):
        return frozenset(t.ref_id for t in self.targets)

    @property
    def terms_locked(self) -> bool:
        # type/value/applicable_to quedan congelados tras el primer uso
        return (self.used_count or 0) > 0

    @validates("type", "value", "applicable_to")
    def _freeze_terms(self, key, new):
        if inspect(self).has_identity and self.terms_locked and getattr(self, key) != new:
            raise ValueError(f"{key} cannot change after the coupon has been redeemed")
        return new


class CouponTarget(Base):
    """Reference ids of a scoped coupon: course, category or instructor ids."""

    __tablename__ = "coupon_targets"
    id = Column(Integer, primary_key=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False, index=True)
    ref_id = Column(String(64), nullable=False)

    coupon = relationship("Coupon", back_populates="targets")

    __table_args__ = (UniqueConstraint("coupon_id", "ref_id", name="uq_coupon_target"),)


class CouponRedemption(Base):
    __tablename__ = "coupon_redemptions"
    id = Column(Integer, primary_key=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    payment_id = Column(String(64), nullable=False, index=True)
    discount_amount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (UniqueConstraint("coupon_id", "user_id", name="uq_redemption_coupon_user"),)
