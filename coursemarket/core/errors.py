from enum import Enum

from fastapi import HTTPException


class CouponReason(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    ALREADY_REDEEMED = "ALREADY_REDEEMED"
    MINIMUM_NOT_MET = "MINIMUM_NOT_MET"
    NOT_APPLICABLE = "NOT_APPLICABLE"
    EMPTY_CART = "EMPTY_CART"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"


MESSAGES = {
    CouponReason.NOT_FOUND: "Coupon code not found",
    CouponReason.INACTIVE: "Coupon is no longer active",
    CouponReason.NOT_YET_VALID: "Coupon is not yet valid",
    CouponReason.EXPIRED: "Coupon has expired",
    CouponReason.USAGE_LIMIT_REACHED: "Coupon usage limit exceeded",
    CouponReason.ALREADY_REDEEMED: "You have already used this coupon",
    CouponReason.MINIMUM_NOT_MET: "Minimum order amount not met",
    CouponReason.NOT_APPLICABLE: "This coupon is not applicable to courses in your cart",
    CouponReason.EMPTY_CART: "Cart is empty",
    CouponReason.CONCURRENCY_CONFLICT: "Coupon just ran out",
}

_STATUS = {
    CouponReason.NOT_FOUND: 404,
    CouponReason.ALREADY_REDEEMED: 409,
    CouponReason.USAGE_LIMIT_REACHED: 409,
    CouponReason.CONCURRENCY_CONFLICT: 409,
}


def detail_code(reason: CouponReason) -> str:
    if reason is CouponReason.EMPTY_CART:
        return "EMPTY_CART"
    return f"COUPON_{reason.value}"


def raise_for_reason(reason: CouponReason, **extra):
    """Business rejection -> HTTPException with the precise reason; none is retryable."""
    detail = {
        "code": detail_code(reason),
        "message": MESSAGES[reason],
        "retryable": False,
    }
    detail.update(extra)
    raise HTTPException(status_code=_STATUS.get(reason, 400), detail=detail)
