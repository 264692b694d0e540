from fastapi import APIRouter, Depends

from coursemarket.core.deps import current_user, get_accountant
from coursemarket.core.errors import raise_for_reason
from coursemarket.core.schemas import RedeemIn, RedemptionOut
from coursemarket.services.redemption import RedemptionAccountant

router = APIRouter(prefix="/checkout", tags=["checkout", "coupon"])


@router.post("/redeem", response_model=RedemptionOut, status_code=201)
def redeem_coupon(
    body: RedeemIn,
    user: str = Depends(current_user),
    accountant: RedemptionAccountant = Depends(get_accountant),
):
    """
    Called by the payment flow once the payment is confirmed. Safe to retry:
    a repeat either redeems once or answers COUPON_ALREADY_REDEEMED.
    """
    result = accountant.redeem(body.coupon_id, user, body.payment_id, body.discount_amount)
    if not result.ok:
        raise_for_reason(result.reason)
    r = result.redemption
    return RedemptionOut(
        redemption_id=r.id,
        coupon_id=r.coupon_id,
        code=r.code,
        user_id=r.user_id,
        payment_id=r.payment_id,
        discount_amount=r.discount_amount,
        created_at=r.created_at,
    )
