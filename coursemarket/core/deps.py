from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from coursemarket.db import get_db
from coursemarket.services.cart import CartService
from coursemarket.services.coupon_session import CartCouponSession
from coursemarket.services.redemption import RedemptionAccountant
from coursemarket.services.validator import CouponValidator, utc_now
from coursemarket.utils.cache import Cache, get_cache


def get_clock():
    # override en tests para fijar "ahora"
    return utc_now


def current_user(x_user: Optional[str] = Header(default=None, alias="X-User")) -> str:
    # autenticación fuera de alcance: el gateway inyecta X-User
    user = (x_user or "").strip()
    if not user:
        raise HTTPException(status_code=401, detail="USER_REQUIRED")
    return user


def get_validator(db: Session = Depends(get_db), clock=Depends(get_clock)) -> CouponValidator:
    return CouponValidator(db, clock=clock)


def get_cart(db: Session = Depends(get_db), cache: Cache = Depends(get_cache)) -> CartService:
    return CartService(db, cache)


def get_coupon_session(
    validator: CouponValidator = Depends(get_validator),
    cart: CartService = Depends(get_cart),
    cache: Cache = Depends(get_cache),
) -> CartCouponSession:
    return CartCouponSession(validator, cache, lines=cart.lines)


def get_accountant(
    validator: CouponValidator = Depends(get_validator),
    cache: Cache = Depends(get_cache),
) -> RedemptionAccountant:
    return RedemptionAccountant(validator, cache)
