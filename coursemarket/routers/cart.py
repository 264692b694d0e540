from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from coursemarket.core.deps import current_user, get_cart, get_coupon_session
from coursemarket.core.errors import raise_for_reason
from coursemarket.core.schemas import CartBulkIn, CartItemIn, CartSyncIn, CouponCodeIn, CouponPreviewOut
from coursemarket.services.cart import CartService, CourseNotFound
from coursemarket.services.coupon_session import CartCouponSession, PreviewResult
from coursemarket.services.discount import money

router = APIRouter(prefix="/cart", tags=["cart"])


def _preview_body(result: PreviewResult) -> Dict[str, Any]:
    p = result.preview
    body: Dict[str, Any] = {"coupon": CouponPreviewOut(**p).model_dump(mode="json")}
    bd = result.breakdown
    if bd is not None:
        body["totals"] = {
            "subtotal": str(bd.cart_total),
            "discount": str(bd.discount_amount),
            "total": str(bd.final_total),
            "savings": str(bd.discount_amount),
            "applicable_lines": len(bd.applicable_line_ids),
        }
    return body


# ---------- Líneas del carrito ----------
@router.get("")
def get_cart_lines(user: str = Depends(current_user), cart: CartService = Depends(get_cart)):
    lines = cart.lines(user)
    return {
        "user_id": user,
        "items": [
            {"line_id": ln.line_id, "course_id": ln.course_id, "price": str(money(ln.price))}
            for ln in lines
        ],
        "count": len(lines),
    }


@router.post("/items", status_code=201)
def add_item(body: CartItemIn, user: str = Depends(current_user), cart: CartService = Depends(get_cart)):
    try:
        item = cart.add(user, body.course_id)
    except CourseNotFound:
        raise HTTPException(status_code=404, detail="COURSE_NOT_FOUND")
    if item is None:
        raise HTTPException(status_code=409, detail="ALREADY_IN_CART")
    return {"line_id": item.id, "course_id": item.course_id, "price": str(money(item.price))}


@router.post("/items/bulk")
def add_items_bulk(body: CartBulkIn, user: str = Depends(current_user), cart: CartService = Depends(get_cart)):
    return cart.bulk_add(user, body.course_ids)


@router.put("/sync")
def sync_cart(body: CartSyncIn, user: str = Depends(current_user), cart: CartService = Depends(get_cart)):
    return cart.sync(user, body.course_ids)


@router.delete("/items/{course_id}")
def remove_item(course_id: str, user: str = Depends(current_user), cart: CartService = Depends(get_cart)):
    if not cart.remove(user, course_id):
        raise HTTPException(status_code=404, detail="NOT_IN_CART")
    return {"removed": course_id}


@router.delete("")
def clear_cart(user: str = Depends(current_user), cart: CartService = Depends(get_cart)):
    return {"removed": cart.clear(user)}


# ---------- Cupón en el carrito (preview) ----------
@router.post("/coupon")
def apply_coupon(
    body: CouponCodeIn,
    user: str = Depends(current_user),
    session: CartCouponSession = Depends(get_coupon_session),
):
    result = session.preview(user, body.code)
    if not result.valid:
        raise_for_reason(result.reason)
    return _preview_body(result)


@router.get("/coupon/validate")
def validate_cart_coupon(
    code: str = Query(..., min_length=1, max_length=50),
    user: str = Depends(current_user),
    session: CartCouponSession = Depends(get_coupon_session),
):
    result = session.check(user, code)
    if not result.valid:
        raise_for_reason(result.reason)
    return {"valid": True, **_preview_body(result)}


@router.get("/coupon")
def get_applied_coupon(user: str = Depends(current_user), session: CartCouponSession = Depends(get_coupon_session)):
    preview = session.get(user)
    if not preview:
        raise HTTPException(status_code=404, detail="NO_COUPON_APPLIED")
    return {"coupon": CouponPreviewOut(**preview).model_dump(mode="json")}


@router.delete("/coupon")
def remove_coupon(user: str = Depends(current_user), session: CartCouponSession = Depends(get_coupon_session)):
    removed = session.clear(user)
    if not removed:
        raise HTTPException(status_code=400, detail="NO_COUPON_APPLIED")
    return {
        "removed_coupon": {"code": removed["code"], "discount_amount": removed["discount_amount"]},
        "totals": session.totals(user),
    }


@router.get("/totals")
def cart_totals(user: str = Depends(current_user), session: CartCouponSession = Depends(get_coupon_session)):
    return session.totals(user)
