#shopcore/api/routers/coupons.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shopcore.api.dependencies import CLIENT_ERRORS, get_lock_service, http_error
from shopcore.api.routers.carts import cart_out, get_service as get_cart_service, load_cart
from shopcore.data.database import get_db
from shopcore.domain.schemas import CartOut, CouponApplyOut, CouponCodeIn, CouponCreate, EligibilityReport
from shopcore.services.coupon_engine import CouponEngine, coupon_summary
from shopcore.services.lock_service import LockService

router = APIRouter(tags=["coupons"])


def get_service(db: Session, lock_service: LockService) -> CouponEngine:
    return CouponEngine(db=db, lock_service=lock_service)


@router.post("/carts/{cart_id}/coupon/validate", response_model=EligibilityReport)
def validate_coupon(
    cart_id: int,
    payload: CouponCodeIn,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    """Raport bez efektow ubocznych - nieudana walidacja to nadal 200."""
    try:
        cart = load_cart(get_cart_service(db, lock_service), cart_id)
        return get_service(db, lock_service).validate(
            cart, payload.code, cart.site_id, payload.user_id or cart.user_id
        )
    except CLIENT_ERRORS as e:
        raise http_error(e)


@router.post("/carts/{cart_id}/coupon", response_model=CouponApplyOut)
def apply_coupon(
    cart_id: int,
    payload: CouponCodeIn,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    try:
        cart = load_cart(get_cart_service(db, lock_service), cart_id)
        result = get_service(db, lock_service).apply(
            cart, payload.code, cart.site_id, payload.user_id or cart.user_id
        )
    except CLIENT_ERRORS as e:
        raise http_error(e)
    return CouponApplyOut(cart=cart_out(result.cart), discount=result.discount, message=result.message)


@router.delete("/carts/{cart_id}/coupon", response_model=CartOut)
def remove_coupon(
    cart_id: int,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    try:
        cart = load_cart(get_cart_service(db, lock_service), cart_id)
        cart = get_service(db, lock_service).remove(cart)
    except CLIENT_ERRORS as e:
        raise http_error(e)
    return cart_out(cart)


@router.post("/coupons", status_code=201)
def create_coupon(
    payload: CouponCreate,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    try:
        coupon = get_service(db, lock_service).create_coupon(payload)
    except CLIENT_ERRORS as e:
        raise http_error(e)
    return {"id": coupon.id, "site_id": coupon.site_id, **coupon_summary(coupon)}
