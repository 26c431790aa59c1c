#shopcore/api/routers/carts.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from shopcore.api.dependencies import CLIENT_ERRORS, get_lock_service, http_error
from shopcore.data.database import get_db
from shopcore.data.models.cart import CartModel
from shopcore.domain.errors import CartExpiredError, NotFoundError
from shopcore.domain.schemas import (
    CartItemOut,
    CartOpenIn,
    CartOpenOut,
    CartOut,
    CartValidationReport,
    ItemIn,
    MergeIn,
    QuantityIn,
    SyncPricesOut,
)
from shopcore.services.cart_consolidator import CartConsolidator, cart_summary
from shopcore.services.lock_service import LockService

router = APIRouter(prefix="/carts", tags=["carts"])


def get_service(db: Session, lock_service: LockService) -> CartConsolidator:
    return CartConsolidator(db=db, lock_service=lock_service)


def cart_out(cart: CartModel) -> CartOut:
    return CartOut(
        id=cart.id,
        site_id=cart.site_id,
        user_id=cart.user_id,
        session_token=cart.session_token,
        currency=cart.currency,
        locale=cart.locale,
        customer_type=cart.customer_type,
        coupon_summary=cart.coupon_summary,
        items=[CartItemOut.model_validate(item) for item in cart.items],
        summary=cart_summary(cart),
    )


def load_cart(svc: CartConsolidator, cart_id: int) -> CartModel:
    cart = svc.get_cart_by_id(cart_id)
    if cart.is_expired():
        raise CartExpiredError("Your cart has expired, please start a new one", cart_id=cart.id)
    return cart


def _check_item_in_cart(cart: CartModel, item_id: int) -> None:
    if not any(item.id == item_id for item in cart.items):
        raise NotFoundError(f"Item {item_id} not found in cart {cart.id}", code="item_not_found")


@router.post("/", response_model=CartOpenOut)
def open_cart(
    payload: CartOpenIn,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    """Zwraca istniejacy koszyk wlasciciela albo tworzy nowy."""
    svc = get_service(db, lock_service)
    try:
        handle = svc.get_or_create_cart(
            site_id=payload.site_id,
            currency=payload.currency,
            locale=payload.locale,
            customer_type=payload.customer_type,
            user_id=payload.user_id,
            session_token=payload.session_token,
        )
    except CLIENT_ERRORS as e:
        raise http_error(e)
    return CartOpenOut(cart=cart_out(handle.cart), token=handle.token, is_new=handle.is_new)


@router.get("/current", response_model=CartOut)
def get_current_cart(
    site_id: int = Query(...),
    user_id: Optional[int] = Query(None),
    session_token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        cart = svc.get_valid_cart(site_id, user_id=user_id, session_token=session_token)
    except CLIENT_ERRORS as e:
        raise http_error(e)
    if cart is None:
        raise HTTPException(status_code=404, detail={"code": "cart_not_found", "message": "Cart not found"})
    return cart_out(cart)


@router.post("/merge", response_model=Optional[CartOut])
def merge_guest_cart(
    payload: MergeIn,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        cart = svc.merge_guest_cart(payload.session_token, payload.user_id, payload.site_id)
    except CLIENT_ERRORS as e:
        raise http_error(e)
    return cart_out(cart) if cart is not None else None


@router.get("/{cart_id}", response_model=CartOut)
def get_cart(
    cart_id: int,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        return cart_out(load_cart(svc, cart_id))
    except CLIENT_ERRORS as e:
        raise http_error(e)


@router.post("/{cart_id}/items", response_model=CartOut, status_code=201)
def add_item(
    cart_id: int,
    payload: ItemIn,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        cart = load_cart(svc, cart_id)
        svc.add_item(cart, payload.variant_id, payload.quantity, payload.message)
    except CLIENT_ERRORS as e:
        raise http_error(e)
    return cart_out(cart)


@router.patch("/{cart_id}/items/{item_id}", response_model=CartOut)
def update_item_quantity(
    cart_id: int,
    item_id: int,
    payload: QuantityIn,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        cart = load_cart(svc, cart_id)
        _check_item_in_cart(cart, item_id)
        svc.update_item_quantity(item_id, payload.quantity)
    except CLIENT_ERRORS as e:
        raise http_error(e)
    return cart_out(cart)


@router.delete("/{cart_id}/items/{item_id}", response_model=CartOut)
def remove_item(
    cart_id: int,
    item_id: int,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        cart = load_cart(svc, cart_id)
        _check_item_in_cart(cart, item_id)
        cart = svc.remove_item(item_id)
    except CLIENT_ERRORS as e:
        raise http_error(e)
    return cart_out(cart)


@router.delete("/{cart_id}/items", response_model=CartOut)
def clear_cart(
    cart_id: int,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        cart = svc.clear_cart(load_cart(svc, cart_id))
    except CLIENT_ERRORS as e:
        raise http_error(e)
    return cart_out(cart)


@router.get("/{cart_id}/validation", response_model=CartValidationReport)
def validate_cart(
    cart_id: int,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        return svc.validate_cart(load_cart(svc, cart_id))
    except CLIENT_ERRORS as e:
        raise http_error(e)


@router.post("/{cart_id}/sync-prices", response_model=SyncPricesOut)
def sync_prices(
    cart_id: int,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        cart = load_cart(svc, cart_id)
        changes = svc.sync_prices(cart)
    except CLIENT_ERRORS as e:
        raise http_error(e)
    return SyncPricesOut(cart=cart_out(cart), changes=changes)
