# shopcore/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from shopcore.api.dependencies import CLIENT_ERRORS, get_lock_service, http_error
from shopcore.api.routers.carts import get_service as get_cart_service, load_cart
from shopcore.data.database import get_db
from shopcore.domain.schemas import AdminNotesIn, CheckoutIn, OrderOut, StatusChangeIn
from shopcore.services.checkout_freezer import CheckoutFreezer
from shopcore.services.lock_service import LockService
from shopcore.services.order_state_machine import OrderStateMachine

router = APIRouter(tags=["orders"])


def get_service(db: Session) -> OrderStateMachine:
    return OrderStateMachine(db)


@router.post("/carts/{cart_id}/checkout", response_model=OrderOut, status_code=201)
def checkout(
    cart_id: int,
    payload: CheckoutIn,
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    """
    Zamraza koszyk w zamowienie.
    Koszyk znika, stany magazynowe i licznik kuponu zmieniaja sie atomowo.
    """
    try:
        cart = load_cart(get_cart_service(db, lock_service), cart_id)
        return CheckoutFreezer(db, lock_service).freeze(
            cart,
            shipping_address=payload.shipping_address,
            billing_address=payload.billing_address,
            shipping_cost=payload.shipping_cost,
            tax_rate=payload.tax_rate,
            customer_message=payload.customer_message,
            customer_email=payload.customer_email,
            metadata=payload.metadata,
        )
    except CLIENT_ERRORS as e:
        raise http_error(e)


@router.get("/orders", response_model=List[OrderOut])
def list_user_orders(
    user_id: int = Query(...),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return get_service(db).list_user_orders(user_id, limit=limit)


@router.get("/orders/by-reference/{reference}", response_model=OrderOut)
def get_order_by_reference(reference: str, db: Session = Depends(get_db)):
    try:
        return get_service(db).get_by_reference(reference)
    except CLIENT_ERRORS as e:
        raise http_error(e)


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: int, db: Session = Depends(get_db)):
    try:
        return get_service(db).get_order(order_id)
    except CLIENT_ERRORS as e:
        raise http_error(e)


@router.post("/orders/{order_id}/status", response_model=OrderOut)
def change_status(order_id: int, payload: StatusChangeIn, db: Session = Depends(get_db)):
    try:
        return get_service(db).change_status(
            order_id,
            payload.status,
            actor_id=payload.actor_id,
            actor_type=payload.actor_type,
            reason=payload.reason,
            metadata=payload.metadata,
        )
    except CLIENT_ERRORS as e:
        raise http_error(e)


@router.put("/orders/{order_id}/admin-notes", response_model=OrderOut)
def update_admin_notes(order_id: int, payload: AdminNotesIn, db: Session = Depends(get_db)):
    try:
        return get_service(db).update_admin_notes(order_id, payload.notes)
    except CLIENT_ERRORS as e:
        raise http_error(e)
