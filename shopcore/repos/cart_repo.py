# shopcore/repos/cart_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from shopcore.data.models.cart import CartModel
from shopcore.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, cart_id: int) -> CartModel | None:
        return self.db.get(CartModel, cart_id)

    def find_by_user(self, site_id: int, user_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .where(CartModel.site_id == site_id, CartModel.user_id == user_id)
            .order_by(CartModel.id)
        ).scalars().first()

    def find_by_session_token(self, site_id: int, session_token: str) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(
                CartModel.site_id == site_id,
                CartModel.session_token == session_token,
            )
        ).scalar_one_or_none()

    def find_for_owner(self, site_id: int, user_id: int | None, session_token: str | None) -> CartModel | None:
        if user_id is not None:
            return self.find_by_user(site_id, user_id)
        if session_token:
            return self.find_by_session_token(site_id, session_token)
        return None

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def delete_cart(self, cart: CartModel) -> None:
        self.db.delete(cart)
        self.db.flush()

    def get_cart_item(self, item_id: int) -> CartItemModel | None:
        return self.db.get(CartItemModel, item_id)

    def delete_cart_item(self, item: CartItemModel) -> None:
        cart = item.cart
        if cart is not None and item in cart.items:
            cart.items.remove(item)
        self.db.delete(item)
        self.db.flush()

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        #optimistic locking: update ... where id = :id and version = :old
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def find_expired(self, now: datetime) -> List[CartModel]:
        return list(
            self.db.execute(select(CartModel).where(CartModel.expires_at < now)).scalars().all()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
