#shopcore/data/models/cart.py
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, ForeignKey, String, DateTime, Numeric, JSON, CheckConstraint, event,
)
from sqlalchemy.orm import relationship

from shopcore.data.database import Base
from shopcore.domain.errors import DomainInvariantError
from shopcore.utils.clock import as_utc, utcnow
from shopcore.utils.money import ZERO, to_money


class CartModel(Base):
    __tablename__ = "carts"
    __table_args__ = (
        # dokladnie jeden wlasciciel: user XOR token goscia
        CheckConstraint(
            "(user_id IS NULL) <> (session_token IS NULL)",
            name="ck_cart_single_owner",
        ),
    )

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    session_token = Column(String(36), nullable=True, unique=True)

    currency = Column(String(3), nullable=False)
    locale = Column(String(10), nullable=False)
    customer_type = Column(String(3), nullable=False, default="B2C")

    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    coupon_summary = Column(JSON, nullable=True)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)

    version = Column(Integer, nullable=False, default=1)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    last_activity_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.id",
    )

    @property
    def is_guest(self) -> bool:
        return self.user_id is None and self.session_token is not None

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) < (now or utcnow())

    @property
    def subtotal(self) -> Decimal:
        return to_money(sum((item.line_total for item in self.items), ZERO))

    @property
    def items_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find_item_by_variant(self, variant_id: int):
        for item in self.items:
            if item.variant_id == variant_id:
                return item
        return None

    def assert_single_owner(self) -> None:
        if (self.user_id is None) == (self.session_token is None):
            raise DomainInvariantError(
                "Cart must be owned by exactly one of user or session token",
                cart_id=self.id,
            )


@event.listens_for(CartModel, "before_insert")
@event.listens_for(CartModel, "before_update")
def _check_cart_owner(mapper, connection, target: CartModel):
    target.assert_single_owner()
