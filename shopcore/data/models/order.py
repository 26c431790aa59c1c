from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, JSON, Text, event, inspect
from sqlalchemy.orm import relationship

from shopcore.data.database import Base
from shopcore.domain.errors import DomainInvariantError
from shopcore.domain.status import OrderStatus

# po utworzeniu zmieniaja sie tylko status, notatki admina i znaczniki czasu kamieni milowych
MUTABLE_ORDER_FIELDS = frozenset(
    {"status", "admin_notes", "validated_at", "cancelled_at", "delivered_at", "updated_at"}
)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    reference = Column(String(20), nullable=False, unique=True)
    site_id = Column(Integer, nullable=False, index=True)
    # null = zamowienie goscia, tozsamosc w customer_snapshot
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    currency = Column(String(3), nullable=False)
    locale = Column(String(10), nullable=False)
    customer_type = Column(String(3), nullable=False)

    subtotal = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False)
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)
    grand_total = Column(Numeric(12, 2), nullable=False)

    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)
    customer_snapshot = Column(JSON, nullable=False)
    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True, index=True)
    applied_coupon = Column(JSON, nullable=True)

    customer_message = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    extra = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    status_history = relationship(
        "OrderStatusHistoryModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistoryModel.id",
    )

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_guest_order(self) -> bool:
        return self.user_id is None


@event.listens_for(OrderModel, "before_update")
def _guard_frozen_order(mapper, connection, target: OrderModel):
    state = inspect(target)
    for attr in mapper.column_attrs:
        if attr.key in MUTABLE_ORDER_FIELDS:
            continue
        if state.attrs[attr.key].history.has_changes():
            raise DomainInvariantError(
                f"Order field '{attr.key}' is frozen after checkout",
                order_id=target.id,
            )
