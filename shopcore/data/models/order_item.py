from sqlalchemy import Column, Integer, ForeignKey, Numeric, String, JSON, event, inspect
from sqlalchemy.orm import relationship

from shopcore.data.database import Base
from shopcore.domain.errors import DomainInvariantError
from shopcore.domain.snapshots import ProductSnapshot
from shopcore.utils.money import to_money

# referencje do katalogu moga zniknac (usuniety produkt), reszta jest zamrozona
NULLABLE_REFERENCES = frozenset({"variant_id", "product_id"})


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False)
    savings = Column(Numeric(12, 2), nullable=True)
    custom_message = Column(String(500), nullable=True)
    product_snapshot = Column(JSON, nullable=False)

    order = relationship("OrderModel", back_populates="items")

    @property
    def line_total(self):
        return to_money(self.unit_price * self.quantity)

    @property
    def snapshot(self) -> ProductSnapshot:
        return ProductSnapshot.parse(self.product_snapshot, "product snapshot")


@event.listens_for(OrderItemModel, "before_update")
def _guard_frozen_item(mapper, connection, target: OrderItemModel):
    state = inspect(target)
    for attr in mapper.column_attrs:
        history = state.attrs[attr.key].history
        if not history.has_changes():
            continue
        if attr.key in NULLABLE_REFERENCES and getattr(target, attr.key) is None:
            continue
        raise DomainInvariantError(
            f"Order item field '{attr.key}' is frozen after checkout",
            order_item_id=target.id,
        )
