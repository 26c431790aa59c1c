from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, Numeric, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from shopcore.data.database import Base
from shopcore.domain.snapshots import ProductSnapshot
from shopcore.utils.money import to_money


class CartItemModel(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("cart_id", "variant_id", name="u_cart_variant"),)

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    # referencje best-effort, snapshot jest zrodlem prawdy do wyswietlania
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    quantity = Column(Integer, nullable=False)
    price_at_add = Column(Numeric(12, 2), nullable=False)
    savings_at_add = Column(Numeric(12, 2), nullable=True)
    custom_message = Column(String(500), nullable=True)
    product_snapshot = Column(JSON, nullable=False, default=dict)
    added_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    cart = relationship("CartModel", back_populates="items")

    @property
    def line_total(self):
        return to_money(self.price_at_add * self.quantity)

    @property
    def snapshot(self) -> ProductSnapshot:
        return ProductSnapshot.parse(self.product_snapshot, "product snapshot")
