# shopcore/data/models/variant.py
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, JSON
from sqlalchemy.orm import relationship

from shopcore.data.database import Base
from shopcore.domain.pricing import PriceTable
from shopcore.utils.settings import DEFAULT_LOW_STOCK_THRESHOLD


class ProductVariantModel(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    sku = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    image = Column(String(255), nullable=True)
    weight = Column(Integer, nullable=True)  # gramy
    attributes = Column(JSON, nullable=False, default=dict)

    # waluta -> segment -> {base, tiers}
    prices = Column(JSON, nullable=False, default=dict)

    stock = Column(Integer, nullable=False, default=0)
    safety_stock = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=DEFAULT_LOW_STOCK_THRESHOLD)

    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)

    product = relationship("ProductModel", back_populates="variants")

    @property
    def price_table(self) -> PriceTable:
        return PriceTable.parse(self.prices)

    @price_table.setter
    def price_table(self, table: PriceTable) -> None:
        self.prices = table.to_json()

    @property
    def is_sellable(self) -> bool:
        if self.product is not None and not self.product.is_active:
            return False
        return bool(self.is_active) and not self.is_deleted

    @property
    def full_name(self) -> str:
        if self.product is not None and self.product.name != self.name:
            return f"{self.product.name} - {self.name}"
        return self.name

    @property
    def final_image(self) -> str | None:
        if self.image:
            return self.image
        return self.product.image if self.product is not None else None
