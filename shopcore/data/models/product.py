# shopcore/data/models/product.py
from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship

from shopcore.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    image = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    variants = relationship("ProductVariantModel", back_populates="product")
