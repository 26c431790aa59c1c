# shopcore/repos/variant_repo.py
from sqlalchemy import update
from sqlalchemy.orm import Session

from shopcore.data.models.variant import ProductVariantModel


class VariantRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_variant(self, variant_id: int) -> ProductVariantModel | None:
        return self.db.get(ProductVariantModel, variant_id)

    def decrement_if_available(self, variant_id: int, quantity: int) -> int:
        #atomowe compare-and-decrement, 0 wierszy = za malo towaru
        result = self.db.execute(
            update(ProductVariantModel)
            .where(
                ProductVariantModel.id == variant_id,
                ProductVariantModel.stock - ProductVariantModel.safety_stock >= quantity,
            )
            .values(stock=ProductVariantModel.stock - quantity)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def increment(self, variant_id: int, quantity: int) -> int:
        result = self.db.execute(
            update(ProductVariantModel)
            .where(ProductVariantModel.id == variant_id)
            .values(stock=ProductVariantModel.stock + quantity)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount
