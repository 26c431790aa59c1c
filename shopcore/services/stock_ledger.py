# shopcore/services/stock_ledger.py
from enum import Enum

from sqlalchemy.orm import Session

from shopcore.data.models.variant import ProductVariantModel
from shopcore.repos.variant_repo import VariantRepo
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


class StockStatus(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    IN_STOCK = "in_stock"


class StockLedger:
    """
    Stan magazynowy wariantu: dostepne = max(0, stock - safety_stock).
    Odpowiedzi typu "brak" to wartosci zwracane (False / 0), nie wyjatki.

    decrement/increment dzialaja na obiekcie w sesji (floor 0, bez ochrony przed
    oversellingiem) i sa tylko prosta forma kontraktu ledgera - zaden przeplyw
    produkcyjny ich nie wola. Checkout uzywa try_reserve (atomowe compare-and-decrement
    w bazie), anulowanie uzywa release (atomowy increment w bazie).
    """

    def __init__(self, db: Session):
        self.repo = VariantRepo(db)

    def available(self, variant: ProductVariantModel) -> int:
        return max(0, variant.stock - variant.safety_stock)

    def is_available(self, variant: ProductVariantModel, quantity: int) -> bool:
        return self.available(variant) >= quantity

    def status(self, variant: ProductVariantModel) -> StockStatus:
        available = self.available(variant)
        if available == 0:
            return StockStatus.OUT_OF_STOCK
        if available <= variant.low_stock_threshold:
            return StockStatus.LOW_STOCK
        return StockStatus.IN_STOCK

    def decrement(self, variant: ProductVariantModel, quantity: int) -> None:
        # nie pilnuje oversellingu - wolajacy sprawdza is_available wczesniej
        variant.stock = max(0, variant.stock - quantity)

    def increment(self, variant: ProductVariantModel, quantity: int) -> None:
        variant.stock = variant.stock + quantity

    def try_reserve(self, variant_id: int, quantity: int) -> bool:
        reserved = self.repo.decrement_if_available(variant_id, quantity) == 1
        if not reserved:
            logger.warning(f"Stock reservation of {quantity} for variant {variant_id} rejected")
        return reserved

    def release(self, variant_id: int, quantity: int) -> bool:
        """Zwraca towar (anulowanie). False gdy wariant juz nie istnieje."""
        restored = self.repo.increment(variant_id, quantity) == 1
        if restored:
            logger.info(f"Restored {quantity} units to variant {variant_id}")
        return restored
