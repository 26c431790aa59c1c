# shopcore/domain/snapshots.py
"""
Zamrozone kopie danych robione w konkretnym momencie (dodanie do koszyka, checkout).
Wszystkie typy sa niemutowalne - buduje je raz CheckoutFreezer / CartConsolidator.
"""
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from shopcore.domain.errors import DomainInvariantError, ValidationError
from shopcore.utils.money import ZERO, to_money


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @classmethod
    def parse(cls, data: Optional[Dict[str, Any]], what: str = "snapshot"):
        try:
            return cls.model_validate(data or {})
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e, f"Invalid {what}") from e

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ProductSnapshot(Snapshot):
    name: str
    sku: str
    image: Optional[str] = None
    weight: Optional[int] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None


class AddressSnapshot(Snapshot):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    full_name: str = Field(..., min_length=1, alias="fullName")
    street: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1, alias="postalCode")
    city: str = Field(..., min_length=1)
    country_code: str = Field(..., min_length=2, max_length=2, alias="countryCode")
    phone: Optional[str] = None


class CouponSnapshot(Snapshot):
    code: str
    type: str
    value: Decimal
    description: str

    def to_json(self) -> Dict[str, Any]:
        data = super().to_json()
        data["value"] = float(self.value)
        return data


class CustomerSnapshot(Snapshot):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    email: Optional[str] = None
    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    phone: Optional[str] = None
    is_guest: bool = Field(True, alias="isGuest")


class OrderTotals(BaseModel):
    """
    Sumy zamowienia. grand_total jest zawsze liczony z pozostalych pol
    (subtotal - discount + tax + shipping), nie da sie go ustawic niezaleznie.
    """

    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    discount: Decimal = ZERO
    tax_rate: Decimal
    tax_amount: Decimal
    shipping: Decimal = ZERO

    @model_validator(mode="after")
    def _check(self) -> "OrderTotals":
        for name in ("subtotal", "discount", "tax_amount", "shipping", "tax_rate"):
            if getattr(self, name) < 0:
                raise DomainInvariantError(f"Order {name} cannot be negative")
        if self.discount > self.subtotal:
            raise DomainInvariantError("Discount cannot exceed subtotal")
        return self

    @property
    def grand_total(self) -> Decimal:
        return to_money(self.subtotal - self.discount + self.tax_amount + self.shipping)

    @classmethod
    def compute(cls, subtotal: Decimal, discount: Decimal, tax_rate: Decimal, shipping: Decimal) -> "OrderTotals":
        subtotal = to_money(subtotal)
        discount = to_money(discount)
        tax_amount = to_money((subtotal - discount) * Decimal(tax_rate) / 100)
        return cls(
            subtotal=subtotal,
            discount=discount,
            tax_rate=Decimal(tax_rate),
            tax_amount=tax_amount,
            shipping=to_money(shipping),
        )


class FrozenOrderLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    variant_id: Optional[int]
    product_id: Optional[int]
    quantity: int = Field(..., ge=1)
    unit_price: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    savings: Optional[Decimal] = None
    custom_message: Optional[str] = None
    product: ProductSnapshot

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


class FrozenOrder(BaseModel):
    """Wszystko co checkout zamraza - potem juz tylko zapis do bazy."""

    model_config = ConfigDict(frozen=True)

    site_id: int
    user_id: Optional[int]
    currency: str
    locale: str
    customer_type: str
    totals: OrderTotals
    lines: Tuple[FrozenOrderLine, ...]
    shipping_address: AddressSnapshot
    billing_address: AddressSnapshot
    customer: CustomerSnapshot
    coupon_id: Optional[int] = None
    coupon: Optional[CouponSnapshot] = None
    customer_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
