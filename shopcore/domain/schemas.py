# shopcore/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shopcore.domain.pricing import Segment
from shopcore.domain.snapshots import AddressSnapshot
from shopcore.domain.status import ActorType, OrderStatus
from shopcore.utils.money import to_money


# =====================================================
# KOSZYK
# =====================================================
class CartOpenIn(BaseModel):
    """Pobranie lub utworzenie koszyka (user albo token goscia)."""

    site_id: int = Field(..., gt=0)
    currency: str = Field("EUR", min_length=3, max_length=3)
    locale: str = Field("fr", min_length=2, max_length=10)
    customer_type: Segment = Segment.B2C
    user_id: Optional[int] = Field(None, gt=0)
    session_token: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def _single_owner(self) -> "CartOpenIn":
        if self.user_id is not None and self.session_token:
            raise ValueError("pass either user_id or session_token, not both")
        return self


class ItemIn(BaseModel):
    variant_id: int = Field(..., gt=0)
    quantity: int = 1
    message: Optional[str] = Field(None, max_length=500)


class QuantityIn(BaseModel):
    quantity: int


class MergeIn(BaseModel):
    site_id: int = Field(..., gt=0)
    session_token: str
    user_id: int = Field(..., gt=0)


class CartItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    variant_id: Optional[int]
    quantity: int
    price_at_add: Decimal
    savings_at_add: Optional[Decimal] = None
    line_total: Decimal
    custom_message: Optional[str] = None
    product_snapshot: Dict[str, Any]


class CartSummary(BaseModel):
    items_count: int
    lines_count: int
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    savings: Decimal
    currency: str
    is_empty: bool
    expires_at: Optional[datetime] = None


class CartOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    site_id: int
    user_id: Optional[int]
    session_token: Optional[str]
    currency: str
    locale: str
    customer_type: str
    coupon_summary: Optional[Dict[str, Any]] = None
    items: List[CartItemOut]
    summary: CartSummary


class CartOpenOut(BaseModel):
    cart: CartOut
    token: Optional[str]
    is_new: bool


class CartIssue(BaseModel):
    type: str
    item_ids: List[int]


class CartValidationReport(BaseModel):
    valid: bool
    errors: List[CartIssue] = Field(default_factory=list)
    warnings: List[CartIssue] = Field(default_factory=list)


class PriceChange(BaseModel):
    item_id: int
    old_price: Decimal
    new_price: Decimal
    difference: Decimal


class SyncPricesOut(BaseModel):
    cart: CartOut
    changes: List[PriceChange]


# =====================================================
# KUPONY
# =====================================================
class CouponCodeIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    user_id: Optional[int] = Field(None, gt=0)


class CouponCreate(BaseModel):
    """Dane nowego kuponu (admin). Kod normalizowany do UPPER."""

    site_id: int = Field(..., gt=0)
    code: str = Field(..., min_length=1, max_length=50)
    type: Literal["percentage", "fixed"] = "percentage"
    value: Decimal = Field(..., gt=0)
    minimum_amount: Optional[Decimal] = Field(None, ge=0)
    maximum_discount: Optional[Decimal] = Field(None, gt=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_usages: Optional[int] = Field(None, ge=1)
    max_usages_per_user: Optional[int] = Field(None, ge=1)
    allowed_customer_types: Optional[List[Segment]] = None
    public_message: Optional[str] = Field(None, max_length=255)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def _check(self) -> "CouponCreate":
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be later than valid_from")
        if self.type == "percentage" and self.value > 100:
            raise ValueError("percentage coupon value cannot exceed 100")
        return self


class EligibilityReport(BaseModel):
    """Raport walidacji kuponu; checks w kolejnosci sprawdzania, zatrzymany na pierwszym bledzie."""

    valid: bool = False
    code: str
    coupon: Optional[Dict[str, Any]] = None
    checks: Dict[str, bool] = Field(default_factory=dict)
    failed_check: Optional[str] = None
    discount: Decimal = Decimal("0.00")
    message: Optional[str] = None


class CouponApplyOut(BaseModel):
    cart: CartOut
    discount: Decimal
    message: str


# =====================================================
# ZAMOWIENIA
# =====================================================
class CheckoutIn(BaseModel):
    shipping_address: AddressSnapshot
    billing_address: Optional[AddressSnapshot] = None
    shipping_cost: Decimal = Field(Decimal("0.00"), ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    customer_email: Optional[str] = Field(None, max_length=255)
    customer_message: Optional[str] = Field(None, max_length=2000)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("shipping_cost")
    @classmethod
    def _cents(cls, v: Decimal) -> Decimal:
        return to_money(v)


class StatusChangeIn(BaseModel):
    status: OrderStatus
    actor_id: Optional[int] = None
    actor_type: ActorType = ActorType.SYSTEM
    reason: Optional[str] = Field(None, max_length=1000)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AdminNotesIn(BaseModel):
    notes: Optional[str] = Field(None, max_length=5000)


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    variant_id: Optional[int]
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    line_total: Decimal
    savings: Optional[Decimal] = None
    custom_message: Optional[str] = None
    product_snapshot: Dict[str, Any]


class StatusHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: Optional[str]
    to_status: str
    changed_by_id: Optional[int]
    changed_by_type: str
    reason: Optional[str]
    extra: Dict[str, Any] = Field(default_factory=dict, serialization_alias="metadata")
    created_at: datetime


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reference: str
    site_id: int
    user_id: Optional[int]
    status: str
    currency: str
    locale: str
    customer_type: str
    subtotal: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    grand_total: Decimal
    shipping_address: Dict[str, Any]
    billing_address: Dict[str, Any]
    customer_snapshot: Dict[str, Any]
    applied_coupon: Optional[Dict[str, Any]] = None
    customer_message: Optional[str] = None
    admin_notes: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict, serialization_alias="metadata")
    created_at: datetime
    validated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    items: List[OrderItemOut]
    status_history: List[StatusHistoryOut]
