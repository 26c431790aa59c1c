# shopcore/domain/pricing.py
"""
Tabela cen wariantu i rozwiazywanie ceny jednostkowej.

Format przechowywany (JSON na wariancie):

    {"EUR": {"B2C": {"base": 10.0, "tiers": [{"min": 5, "price": 8.0}]},
             "B2B": {"base": 9.0}}}

Tabela jest walidowana przy budowie (waluta -> segment -> koszyk cen),
wiec zepsute dane katalogowe wychodza na granicy, a nie przy liczeniu ceny.
"""
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from shopcore.domain.errors import DomainInvariantError, ValidationError
from shopcore.utils.money import ZERO, to_money


class Segment(str, Enum):
    B2C = "B2C"
    B2B = "B2B"


class QuantityTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)

    @field_validator("price")
    @classmethod
    def _cents(cls, v: Decimal) -> Decimal:
        return to_money(v)

    @field_serializer("price", when_used="json")
    def _price_json(self, v: Decimal) -> float:
        return float(v)


class PriceBucket(BaseModel):
    """Cena bazowa + progi ilosciowe dla pary waluta/segment."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    base: Decimal = Field(..., ge=0)
    tiers: Tuple[QuantityTier, ...] = Field(
        default=(),
        validation_alias=AliasChoices("tiers", "quantity_tiers"),
    )

    @field_validator("base")
    @classmethod
    def _cents(cls, v: Decimal) -> Decimal:
        return to_money(v)

    @field_serializer("base", when_used="json")
    def _base_json(self, v: Decimal) -> float:
        return float(v)

    @model_validator(mode="after")
    def _check_tiers(self) -> "PriceBucket":
        previous_min = 0
        previous_price = self.base
        for tier in self.tiers:
            if tier.min <= previous_min:
                raise ValueError("quantity tiers must be sorted by strictly ascending min")
            if tier.price > previous_price:
                raise ValueError(
                    f"tier price {tier.price} for min {tier.min} is higher than the price below it"
                )
            previous_min = tier.min
            previous_price = tier.price
        return self


class PriceTable(RootModel[Dict[str, Dict[Segment, PriceBucket]]]):
    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _normalize_currencies(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {str(k).strip().upper(): v for k, v in data.items()}
        return data

    @field_validator("root")
    @classmethod
    def _check_currency_codes(cls, v: Dict[str, Dict[Segment, PriceBucket]]):
        for code in v:
            if len(code) != 3 or not code.isalpha():
                raise ValueError(f"invalid currency code {code!r}")
        return v

    @classmethod
    def parse(cls, data: Optional[Dict[str, Any]]) -> "PriceTable":
        """Buduje tabele z surowego JSON; bledy -> domenowy ValidationError z detalami pol."""
        try:
            return cls.model_validate(data or {})
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e, "Malformed price table") from e

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def currencies(self) -> Tuple[str, ...]:
        return tuple(self.root.keys())

    def bucket(self, currency: str, segment: Segment) -> Optional[PriceBucket]:
        return self.root.get(currency.upper(), {}).get(segment)

    def with_base_price(self, currency: str, segment: Segment, price) -> "PriceTable":
        data = self.to_json()
        bucket = data.setdefault(currency.upper(), {}).setdefault(Segment(segment).value, {"tiers": []})
        bucket["base"] = float(to_money(price))
        return PriceTable.parse(data)

    def with_tier(self, currency: str, segment: Segment, min_quantity: int, price) -> "PriceTable":
        data = self.to_json()
        bucket = data.get(currency.upper(), {}).get(Segment(segment).value)
        if bucket is None:
            raise ValidationError(
                f"No base price for {currency}/{Segment(segment).value}",
                code="price_not_available",
            )
        tiers = [t for t in bucket.get("tiers", []) if t["min"] != min_quantity]
        tiers.append({"min": min_quantity, "price": float(to_money(price))})
        bucket["tiers"] = sorted(tiers, key=lambda t: t["min"])
        return PriceTable.parse(data)


class PriceQuote(BaseModel):
    """Wynik rozwiazania ceny dla konkretnego kontekstu."""

    model_config = ConfigDict(frozen=True)

    currency: str
    requested_segment: Segment
    segment: Segment
    quantity: int
    base_price: Decimal
    unit_price: Decimal
    tier_min: Optional[int] = None

    @property
    def used_fallback(self) -> bool:
        return self.segment != self.requested_segment

    @property
    def savings(self) -> Decimal:
        return to_money((self.base_price - self.unit_price) * self.quantity)

    @property
    def discount_percentage(self) -> Decimal:
        full = self.base_price * self.quantity
        if full == 0:
            return ZERO
        return to_money(self.savings / full * 100)

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


class PriceResolver:
    """
    Czysta funkcja nad tabela cen: waluta -> segment (B2B spada na B2C) -> prog ilosciowy.
    Brak ceny to None ("nie da sie kupic w tym kontekscie"), nigdy 0.
    """

    def resolve_bucket(self, table: PriceTable, currency: str, segment: Segment) -> Optional[Tuple[Segment, PriceBucket]]:
        segment = Segment(segment)
        by_segment = table.root.get(currency.upper())
        if by_segment is None:
            return None

        bucket = by_segment.get(segment)
        if bucket is not None:
            return segment, bucket

        #tylko jeden poziom fallbacku: B2B -> B2C
        if segment is Segment.B2B and Segment.B2C in by_segment:
            return Segment.B2C, by_segment[Segment.B2C]

        return None

    def resolve_price(self, table: PriceTable, currency: str, segment: Segment, quantity: int = 1) -> Optional[PriceQuote]:
        if quantity < 1:
            raise DomainInvariantError(f"Cannot price quantity {quantity}")

        resolved = self.resolve_bucket(table, currency, segment)
        if resolved is None:
            return None
        used_segment, bucket = resolved

        unit_price = bucket.base
        tier_min = None
        if quantity > 1 and bucket.tiers:
            for tier in bucket.tiers:
                if tier.min <= quantity:
                    unit_price = tier.price
                    tier_min = tier.min

        return PriceQuote(
            currency=currency.upper(),
            requested_segment=Segment(segment),
            segment=used_segment,
            quantity=quantity,
            base_price=bucket.base,
            unit_price=unit_price,
            tier_min=tier_min,
        )

    def savings_for(self, table: PriceTable, currency: str, segment: Segment, quantity: int) -> Optional[Decimal]:
        """Oszczednosc na calej linii; None gdy brak ceny albo brak znizki progowej."""
        quote = self.resolve_price(table, currency, segment, quantity)
        if quote is None or quote.savings == ZERO:
            return None
        return quote.savings

    def price_data(self, table: PriceTable, currency: str, segment: Segment) -> Optional[Dict[str, Any]]:
        resolved = self.resolve_bucket(table, currency, segment)
        if resolved is None:
            return None
        used_segment, bucket = resolved
        return {
            "base": bucket.base,
            "currency": currency.upper(),
            "segment": used_segment.value,
            "has_tiers": bool(bucket.tiers),
            "tiers": [{"min": t.min, "price": t.price} for t in bucket.tiers],
        }
