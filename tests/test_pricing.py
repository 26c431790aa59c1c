from decimal import Decimal

import pytest

from shopcore.domain.errors import DomainInvariantError, ValidationError
from shopcore.domain.pricing import PriceResolver, PriceTable, Segment

PRICES = {
    "EUR": {
        "B2C": {"base": 10.0, "tiers": [{"min": 5, "price": 8.0}, {"min": 20, "price": 7.0}]},
        "B2B": {"base": 9.0, "tiers": [{"min": 10, "price": 6.5}]},
    },
}


@pytest.fixture
def resolver():
    return PriceResolver()


@pytest.fixture
def table():
    return PriceTable.parse(PRICES)


def test_single_unit_uses_base_price_even_with_tier_at_one(resolver):
    table = PriceTable.parse({"EUR": {"B2C": {"base": 10, "tiers": [{"min": 1, "price": 9}]}}})

    quote = resolver.resolve_price(table, "EUR", Segment.B2C, 1)

    assert quote.unit_price == Decimal("10.00")
    assert quote.tier_min is None


def test_tier_applies_from_its_minimum(resolver, table):
    assert resolver.resolve_price(table, "EUR", Segment.B2C, 4).unit_price == Decimal("10.00")
    assert resolver.resolve_price(table, "EUR", Segment.B2C, 5).unit_price == Decimal("8.00")
    assert resolver.resolve_price(table, "EUR", Segment.B2C, 19).unit_price == Decimal("8.00")
    assert resolver.resolve_price(table, "EUR", Segment.B2C, 20).unit_price == Decimal("7.00")


def test_quantity_five_gives_line_total_forty(resolver, table):
    quote = resolver.resolve_price(table, "EUR", Segment.B2C, 5)

    assert quote.line_total == Decimal("40.00")
    assert quote.savings == Decimal("10.00")
    assert quote.discount_percentage == Decimal("20.00")


def test_unit_price_never_increases_with_quantity(resolver, table):
    previous = None
    for quantity in range(1, 60):
        price = resolver.resolve_price(table, "EUR", Segment.B2C, quantity).unit_price
        if previous is not None:
            assert price <= previous
        previous = price


def test_b2b_falls_back_to_b2c(resolver):
    table = PriceTable.parse({"EUR": {"B2C": {"base": 12.5}}})

    quote = resolver.resolve_price(table, "EUR", Segment.B2B, 1)

    assert quote.unit_price == Decimal("12.50")
    assert quote.segment is Segment.B2C
    assert quote.used_fallback


def test_b2c_does_not_fall_back_to_b2b(resolver):
    table = PriceTable.parse({"EUR": {"B2B": {"base": 12.5}}})

    assert resolver.resolve_price(table, "EUR", Segment.B2C, 1) is None


@pytest.mark.parametrize(
    "prices",
    [
        {"EUR": {}},
        {"USD": {"B2B": {"base": 9.0}, "B2C": {"base": 10.0}}},
    ],
)
def test_b2b_without_any_price_in_currency_is_no_price(resolver, prices):
    table = PriceTable.parse(prices)

    assert resolver.resolve_price(table, "EUR", Segment.B2B, 1) is None
    assert resolver.price_data(table, "EUR", Segment.B2B) is None


def test_missing_currency_is_no_price_not_zero(resolver, table):
    assert resolver.resolve_price(table, "USD", Segment.B2C, 3) is None
    assert resolver.price_data(table, "USD", Segment.B2C) is None


def test_zero_quantity_is_a_caller_bug(resolver, table):
    with pytest.raises(DomainInvariantError):
        resolver.resolve_price(table, "EUR", Segment.B2C, 0)


def test_legacy_quantity_tiers_key_is_accepted(resolver):
    table = PriceTable.parse({"eur": {"B2C": {"base": 10, "quantity_tiers": [{"min": 3, "price": 9}]}}})

    assert table.currencies() == ("EUR",)
    assert resolver.resolve_price(table, "EUR", Segment.B2C, 3).unit_price == Decimal("9.00")


@pytest.mark.parametrize(
    "tiers",
    [
        [{"min": 5, "price": 8}, {"min": 5, "price": 7}],
        [{"min": 10, "price": 8}, {"min": 5, "price": 9}],
        [{"min": 5, "price": 11}],
    ],
)
def test_malformed_tiers_are_rejected(tiers):
    with pytest.raises(ValidationError) as exc:
        PriceTable.parse({"EUR": {"B2C": {"base": 10, "tiers": tiers}}})

    assert exc.value.errors


def test_with_tier_keeps_tiers_sorted(resolver):
    table = PriceTable.parse({"EUR": {"B2C": {"base": 10}}})

    table = table.with_tier("EUR", Segment.B2C, 10, 7).with_tier("EUR", Segment.B2C, 5, 8)

    assert [t.min for t in table.bucket("EUR", Segment.B2C).tiers] == [5, 10]
    assert resolver.savings_for(table, "EUR", Segment.B2C, 10) == Decimal("30.00")
    assert resolver.savings_for(table, "EUR", Segment.B2C, 1) is None


def test_with_tier_without_base_price_fails():
    table = PriceTable.parse({})

    with pytest.raises(ValidationError):
        table.with_tier("EUR", Segment.B2C, 5, 8)

    table = table.with_base_price("EUR", Segment.B2C, 10)
    assert table.bucket("EUR", Segment.B2C).base == Decimal("10.00")


def test_price_data_summary(resolver, table):
    data = resolver.price_data(table, "EUR", Segment.B2B)

    assert data["base"] == Decimal("9.00")
    assert data["segment"] == "B2B"
    assert data["has_tiers"] is True
