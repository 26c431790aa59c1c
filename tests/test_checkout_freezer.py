from decimal import Decimal

import pytest

from shopcore.domain.errors import ConflictError, CouponIneligibleError, InsufficientStockError, ValidationError
from shopcore.domain.status import OrderStatus
from shopcore.repos.cart_repo import CartRepo
from shopcore.services.checkout_freezer import allocate_tax


def test_allocate_tax_sums_to_order_tax():
    shares = allocate_tax([Decimal("10.00"), Decimal("10.00"), Decimal("10.00")], Decimal("1.00"))

    assert shares == [Decimal("0.33"), Decimal("0.33"), Decimal("0.34")]
    assert sum(shares) == Decimal("1.00")


def test_freeze_creates_pending_order(db, consolidator, freezer, user, make_variant, address):
    mug, bowl = make_variant(stock=10), make_variant(stock=10)
    cart = consolidator.get_or_create_cart(1, "EUR", "fr", user_id=user.id).cart
    consolidator.add_item(cart, mug.id, 5)
    consolidator.add_item(cart, bowl.id, 1, message="fragile")
    cart_id = cart.id

    order = freezer.freeze(cart, address, shipping_cost=Decimal("4.90"), customer_message="Leave at the door")

    assert order.order_status is OrderStatus.PENDING
    assert order.reference.count("-") == 2
    assert order.subtotal == Decimal("50.00")
    assert order.tax_rate == Decimal("20.0")
    assert order.tax_amount == Decimal("10.00")
    assert order.grand_total == order.subtotal - order.discount_amount + order.tax_amount + order.shipping_cost
    assert order.grand_total == Decimal("64.90")
    assert sum(item.tax_amount for item in order.items) == order.tax_amount
    assert [item.unit_price for item in order.items] == [Decimal("8.00"), Decimal("10.00")]
    assert order.items[1].custom_message == "fragile"
    assert order.shipping_address["fullName"] == "Anna Nowak"
    assert order.billing_address == order.shipping_address
    assert order.customer_snapshot["email"] == "anna@example.com"
    assert order.customer_snapshot["isGuest"] is False
    assert order.customer_message == "Leave at the door"

    history = order.status_history
    assert len(history) == 1
    assert history[0].from_status is None
    assert history[0].to_status == "pending"

    db.refresh(mug)
    db.refresh(bowl)
    assert (mug.stock, bowl.stock) == (5, 9)
    assert CartRepo(db).get_cart(cart_id) is None


def test_guest_order_keeps_identity_in_snapshot(consolidator, freezer, guest_cart, variant, address):
    consolidator.add_item(guest_cart, variant.id, 1)

    order = freezer.freeze(guest_cart, address, customer_email="guest@example.com")

    assert order.user_id is None
    assert order.is_guest_order
    assert order.customer_snapshot["email"] == "guest@example.com"
    assert order.customer_snapshot["firstName"] == "Anna"
    assert order.customer_snapshot["isGuest"] is True


def test_references_are_sequential(consolidator, freezer, variant, address):
    refs = []
    for _ in range(2):
        cart = consolidator.get_or_create_cart(1, "EUR", "fr").cart
        consolidator.add_item(cart, variant.id, 1)
        refs.append(freezer.freeze(cart, address).reference)

    assert refs[0][:7] == refs[1][:7]
    assert int(refs[1][-5:]) == int(refs[0][-5:]) + 1


def test_empty_cart_cannot_be_frozen(freezer, guest_cart, address):
    with pytest.raises(ConflictError) as exc:
        freezer.freeze(guest_cart, address)

    assert exc.value.code == "empty_cart"


def test_invalid_address(consolidator, freezer, guest_cart, variant):
    consolidator.add_item(guest_cart, variant.id, 1)

    with pytest.raises(ValidationError):
        freezer.freeze(guest_cart, {"fullName": "Anna"})


def test_stock_recheck_fails_and_nothing_changes(db, consolidator, freezer, guest_cart, make_variant, address):
    variant = make_variant(stock=5)
    consolidator.add_item(guest_cart, variant.id, 2)
    variant.stock = 1
    db.commit()

    with pytest.raises(InsufficientStockError):
        freezer.freeze(guest_cart, address)

    db.refresh(variant)
    assert variant.stock == 1
    assert CartRepo(db).get_cart(guest_cart.id) is not None


def test_failed_reservation_rolls_back_earlier_lines(db, consolidator, freezer, guest_cart, make_variant, address, monkeypatch):
    first, second = make_variant(stock=10), make_variant(stock=10)
    consolidator.add_item(guest_cart, first.id, 3)
    consolidator.add_item(guest_cart, second.id, 3)
    second.stock = 1
    db.commit()
    # stan zmienia sie miedzy sprawdzeniem a rezerwacja
    monkeypatch.setattr(freezer.stock, "is_available", lambda variant, quantity: True)

    with pytest.raises(InsufficientStockError):
        freezer.freeze(guest_cart, address)

    db.refresh(first)
    db.refresh(second)
    assert (first.stock, second.stock) == (10, 1)


def test_coupon_usage_counted_once_at_freeze(db, consolidator, coupon_engine, freezer, guest_cart, variant, make_coupon, address):
    coupon = make_coupon(code="FIFTY", type="fixed", value="50")
    consolidator.add_item(guest_cart, variant.id, 3)
    coupon_engine.apply(guest_cart, "FIFTY", 1)

    order = freezer.freeze(guest_cart, address)

    assert order.discount_amount == Decimal("30.00")
    assert order.tax_amount == Decimal("0.00")
    assert order.grand_total == Decimal("0.00")
    assert order.applied_coupon["code"] == "FIFTY"
    assert order.coupon_id == coupon.id
    db.refresh(coupon)
    assert coupon.usage_count == 1


def test_exhausted_coupon_blocks_freeze(db, consolidator, coupon_engine, freezer, guest_cart, variant, make_coupon, address):
    coupon = make_coupon(code="LAST", max_usages=1)
    consolidator.add_item(guest_cart, variant.id, 1)
    coupon_engine.apply(guest_cart, "LAST", 1)
    coupon.usage_count = 1
    db.commit()

    with pytest.raises(CouponIneligibleError):
        freezer.freeze(guest_cart, address)

    db.refresh(variant)
    assert variant.stock == 100
