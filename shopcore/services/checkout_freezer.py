# shopcore/services/checkout_freezer.py
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from shopcore.data.models.cart import CartModel
from shopcore.data.models.order import OrderModel
from shopcore.data.models.order_item import OrderItemModel
from shopcore.data.models.order_status_history import OrderStatusHistoryModel
from shopcore.domain.errors import (
    ConflictError,
    CouponIneligibleError,
    InsufficientStockError,
)
from shopcore.domain.snapshots import (
    AddressSnapshot,
    CouponSnapshot,
    CustomerSnapshot,
    FrozenOrder,
    FrozenOrderLine,
    OrderTotals,
)
from shopcore.domain.status import ActorType, OrderStatus
from shopcore.repos.cart_repo import CartRepo
from shopcore.repos.coupon_repo import CouponRepo
from shopcore.repos.order_repo import OrderRepo
from shopcore.repos.user_repo import UserRepo
from shopcore.repos.variant_repo import VariantRepo
from shopcore.services.coupon_engine import CouponEngine
from shopcore.services.lock_service import LockService, cart_lock_key
from shopcore.services.stock_ledger import StockLedger
from shopcore.utils.clock import utcnow
from shopcore.utils.logging import get_logger
from shopcore.utils.money import ZERO, to_money
from shopcore.utils.settings import DEFAULT_TAX_RATE

logger = get_logger(__name__)


def allocate_tax(line_totals: List[Decimal], tax_amount: Decimal) -> List[Decimal]:
    """Dzieli podatek zamowienia proporcjonalnie na linie; reszta z zaokraglen idzie na ostatnia."""
    total = sum(line_totals, ZERO)
    if not line_totals or total == 0:
        return [ZERO for _ in line_totals]

    shares = [to_money(tax_amount * line / total) for line in line_totals[:-1]]
    shares.append(to_money(tax_amount - sum(shares, ZERO)))
    return shares


class CheckoutFreezer:
    """
    Zamraza koszyk w zamowienie. Wszystko albo nic:
    zdjecie stanow, zamowienie, licznik kuponu i usuniecie koszyka w jednej transakcji.
    Ceny biore z koszyka (price_at_add), nie przeliczam ich ponownie.
    """

    def __init__(self, db: Session, lock_service: LockService, coupon_engine: CouponEngine | None = None):
        self.db = db
        self.cart_repo = CartRepo(db)
        self.orders = OrderRepo(db)
        self.coupons = CouponRepo(db)
        self.users = UserRepo(db)
        self.variants = VariantRepo(db)
        self.stock = StockLedger(db)
        self.lock_service = lock_service
        self.coupon_engine = coupon_engine or CouponEngine(db, lock_service)

    def freeze(
        self,
        cart: CartModel,
        shipping_address: AddressSnapshot | Dict[str, Any],
        billing_address: AddressSnapshot | Dict[str, Any] | None = None,
        shipping_cost: Decimal = ZERO,
        tax_rate: Decimal | None = None,
        customer_message: str | None = None,
        customer_email: str | None = None,
        metadata: Dict[str, Any] | None = None,
    ) -> OrderModel:
        shipping = self._address(shipping_address, "shipping address")
        billing = self._address(billing_address, "billing address") if billing_address is not None else shipping
        tax_rate = DEFAULT_TAX_RATE if tax_rate is None else Decimal(tax_rate)

        with self.lock_service.hold(cart_lock_key(cart.id)):
            try:
                frozen = self._build(cart, shipping, billing, to_money(shipping_cost), tax_rate,
                                     customer_message, customer_email, metadata or {})

                # sekcja krytyczna: atomowe zdjecie stanow, kazdy konflikt cofa cala transakcje
                for line in frozen.lines:
                    if not self.stock.try_reserve(line.variant_id, line.quantity):
                        raise InsufficientStockError(
                            f"Insufficient stock for {line.product.sku}",
                            variant_id=line.variant_id,
                            requested=line.quantity,
                        )

                if frozen.coupon_id is not None:
                    self.coupon_engine.increment_usage(frozen.coupon_id)

                order = self._persist(frozen)
                self.cart_repo.delete_cart(cart)
                self.orders.commit()
            except Exception as e:
                logger.warning(f"Checkout of cart {cart.id} aborted: {e}")
                self.orders.rollback()
                raise

        logger.info(
            f"Order {order.reference} created from cart {cart.id}: "
            f"{len(order.items)} lines, grand total {order.grand_total} {order.currency}"
        )
        return order

    def _build(
        self,
        cart: CartModel,
        shipping: AddressSnapshot,
        billing: AddressSnapshot,
        shipping_cost: Decimal,
        tax_rate: Decimal,
        customer_message: str | None,
        customer_email: str | None,
        metadata: Dict[str, Any],
    ) -> FrozenOrder:
        if cart.is_empty:
            raise ConflictError("Cannot check out an empty cart", code="empty_cart", cart_id=cart.id)

        # ostatnia bramka: stan mogl sie zmienic od dodania do koszyka
        for item in cart.items:
            variant = self.variants.get_variant(item.variant_id) if item.variant_id is not None else None
            if variant is None or not variant.is_sellable:
                raise ConflictError(
                    f"{item.snapshot.name} is no longer available",
                    code="variant_unavailable",
                    item_id=item.id,
                )
            if not self.stock.is_available(variant, item.quantity):
                raise InsufficientStockError(
                    f"Insufficient stock for {variant.sku}: available {self.stock.available(variant)}, requested {item.quantity}",
                    variant_id=variant.id,
                    available=self.stock.available(variant),
                    requested=item.quantity,
                )

        subtotal = cart.subtotal
        discount = ZERO
        coupon_snapshot = None
        if cart.coupon_id is not None:
            coupon = self.coupons.get_coupon(cart.coupon_id)
            if coupon is None:
                raise ConflictError("The applied coupon no longer exists", code="coupon_not_found")
            report = self.coupon_engine.validate(cart, coupon.code, cart.site_id, cart.user_id)
            if not report.valid:
                raise CouponIneligibleError(report.message, check=report.failed_check, coupon=coupon.code)
            discount = report.discount
            coupon_snapshot = CouponSnapshot(
                code=coupon.code,
                type=coupon.type,
                value=to_money(coupon.value),
                description=coupon.description,
            )

        totals = OrderTotals.compute(subtotal, discount, tax_rate, shipping_cost)
        tax_shares = allocate_tax([item.line_total for item in cart.items], totals.tax_amount)

        lines = tuple(
            FrozenOrderLine(
                variant_id=item.variant_id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=to_money(item.price_at_add),
                tax_rate=tax_rate,
                tax_amount=tax_share,
                savings=to_money(item.savings_at_add) if item.savings_at_add is not None else None,
                custom_message=item.custom_message,
                product=item.snapshot,
            )
            for item, tax_share in zip(cart.items, tax_shares)
        )

        return FrozenOrder(
            site_id=cart.site_id,
            user_id=cart.user_id,
            currency=cart.currency,
            locale=cart.locale,
            customer_type=cart.customer_type,
            totals=totals,
            lines=lines,
            shipping_address=shipping,
            billing_address=billing,
            customer=self._customer_snapshot(cart, billing, customer_email),
            coupon_id=cart.coupon_id if coupon_snapshot is not None else None,
            coupon=coupon_snapshot,
            customer_message=customer_message,
            metadata=metadata,
        )

    def _persist(self, frozen: FrozenOrder) -> OrderModel:
        now = utcnow()
        totals = frozen.totals
        order = OrderModel(
            reference=self.orders.next_reference(now),
            site_id=frozen.site_id,
            user_id=frozen.user_id,
            status=OrderStatus.PENDING.value,
            currency=frozen.currency,
            locale=frozen.locale,
            customer_type=frozen.customer_type,
            subtotal=totals.subtotal,
            discount_amount=totals.discount,
            tax_rate=totals.tax_rate,
            tax_amount=totals.tax_amount,
            shipping_cost=totals.shipping,
            grand_total=totals.grand_total,
            shipping_address=frozen.shipping_address.to_json(),
            billing_address=frozen.billing_address.to_json(),
            customer_snapshot=frozen.customer.to_json(),
            coupon_id=frozen.coupon_id,
            applied_coupon=frozen.coupon.to_json() if frozen.coupon is not None else None,
            customer_message=frozen.customer_message,
            extra=dict(frozen.metadata),
            created_at=now,
        )
        for line in frozen.lines:
            order.items.append(
                OrderItemModel(
                    variant_id=line.variant_id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    tax_rate=line.tax_rate,
                    tax_amount=line.tax_amount,
                    savings=line.savings,
                    custom_message=line.custom_message,
                    product_snapshot=line.product.to_json(),
                )
            )
        order.status_history.append(
            OrderStatusHistoryModel(
                from_status=None,
                to_status=OrderStatus.PENDING.value,
                changed_by_id=frozen.user_id,
                changed_by_type=(ActorType.CUSTOMER if frozen.user_id is not None else ActorType.SYSTEM).value,
                reason="Order created from cart",
                extra={},
                created_at=now,
            )
        )
        return self.orders.create_order(order)

    def _customer_snapshot(self, cart: CartModel, billing: AddressSnapshot, email: str | None) -> CustomerSnapshot:
        user = self.users.get_user(cart.user_id) if cart.user_id is not None else None
        if user is not None:
            return CustomerSnapshot(
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                phone=user.phone,
                is_guest=False,
            )

        # gosc: tozsamosc tylko z formularza checkoutu
        first, _, last = billing.full_name.partition(" ")
        return CustomerSnapshot(email=email, first_name=first, last_name=last, phone=billing.phone, is_guest=True)

    @staticmethod
    def _address(data: AddressSnapshot | Dict[str, Any], what: str) -> AddressSnapshot:
        if isinstance(data, AddressSnapshot):
            return data
        return AddressSnapshot.parse(data, what)
