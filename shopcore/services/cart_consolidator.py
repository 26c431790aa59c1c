# shopcore/services/cart_consolidator.py
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, NamedTuple

from sqlalchemy.orm import Session

from shopcore.data.models.cart import CartModel
from shopcore.data.models.cart_item import CartItemModel
from shopcore.data.models.variant import ProductVariantModel
from shopcore.domain.errors import (
    CartExpiredError,
    ConflictError,
    DomainInvariantError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from shopcore.domain.pricing import PriceQuote, PriceResolver, Segment
from shopcore.domain.schemas import CartIssue, CartSummary, CartValidationReport, PriceChange
from shopcore.domain.snapshots import ProductSnapshot
from shopcore.repos.cart_repo import CartRepo
from shopcore.repos.variant_repo import VariantRepo
from shopcore.services.coupon_engine import CouponEngine
from shopcore.services.lock_service import LockService, cart_lock_key, merge_lock_key
from shopcore.services.stock_ledger import StockLedger
from shopcore.utils.clock import utcnow
from shopcore.utils.logging import get_logger
from shopcore.utils.money import ZERO, to_money
from shopcore.utils.settings import (
    GUEST_CART_TTL_DAYS,
    MAX_ITEM_QUANTITY,
    PRICE_CHANGE_THRESHOLD_PERCENT,
    USER_CART_TTL_DAYS,
)

logger = get_logger(__name__)


class CartHandle(NamedTuple):
    cart: CartModel
    token: str | None
    is_new: bool


def cart_summary(cart: CartModel) -> CartSummary:
    subtotal = cart.subtotal
    discount = min(to_money(cart.discount_amount or ZERO), subtotal)
    savings = sum((to_money(i.savings_at_add) for i in cart.items if i.savings_at_add is not None), ZERO)
    return CartSummary(
        items_count=cart.items_count,
        lines_count=len(cart.items),
        subtotal=subtotal,
        discount=discount,
        total=to_money(max(ZERO, subtotal - discount)),
        savings=to_money(savings),
        currency=cart.currency,
        is_empty=cart.is_empty,
        expires_at=cart.expires_at,
    )


class CartConsolidator:
    """
    Use case'y koszyka:
    commands (get_or_create, add, update, remove, clear, merge, sync) modyfikuja stan,
    query (get, validate, summary) tylko odczyt.

    Wspolbieznosc:
    - redis lock na koszyk (cart:{id}:lock) na czas mutacji
    - optimistic locking na kolumnie version
    - merge serializowany per user (user:{id}:cart-merge)
    """

    def __init__(
        self,
        db: Session,
        lock_service: LockService,
        price_resolver: PriceResolver | None = None,
        coupon_engine: CouponEngine | None = None,
        price_change_threshold: Decimal = PRICE_CHANGE_THRESHOLD_PERCENT,
    ):
        self.repo = CartRepo(db)
        self.variants = VariantRepo(db)
        self.stock = StockLedger(db)
        self.lock_service = lock_service
        self.price_resolver = price_resolver or PriceResolver()
        self.coupon_engine = coupon_engine or CouponEngine(db, lock_service)
        self.price_change_threshold = Decimal(price_change_threshold)

    # =====================================================
    # QUERY
    # =====================================================
    def get_cart(self, site_id: int, user_id: int | None = None, session_token: str | None = None) -> CartModel | None:
        return self.repo.find_for_owner(site_id, user_id, session_token)

    def get_valid_cart(self, site_id: int, user_id: int | None = None, session_token: str | None = None) -> CartModel | None:
        cart = self.get_cart(site_id, user_id, session_token)
        if cart is not None and cart.is_expired():
            raise CartExpiredError("Your cart has expired, please start a new one", cart_id=cart.id)
        return cart

    def get_cart_by_id(self, cart_id: int) -> CartModel:
        cart = self.repo.get_cart(cart_id)
        if cart is None:
            raise NotFoundError(f"Cart {cart_id} not found", code="cart_not_found")
        return cart

    def validate_cart(self, cart: CartModel) -> CartValidationReport:
        """Przed checkoutem: brak towaru / wariantu = blad, zmiana ceny > prog = ostrzezenie."""
        unavailable: List[int] = []
        out_of_stock: List[int] = []
        price_changed: List[int] = []

        for item in cart.items:
            variant = self._live_variant(item)
            if variant is None:
                unavailable.append(item.id)
                continue
            if not self.stock.is_available(variant, item.quantity):
                out_of_stock.append(item.id)

            quote = self._quote(cart, variant, item.quantity)
            if quote is not None and self._drift_percent(item.price_at_add, quote.unit_price) > self.price_change_threshold:
                price_changed.append(item.id)

        errors = []
        if out_of_stock:
            errors.append(CartIssue(type="insufficient_stock", item_ids=out_of_stock))
        if unavailable:
            errors.append(CartIssue(type="variant_unavailable", item_ids=unavailable))

        warnings = []
        if price_changed:
            warnings.append(CartIssue(type="price_changed", item_ids=price_changed))

        return CartValidationReport(valid=not errors, errors=errors, warnings=warnings)

    def summary(self, cart: CartModel) -> CartSummary:
        return cart_summary(cart)

    # =====================================================
    # COMMANDS
    # =====================================================
    def get_or_create_cart(
        self,
        site_id: int,
        currency: str,
        locale: str,
        customer_type: Segment | str = Segment.B2C,
        user_id: int | None = None,
        session_token: str | None = None,
    ) -> CartHandle:
        if user_id is not None and session_token:
            raise DomainInvariantError("A cart is owned by a user or a session token, not both")
        try:
            segment = Segment(customer_type)
        except ValueError:
            raise ValidationError(
                f"Unknown customer type {customer_type!r}",
                errors=[{"field": "customer_type", "message": "must be one of B2C, B2B"}],
            )
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(
                f"Invalid currency {currency!r}",
                errors=[{"field": "currency", "message": "must be an ISO 4217 code"}],
            )

        existing = self.repo.find_for_owner(site_id, user_id, session_token)
        if existing is not None:
            return CartHandle(cart=existing, token=existing.session_token, is_new=False)

        now = utcnow()
        cart = CartModel(
            site_id=site_id,
            user_id=user_id,
            # nowy gosc dostaje nowy token (nieznany token tez -> nowy koszyk)
            session_token=None if user_id is not None else str(uuid.uuid4()),
            currency=currency.upper(),
            locale=locale,
            customer_type=segment.value,
            discount_amount=ZERO,
            version=1,
            last_activity_at=now,
            expires_at=self._expiry_for(user_id is None, now),
        )
        created = self.repo.create_cart(cart)
        self.repo.commit()

        logger.info(f"Utworzono nowy koszyk {created.id} (site {site_id}, user {user_id})")
        return CartHandle(cart=created, token=created.session_token, is_new=True)

    def add_item(self, cart: CartModel, variant_id: int, quantity: int = 1, message: str | None = None) -> CartItemModel:
        self._check_quantity(quantity)

        with self.lock_service.hold(cart_lock_key(cart.id)):
            old_version = cart.version
            variant = self._sellable_variant(variant_id)

            existing_item = cart.find_item_by_variant(variant_id)
            new_quantity = quantity + (existing_item.quantity if existing_item else 0)
            self._check_quantity(new_quantity)
            self._check_stock(variant, new_quantity)

            # cena dla calkowitej ilosci - przekroczenie progu zmienia cene jednostkowa
            quote = self._require_quote(cart, variant, new_quantity)

            if existing_item:
                logger.info(
                    f"Wariant {variant_id} juz jest w koszyku {cart.id}, zwiekszam ilosc "
                    f"z {existing_item.quantity} do {new_quantity}"
                )
                self._reprice(existing_item, quote)
                if message:
                    existing_item.custom_message = message
                item = existing_item
            else:
                logger.info(f"Dodaje wariant {variant_id} do koszyka {cart.id}")
                item = CartItemModel(
                    variant_id=variant.id,
                    product_id=variant.product_id,
                    quantity=new_quantity,
                    price_at_add=quote.unit_price,
                    savings_at_add=self._savings(quote),
                    custom_message=message,
                    product_snapshot=self.snapshot_of(variant).to_json(),
                )
                cart.items.append(item)

            self._commit_mutation(cart, old_version)

        return item

    def update_item_quantity(self, item_id: int, quantity: int) -> CartItemModel:
        self._check_quantity(quantity)
        item = self._item(item_id)
        cart = item.cart

        with self.lock_service.hold(cart_lock_key(cart.id)):
            old_version = cart.version
            variant = self._live_variant(item)
            if variant is None:
                raise NotFoundError("This product is no longer available", code="variant_unavailable", item_id=item_id)

            self._check_stock(variant, quantity)
            quote = self._require_quote(cart, variant, quantity)
            self._reprice(item, quote)

            self._commit_mutation(cart, old_version)

        logger.info(f"Ilosc pozycji {item_id} w koszyku {cart.id} ustawiona na {quantity}")
        return item

    def remove_item(self, item_id: int) -> CartModel:
        item = self._item(item_id)
        cart = item.cart

        with self.lock_service.hold(cart_lock_key(cart.id)):
            old_version = cart.version
            self.repo.delete_cart_item(item)
            self._commit_mutation(cart, old_version)

        logger.info(f"Pozycja {item_id} usunieta z koszyka {cart.id}")
        return cart

    def clear_cart(self, cart: CartModel) -> CartModel:
        with self.lock_service.hold(cart_lock_key(cart.id)):
            old_version = cart.version
            cart.items.clear()
            self._commit_mutation(cart, old_version)

        logger.info(f"Koszyk {cart.id} wyczyszczony")
        return cart

    def sync_prices(self, cart: CartModel) -> List[PriceChange]:
        """Przelicza ceny wszystkich pozycji wg aktualnego cennika i raportuje roznice."""
        changes: List[PriceChange] = []

        with self.lock_service.hold(cart_lock_key(cart.id)):
            old_version = cart.version
            for item in cart.items:
                variant = self._live_variant(item)
                if variant is None:
                    continue
                quote = self._quote(cart, variant, item.quantity)
                if quote is None or quote.unit_price == to_money(item.price_at_add):
                    continue

                old_price = to_money(item.price_at_add)
                self._reprice(item, quote)
                changes.append(
                    PriceChange(
                        item_id=item.id,
                        old_price=old_price,
                        new_price=quote.unit_price,
                        difference=to_money(quote.unit_price - old_price),
                    )
                )

            if changes:
                self._commit_mutation(cart, old_version)

        return changes

    def merge_guest_cart(self, session_token: str, user_id: int, site_id: int) -> CartModel | None:
        """
        Przenosi koszyk goscia do usera przy logowaniu.
        Brak koszyka goscia (np. juz zmergowany) = no-op, zwraca aktualny koszyk usera.
        """
        with self.lock_service.hold(merge_lock_key(user_id)):
            guest_cart = self.repo.find_by_session_token(site_id, session_token)
            if guest_cart is None:
                logger.info(f"Brak koszyka goscia dla tokenu, merge dla usera {user_id} pominiety")
                return self.repo.find_by_user(site_id, user_id)

            with self.lock_service.hold(cart_lock_key(guest_cart.id)):
                return self._merge(guest_cart, user_id)

    def cleanup_expired_carts(self, now: datetime | None = None) -> int:
        expired = self.repo.find_expired(now or utcnow())
        for cart in expired:
            self.repo.delete_cart(cart)
        self.repo.commit()

        if expired:
            logger.info(f"Usunieto {len(expired)} wygaslych koszykow")
        return len(expired)

    # =====================================================
    # HELPERS
    # =====================================================
    def snapshot_of(self, variant: ProductVariantModel) -> ProductSnapshot:
        product = variant.product
        return ProductSnapshot(
            name=variant.full_name,
            sku=variant.sku,
            image=variant.final_image,
            weight=variant.weight,
            attributes=dict(variant.attributes or {}),
            product_id=product.id if product is not None else variant.product_id,
            variant_id=variant.id,
            variant_name=variant.name,
        )

    def _merge(self, guest_cart: CartModel, user_id: int) -> CartModel:
        user_cart = self.repo.find_by_user(guest_cart.site_id, user_id)

        if user_cart is None:
            # user nie ma koszyka -> zamiana wlasciciela, bez kopiowania pozycji
            now = utcnow()
            old_version = guest_cart.version
            guest_cart.user_id = user_id
            guest_cart.session_token = None
            self._commit_mutation(guest_cart, old_version, now=now)
            logger.info(f"Koszyk goscia {guest_cart.id} przypisany do usera {user_id}")
            return guest_cart

        with self.lock_service.hold(cart_lock_key(user_cart.id)):
            old_version = user_cart.version
            same_pricing = (
                guest_cart.currency == user_cart.currency
                and guest_cart.customer_type == user_cart.customer_type
            )
            for guest_item in list(guest_cart.items):
                existing = (
                    user_cart.find_item_by_variant(guest_item.variant_id)
                    if guest_item.variant_id is not None
                    else None
                )

                if existing is not None:
                    combined = existing.quantity + guest_item.quantity
                    if combined > MAX_ITEM_QUANTITY:
                        logger.warning(
                            f"Merge koszyka {guest_cart.id}: ilosc wariantu {existing.variant_id} "
                            f"({combined}) przycieta do {MAX_ITEM_QUANTITY}"
                        )
                        combined = MAX_ITEM_QUANTITY
                    existing.quantity = combined
                    variant = self._live_variant(existing)
                    quote = self._quote(user_cart, variant, combined) if variant is not None else None
                    if quote is not None:
                        self._reprice(existing, quote)
                    guest_cart.items.remove(guest_item)
                    continue

                if same_pricing or guest_item.variant_id is None:
                    # przepiecie pozycji do koszyka usera
                    guest_cart.items.remove(guest_item)
                    user_cart.items.append(guest_item)
                    continue

                # inna waluta/segment: cena goscia nie obowiazuje w koszyku usera
                variant = self._live_variant(guest_item)
                quote = self._quote(user_cart, variant, guest_item.quantity) if variant is not None else None
                guest_cart.items.remove(guest_item)
                if quote is None:
                    logger.warning(
                        f"Merge koszyka {guest_cart.id}: brak ceny wariantu {guest_item.variant_id} "
                        f"w {user_cart.currency}/{user_cart.customer_type}, pozycja pominieta"
                    )
                    continue
                self._reprice(guest_item, quote)
                user_cart.items.append(guest_item)

            self.repo.delete_cart(guest_cart)
            self._commit_mutation(user_cart, old_version)

        logger.info(f"Koszyk goscia {guest_cart.id} zmergowany do koszyka {user_cart.id} usera {user_id}")
        return user_cart

    def _commit_mutation(self, cart: CartModel, old_version: int, now: datetime | None = None) -> None:
        #kazda akcja przedluza waznosc koszyka i podbija wersje
        self.coupon_engine.recalculate(cart)
        now = now or utcnow()
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=old_version,
            new_data={
                "version": old_version + 1,
                "last_activity_at": now,
                "expires_at": self._expiry_for(cart.user_id is None, now),
            },
        )

        if rowcount == 0:
            self.repo.rollback()
            raise ConflictError(
                "Cart was modified by another operation",
                code="concurrent_modification",
                cart_id=cart.id,
            )

        self.repo.commit()

    def _expiry_for(self, is_guest: bool, now: datetime) -> datetime:
        days = GUEST_CART_TTL_DAYS if is_guest else USER_CART_TTL_DAYS
        return now + timedelta(days=days)

    def _check_quantity(self, quantity: int) -> None:
        if not isinstance(quantity, int) or quantity < 1 or quantity > MAX_ITEM_QUANTITY:
            raise ValidationError(
                f"Quantity must be between 1 and {MAX_ITEM_QUANTITY}",
                code="invalid_quantity",
                errors=[{"field": "quantity", "message": f"must be between 1 and {MAX_ITEM_QUANTITY}"}],
            )

    def _item(self, item_id: int) -> CartItemModel:
        item = self.repo.get_cart_item(item_id)
        if item is None:
            raise NotFoundError(f"Cart item {item_id} not found", code="item_not_found")
        return item

    def _sellable_variant(self, variant_id: int) -> ProductVariantModel:
        variant = self.variants.get_variant(variant_id)
        if variant is None or not variant.is_sellable:
            raise NotFoundError(f"Variant {variant_id} not found", code="variant_not_found")
        return variant

    def _live_variant(self, item: CartItemModel) -> ProductVariantModel | None:
        if item.variant_id is None:
            return None
        variant = self.variants.get_variant(item.variant_id)
        if variant is None or not variant.is_sellable:
            return None
        return variant

    def _check_stock(self, variant: ProductVariantModel, quantity: int) -> None:
        if not self.stock.is_available(variant, quantity):
            raise InsufficientStockError(
                f"Insufficient stock for {variant.sku}: available {self.stock.available(variant)}, requested {quantity}",
                variant_id=variant.id,
                available=self.stock.available(variant),
                requested=quantity,
            )

    def _quote(self, cart: CartModel, variant: ProductVariantModel, quantity: int) -> PriceQuote | None:
        return self.price_resolver.resolve_price(
            variant.price_table, cart.currency, Segment(cart.customer_type), quantity
        )

    def _require_quote(self, cart: CartModel, variant: ProductVariantModel, quantity: int) -> PriceQuote:
        quote = self._quote(cart, variant, quantity)
        if quote is None:
            # brak ceny != darmowy produkt
            raise ConflictError(
                f"No price for {variant.sku} in {cart.currency}/{cart.customer_type}",
                code="price_not_available",
                variant_id=variant.id,
            )
        return quote

    def _reprice(self, item: CartItemModel, quote: PriceQuote) -> None:
        item.quantity = quote.quantity
        item.price_at_add = quote.unit_price
        item.savings_at_add = self._savings(quote)

    @staticmethod
    def _savings(quote: PriceQuote) -> Decimal | None:
        return quote.savings if quote.savings > ZERO else None

    @staticmethod
    def _drift_percent(old_price, new_price) -> Decimal:
        old_price = Decimal(old_price)
        if old_price == 0:
            return Decimal(0) if new_price == 0 else Decimal(100)
        return abs(Decimal(new_price) - old_price) / old_price * 100
