# shopcore/services/coupon_engine.py
from decimal import Decimal
from typing import Any, Dict, NamedTuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from shopcore.data.models.cart import CartModel
from shopcore.data.models.coupon import CouponModel, TYPE_PERCENTAGE, TYPE_FIXED
from shopcore.domain.errors import (
    ConflictError,
    CouponIneligibleError,
    NotFoundError,
    ValidationError,
)
from shopcore.domain.schemas import CouponCreate, EligibilityReport
from shopcore.repos.cart_repo import CartRepo
from shopcore.repos.coupon_repo import CouponRepo
from shopcore.services.lock_service import LockService, cart_lock_key
from shopcore.utils.clock import as_utc
from shopcore.utils.logging import get_logger
from shopcore.utils.money import ZERO, to_money

logger = get_logger(__name__)

#kolejnosc sprawdzen - pierwszy blad konczy walidacje
CHECK_EXISTS = "exists"
CHECK_VALID = "is_valid"
CHECK_USAGE = "usage_available"
CHECK_CART_NOT_EMPTY = "cart_not_empty"
CHECK_SEGMENT = "customer_type_allowed"
CHECK_MINIMUM = "meets_minimum"
CHECK_USER_LIMIT = "user_limit"

MESSAGES = {
    CHECK_EXISTS: "Coupon code not found.",
    CHECK_VALID: "This coupon is no longer valid.",
    CHECK_USAGE: "This coupon has reached its usage limit.",
    CHECK_CART_NOT_EMPTY: "Your cart is empty.",
    CHECK_SEGMENT: "This coupon is not available for your account type.",
    CHECK_MINIMUM: "Cart subtotal is below the coupon minimum amount.",
    CHECK_USER_LIMIT: "You have already used this coupon the maximum number of times.",
}


class CouponApplication(NamedTuple):
    cart: CartModel
    discount: Decimal
    message: str


def compute_discount(coupon: CouponModel, subtotal: Decimal) -> Decimal:
    """
    percentage -> subtotal * value / 100 (opcjonalny sufit maximum_discount),
    fixed -> min(value, subtotal). Rabat nigdy nie przekracza subtotalu.
    """
    subtotal = to_money(subtotal)
    if coupon.type == TYPE_PERCENTAGE:
        discount = to_money(subtotal * Decimal(coupon.value) / 100)
        if coupon.maximum_discount is not None:
            discount = min(discount, to_money(coupon.maximum_discount))
    elif coupon.type == TYPE_FIXED:
        discount = to_money(coupon.value)
    else:
        raise ValidationError(f"Unknown coupon type {coupon.type!r}", code="invalid_coupon_type")
    return min(discount, subtotal)


def coupon_summary(coupon: CouponModel) -> Dict[str, Any]:
    valid_until = as_utc(coupon.valid_until)
    return {
        "code": coupon.code,
        "type": coupon.type,
        "value": float(coupon.value),
        "description": coupon.description,
        "public_message": coupon.public_message,
        "remaining_usages": coupon.remaining_usages(),
        "valid_until": valid_until.isoformat() if valid_until else None,
    }


class CouponEngine:
    """
    Walidacja i aplikowanie kuponow na koszyk.
    Licznik uzyc rosnie dopiero przy zamrozeniu koszyka w zamowienie (increment_usage),
    aplikowanie / zdejmowanie kuponu nic nie zuzywa.
    """

    def __init__(self, db: Session, lock_service: LockService):
        self.repo = CouponRepo(db)
        self.cart_repo = CartRepo(db)
        self.lock_service = lock_service

    # =====================================================
    # QUERY
    # =====================================================
    def validate(self, cart: CartModel, code: str, site_id: int, user_id: int | None = None) -> EligibilityReport:
        report = EligibilityReport(code=code.strip().upper())
        checks: Dict[str, bool] = {}

        def fail(check: str) -> EligibilityReport:
            checks[check] = False
            return report.model_copy(
                update={"checks": checks, "failed_check": check, "message": MESSAGES[check]}
            )

        coupon = self.repo.find_by_code(code, site_id)
        if coupon is None:
            return fail(CHECK_EXISTS)
        checks[CHECK_EXISTS] = True
        report = report.model_copy(update={"coupon": coupon_summary(coupon)})

        if not coupon.is_active or coupon.is_deleted or coupon.is_expired():
            return fail(CHECK_VALID)
        checks[CHECK_VALID] = True

        if coupon.is_exhausted():
            return fail(CHECK_USAGE)
        checks[CHECK_USAGE] = True

        if cart.is_empty:
            return fail(CHECK_CART_NOT_EMPTY)
        checks[CHECK_CART_NOT_EMPTY] = True

        if not coupon.is_valid_for_segment(cart.customer_type):
            return fail(CHECK_SEGMENT)
        checks[CHECK_SEGMENT] = True

        subtotal = cart.subtotal
        if not coupon.meets_minimum(subtotal):
            return fail(CHECK_MINIMUM)
        checks[CHECK_MINIMUM] = True

        # limit per user tylko gdy kupon go ma i znamy usera
        if coupon.max_usages_per_user is not None and user_id is not None:
            used = self.repo.count_usages_by_user(coupon.id, user_id)
            if used >= coupon.max_usages_per_user:
                return fail(CHECK_USER_LIMIT)
            checks[CHECK_USER_LIMIT] = True

        discount = compute_discount(coupon, subtotal)
        return report.model_copy(
            update={
                "valid": True,
                "checks": checks,
                "discount": discount,
                "message": f"You save {discount} {cart.currency} with this coupon.",
            }
        )

    # =====================================================
    # COMMANDS
    # =====================================================
    def apply(self, cart: CartModel, code: str, site_id: int, user_id: int | None = None) -> CouponApplication:
        with self.lock_service.hold(cart_lock_key(cart.id)):
            report = self.validate(cart, code, site_id, user_id)

            if report.failed_check == CHECK_EXISTS:
                raise NotFoundError(f"Coupon {report.code} not found", code="coupon_not_found")

            coupon = self.repo.find_by_code(code, site_id)
            if cart.coupon_id == coupon.id:
                raise ConflictError("This coupon is already applied to the cart", code="coupon_already_applied")

            if not report.valid:
                logger.info(f"Coupon {coupon.code} rejected for cart {cart.id}: {report.failed_check}")
                raise CouponIneligibleError(report.message, check=report.failed_check, coupon=coupon.code)

            cart.coupon_id = coupon.id
            cart.coupon_summary = coupon_summary(coupon)
            cart.discount_amount = report.discount
            self._bump_version(cart)
            self.cart_repo.commit()

        logger.info(f"Coupon {coupon.code} applied to cart {cart.id}, discount {report.discount}")
        return CouponApplication(
            cart=cart,
            discount=report.discount,
            message=f"Coupon {coupon.code} applied, you save {report.discount} {cart.currency}.",
        )

    def remove(self, cart: CartModel) -> CartModel:
        with self.lock_service.hold(cart_lock_key(cart.id)):
            if cart.coupon_id is None:
                raise NotFoundError("No coupon applied to this cart", code="no_coupon_applied")

            cart.coupon_id = None
            cart.coupon_summary = None
            cart.discount_amount = ZERO
            self._bump_version(cart)
            self.cart_repo.commit()

        logger.info(f"Coupon removed from cart {cart.id}")
        return cart

    def recalculate(self, cart: CartModel) -> Decimal:
        """Przelicza rabat po zmianie zawartosci koszyka. Nie commituje."""
        discount = ZERO
        if cart.coupon_id is not None:
            coupon = self.repo.get_coupon(cart.coupon_id)
            if (
                coupon is not None
                and coupon.is_active
                and not coupon.is_deleted
                and not coupon.is_expired()
                and not coupon.is_exhausted()
                and coupon.is_valid_for_segment(cart.customer_type)
                and coupon.meets_minimum(cart.subtotal)
            ):
                discount = compute_discount(coupon, cart.subtotal)
        cart.discount_amount = discount
        return discount

    def increment_usage(self, coupon_id: int) -> None:
        """Wolane przy zamrozeniu koszyka, w tej samej transakcji co zamowienie."""
        if self.repo.increment_usage_if_available(coupon_id) != 1:
            logger.warning(f"Coupon {coupon_id} usage limit reached at checkout")
            raise CouponIneligibleError(MESSAGES[CHECK_USAGE], check=CHECK_USAGE, coupon_id=coupon_id)

    def create_coupon(self, data: CouponCreate | Dict[str, Any]) -> CouponModel:
        if not isinstance(data, CouponCreate):
            try:
                data = CouponCreate.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationError.from_pydantic(e, "Invalid coupon") from e

        if self.repo.find_by_code(data.code, data.site_id) is not None:
            raise ConflictError(f"Coupon {data.code} already exists", code="coupon_exists")

        coupon = CouponModel(
            site_id=data.site_id,
            code=data.code,
            type=data.type,
            value=to_money(data.value),
            minimum_amount=data.minimum_amount,
            maximum_discount=data.maximum_discount,
            valid_from=data.valid_from,
            valid_until=data.valid_until,
            max_usages=data.max_usages,
            max_usages_per_user=data.max_usages_per_user,
            usage_count=0,
            allowed_customer_types=[s.value for s in data.allowed_customer_types] if data.allowed_customer_types else None,
            public_message=data.public_message,
            is_active=data.is_active,
        )
        self.repo.create_coupon(coupon)
        self.cart_repo.commit()
        logger.info(f"Coupon {coupon.code} created for site {coupon.site_id}")
        return coupon

    def _bump_version(self, cart: CartModel) -> None:
        old_version = cart.version
        rowcount = self.cart_repo.update_cart_version(
            cart_id=cart.id,
            old_version=old_version,
            new_data={"version": old_version + 1},
        )
        if rowcount == 0:
            self.cart_repo.rollback()
            raise ConflictError(
                "Cart was modified by another operation",
                code="concurrent_modification",
            )
