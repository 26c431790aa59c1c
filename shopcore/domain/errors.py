# shopcore/domain/errors.py
from typing import Any, Dict, List


class ShopError(Exception):
    """
    Bazowy blad domeny.
    code - stabilny identyfikator maszynowy (np. "insufficient_stock"),
    context - dodatkowe dane dla klienta / logow.
    """

    code = "shop_error"

    def __init__(self, message: str, code: str | None = None, **context: Any):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.context}


class ValidationError(ShopError):
    """Niepoprawne dane wejsciowe (zakres ilosci, brakujace pola)."""

    code = "validation_error"

    def __init__(self, message: str, code: str | None = None, errors: List[Dict[str, Any]] | None = None, **context: Any):
        super().__init__(message, code, **context)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data

    @classmethod
    def from_pydantic(cls, exc, message: str = "Invalid input") -> "ValidationError":
        errors = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ())),
                "message": err.get("msg"),
            }
            for err in exc.errors()
        ]
        return cls(message, errors=errors)


class NotFoundError(ShopError):
    code = "not_found"


class ConflictError(ShopError):
    """Zadanie poprawne, ale teraz nie da sie go spelnic (encja istnieje)."""

    code = "conflict"


class InsufficientStockError(ConflictError):
    code = "insufficient_stock"


class CartExpiredError(ConflictError):
    code = "cart_expired"


class CouponIneligibleError(ConflictError):
    code = "coupon_ineligible"

    def __init__(self, message: str, check: str, **context: Any):
        super().__init__(message, **context)
        self.check = check
        self.context["check"] = check


class IllegalTransitionError(ConflictError):
    code = "invalid_status_transition"

    def __init__(self, from_status, to_status):
        super().__init__(
            f"Cannot transition from {from_status.value} to {to_status.value}",
            from_status=from_status.value,
            to_status=to_status.value,
        )
        self.from_status = from_status
        self.to_status = to_status


class DomainInvariantError(ShopError):
    """Blad programisty po stronie wolajacego - nie ponawiac."""

    code = "domain_invariant"
