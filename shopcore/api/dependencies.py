# shopcore/api/dependencies.py
from fastapi import HTTPException

from shopcore.domain.errors import ConflictError, NotFoundError, ShopError, ValidationError
from shopcore.services.lock_service import LockService

# bledy po stronie klienta; DomainInvariantError celowo poza lista (500)
CLIENT_ERRORS = (ValidationError, NotFoundError, ConflictError)

_lock_service: LockService | None = None


def get_lock_service() -> LockService:
    # jeden klient redis na proces, w testach nadpisywane przez dependency_overrides
    global _lock_service
    if _lock_service is None:
        _lock_service = LockService()
    return _lock_service


def http_error(e: ShopError) -> HTTPException:
    if isinstance(e, ValidationError):
        status_code = 422
    elif isinstance(e, NotFoundError):
        status_code = 404
    else:
        status_code = 409
    return HTTPException(status_code=status_code, detail=e.to_dict())
