import uuid
from contextlib import contextmanager

import redis

from shopcore.domain.errors import ConflictError
from shopcore.utils.retry import redis_retry
from shopcore.utils.settings import REDIS_URL, LOCK_TTL_SECONDS
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje atomowo przez lua, skrypt dziala jako jedna nieprzerywalna operacja
#nie mozna wcisnac sie miedzy GET a DEL, wiec tu jest get + porownanie + del wszystko naraz


def cart_lock_key(cart_id: int) -> str:
    return f"cart:{cart_id}:lock"


def merge_lock_key(user_id: int) -> str:
    return f"user:{user_id}:cart-merge"


class LockService:
    """
    -serializacja operacji na jednym zasobie (koszyk, merge usera)
    -lock = SET key token NX EX ttl
    -zwalnianie tylko przez wlasciciela (lua)
    """

    def __init__(self, url: str | None = None, client=None, ttl: int = LOCK_TTL_SECONDS):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )
        self.ttl = ttl

    @redis_retry()
    def acquire(self, key: str, token: str, ttl: int | None = None) -> bool:
        logger.debug(f"Acquire lock {key} ({token})")
        #SET cart:1:lock "abc" NX EX 30
        return bool(
            self.redis.set(
                name=key,
                value=token,
                nx=True, #not eXists, jak klucz jest to nic nie rob i False
                ex=ttl or self.ttl, #wygasa sam, nie trzeba recznie czyscic po crashu
            )
        )

    @redis_retry()
    def release(self, key: str, token: str) -> bool:
        logger.debug(f"Release lock {key} ({token})")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)

    @contextmanager
    def hold(self, key: str, ttl: int | None = None):
        """Trzyma lock na czas bloku; zajety zasob -> ConflictError (klient moze ponowic)."""
        token = uuid.uuid4().hex
        if not self.acquire(key, token, ttl):
            logger.warning(f"Lock {key} is held by another operation")
            raise ConflictError(
                "Resource is being modified by another request, retry shortly",
                code="resource_locked",
                lock=key,
            )
        try:
            yield token
        finally:
            self.release(key, token)
