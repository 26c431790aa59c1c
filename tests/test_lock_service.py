import pytest

from shopcore.domain.errors import ConflictError
from shopcore.services.lock_service import cart_lock_key, merge_lock_key


def test_lock_keys():
    assert cart_lock_key(5) == "cart:5:lock"
    assert merge_lock_key(7) == "user:7:cart-merge"


def test_hold_releases_after_block(lock_service, fake_redis):
    with lock_service.hold("cart:1:lock") as token:
        assert fake_redis.store["cart:1:lock"] == token

    assert "cart:1:lock" not in fake_redis.store


def test_hold_releases_on_error(lock_service, fake_redis):
    with pytest.raises(RuntimeError):
        with lock_service.hold("cart:1:lock"):
            raise RuntimeError("boom")

    assert fake_redis.store == {}


def test_busy_lock_is_a_conflict(lock_service):
    with lock_service.hold("cart:1:lock"):
        with pytest.raises(ConflictError) as exc:
            with lock_service.hold("cart:1:lock"):
                pass

    assert exc.value.code == "resource_locked"


def test_only_owner_can_release(lock_service, fake_redis):
    assert lock_service.acquire("k", "mine")

    assert not lock_service.release("k", "someone-else")
    assert fake_redis.store["k"] == "mine"
    assert lock_service.release("k", "mine")
