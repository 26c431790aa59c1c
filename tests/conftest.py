import os

# engine w shopcore.data.database powstaje przy imporcie - musi dostac sqlite zanim cokolwiek zaimportujemy
os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shopcore.api import create_app
from shopcore.api.dependencies import get_lock_service
from shopcore.celery_worker import celery_app
from shopcore.data.database import Base, get_db
from shopcore.data.models import (
    CouponModel,
    ProductModel,
    ProductVariantModel,
    UserModel,
)
from shopcore.services.cart_consolidator import CartConsolidator
from shopcore.services.checkout_freezer import CheckoutFreezer
from shopcore.services.coupon_engine import CouponEngine
from shopcore.services.lock_service import LockService
from shopcore.services.order_state_machine import OrderStateMachine

celery_app.conf.task_always_eager = True

SITE_ID = 1

MUG_PRICES = {
    "EUR": {
        "B2C": {"base": 10.0, "tiers": [{"min": 5, "price": 8.0}, {"min": 20, "price": 7.0}]},
        "B2B": {"base": 9.0, "tiers": [{"min": 10, "price": 6.5}]},
    },
}

ADDRESS = {
    "fullName": "Anna Nowak",
    "street": "ul. Dluga 1",
    "postalCode": "00-001",
    "city": "Warszawa",
    "countryCode": "PL",
    "phone": "+48 600 000 000",
}


class FakeRedis:
    """Tyle redisa ile uzywa LockService: SET NX EX i eval skryptu zwalniajacego."""

    def __init__(self):
        self.store = {}

    def set(self, name, value, nx=False, ex=None):
        if nx and name in self.store:
            return None
        self.store[name] = value
        return True

    def eval(self, script, numkeys, *args):
        key, token = args[0], args[1]
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def lock_service(fake_redis):
    return LockService(client=fake_redis)


@pytest.fixture
def coupon_engine(db, lock_service):
    return CouponEngine(db, lock_service)


@pytest.fixture
def consolidator(db, lock_service, coupon_engine):
    return CartConsolidator(db=db, lock_service=lock_service, coupon_engine=coupon_engine)


@pytest.fixture
def freezer(db, lock_service, coupon_engine):
    return CheckoutFreezer(db, lock_service, coupon_engine=coupon_engine)


@pytest.fixture
def state_machine(db):
    return OrderStateMachine(db)


@pytest.fixture
def product(db):
    product = ProductModel(site_id=SITE_ID, name="Ceramic mug", slug="ceramic-mug", image="/img/mug.jpg")
    db.add(product)
    db.commit()
    return product


@pytest.fixture
def make_variant(db, product):
    counter = {"n": 0}

    def _make(stock=100, safety_stock=0, prices=None, name=None, **kwargs):
        counter["n"] += 1
        variant = ProductVariantModel(
            product_id=product.id,
            sku=f"MUG-{counter['n']:03d}",
            name=name or f"Variant {counter['n']}",
            weight=350,
            attributes={"color": "white"},
            prices=MUG_PRICES if prices is None else prices,
            stock=stock,
            safety_stock=safety_stock,
            **kwargs,
        )
        db.add(variant)
        db.commit()
        return variant

    return _make


@pytest.fixture
def variant(make_variant):
    return make_variant()


@pytest.fixture
def user(db):
    user = UserModel(email="anna@example.com", first_name="Anna", last_name="Nowak", phone="+48 600 000 000")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", type="percentage", value="10", **kwargs):
        kwargs.setdefault("usage_count", 0)
        coupon = CouponModel(site_id=SITE_ID, code=code, type=type, value=Decimal(value), **kwargs)
        db.add(coupon)
        db.commit()
        return coupon

    return _make


@pytest.fixture
def guest_cart(consolidator):
    return consolidator.get_or_create_cart(SITE_ID, "EUR", "fr").cart


@pytest.fixture
def client(session_factory, lock_service):
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lock_service] = lambda: lock_service
    with TestClient(app) as client:
        yield client


@pytest.fixture
def address():
    return dict(ADDRESS)
