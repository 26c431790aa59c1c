# shopcore/api/__init__.py
from fastapi import FastAPI

from shopcore.api.routers import carts, coupons, orders
from shopcore.api.routers.health import router as health_router


def create_app() -> FastAPI:
    app = FastAPI(title="Shop Core", version="1.0.0")
    app.include_router(health_router)
    app.include_router(carts.router)
    app.include_router(coupons.router)
    app.include_router(orders.router)
    return app
