# shopcore/celery_worker.py
from celery import Celery

from shopcore.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, CART_SWEEP_INTERVAL_SECONDS

celery_app = Celery(
    "shopcore",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# taski trzeba zaimportowac jawnie, inaczej worker ich nie zarejestruje
celery_app.conf.imports = (
    "shopcore.tasks.expire",
    "shopcore.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "sweep-expired-carts": {
        "task": "shopcore.tasks.expire.sweep_expired_carts_task",
        "schedule": CART_SWEEP_INTERVAL_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
