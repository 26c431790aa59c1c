# shopcore/tasks/expire.py
from shopcore.celery_worker import celery_app
from shopcore.data.database import SessionLocal
from shopcore.services.cart_consolidator import CartConsolidator
from shopcore.services.lock_service import LockService
from shopcore.utils.clock import utcnow
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="shopcore.tasks.expire.sweep_expired_carts_task")
def sweep_expired_carts_task():
    logger.info("Expired carts sweep started")

    db = SessionLocal()
    try:
        consolidator = CartConsolidator(db=db, lock_service=LockService())
        removed = consolidator.cleanup_expired_carts(utcnow())
        logger.info(f"Expired carts sweep removed {removed} carts")
        return removed
    finally:
        db.close()
