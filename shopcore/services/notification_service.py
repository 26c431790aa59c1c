# shopcore/services/notification_service.py
from shopcore.celery_worker import celery_app
from shopcore.data.models.order import OrderModel
from shopcore.domain.status import CUSTOMER_MESSAGES, NOTIFY_CUSTOMER_ON, OrderStatus
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Powiadomienia klienta o zmianie statusu zamowienia.
    Wysylka idzie przez Celery, serwis tylko decyduje czy i co wyslac.
    """

    @staticmethod
    def should_notify(status: OrderStatus) -> bool:
        return status in NOTIFY_CUSTOMER_ON

    def send_status_notification(self, order: OrderModel, status: OrderStatus, extra: dict | None = None) -> bool:
        if not self.should_notify(status):
            return False

        email = (order.customer_snapshot or {}).get("email")
        if not email:
            logger.info(f"Order {order.reference} has no customer email, notification skipped")
            return False

        send_status_notification_task.delay(
            order_id=order.id,
            reference=order.reference,
            email=email,
            status=status.value,
            message=CUSTOMER_MESSAGES[status],
            extra=extra or {},
        )
        return True


@celery_app.task(name="shopcore.services.notification_service.send_status_notification_task")
def send_status_notification_task(order_id: int, reference: str, email: str, status: str, message: str, extra: dict):
    """
    Celery task - w prawdziwym systemie wyslalby maila.
    Teraz tylko loguje.
    """
    logger.info(f"[NOTIFICATION] {email}: order {reference} is now {status}. {message}")

    if extra.get("tracking_number"):
        logger.info(f"[NOTIFICATION] {email}: tracking {extra['tracking_number']} ({extra.get('carrier') or 'unknown carrier'})")

    return {"order_id": order_id, "reference": reference, "status": status, "sent": True}
