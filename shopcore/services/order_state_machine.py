# shopcore/services/order_state_machine.py
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from shopcore.data.models.order import OrderModel
from shopcore.data.models.order_status_history import OrderStatusHistoryModel
from shopcore.domain.errors import ConflictError, IllegalTransitionError, NotFoundError
from shopcore.domain.status import ActorType, OrderStatus, can_transition
from shopcore.repos.order_repo import OrderRepo
from shopcore.services.notification_service import NotificationService
from shopcore.services.stock_ledger import StockLedger
from shopcore.utils.clock import utcnow
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


class OrderStateMachine:
    """
    Cykl zycia zamowienia po checkoucie.

    Kazda zmiana statusu:
    1. sprawdza przejscie w tabeli TRANSITIONS i zapisuje status warunkowo (where status = stary)
    2. dopisuje wpis do historii (append-only)
    3. ustawia znacznik czasu kamienia milowego (tylko raz)
    4. przy anulowaniu oddaje towar na stan
    5. po commicie wysyla powiadomienie (async)
    """

    def __init__(
        self,
        db: Session,
        notification_service: NotificationService | None = None,
        stock: StockLedger | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.notification_service = notification_service or NotificationService()
        self.stock = stock or StockLedger(db)

    # =====================================================
    # QUERY
    # =====================================================
    def get_order(self, order_id: int) -> OrderModel:
        order = self.repo.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", code="order_not_found")
        return order

    def get_by_reference(self, reference: str) -> OrderModel:
        order = self.repo.get_by_reference(reference)
        if order is None:
            raise NotFoundError(f"Order {reference} not found", code="order_not_found")
        return order

    def list_user_orders(self, user_id: int, limit: int = 20) -> List[OrderModel]:
        return self.repo.list_by_user(user_id, limit=limit)

    # =====================================================
    # COMMANDS
    # =====================================================
    def change_status(
        self,
        order_id: int,
        new_status: OrderStatus | str,
        actor_id: int | None = None,
        actor_type: ActorType | str = ActorType.SYSTEM,
        reason: str | None = None,
        metadata: Dict[str, Any] | None = None,
    ) -> OrderModel:
        order = self.get_order(order_id)
        current = order.order_status
        target = OrderStatus(new_status)
        actor_type = ActorType(actor_type)

        if not can_transition(current, target):
            logger.warning(f"Order {order.reference}: illegal transition {current.value} -> {target.value}")
            raise IllegalTransitionError(current, target)

        now = utcnow()
        try:
            # status przechodzi tylko z tego, ktory przeczytalismy, inaczej ktos byl szybszy
            rowcount = self.repo.update_status(order.id, current.value, target.value, now)
            if rowcount == 0:
                raise ConflictError(
                    f"Order {order.reference} was modified by another operation",
                    code="concurrent_modification",
                    order_id=order.id,
                )
            order.status = target.value
            order.updated_at = now
            self._stamp_milestone(order, target, now)

            if target == OrderStatus.CANCELLED:
                self._restock(order)

            order.status_history.append(
                OrderStatusHistoryModel(
                    from_status=current.value,
                    to_status=target.value,
                    changed_by_id=actor_id,
                    changed_by_type=actor_type.value,
                    reason=reason,
                    extra=dict(metadata or {}),
                    created_at=now,
                )
            )
            self.repo.commit()
        except Exception as e:
            logger.error(f"Status change of order {order.reference} failed: {e}")
            self.repo.rollback()
            raise

        logger.info(
            f"Order {order.reference}: {current.value} -> {target.value} "
            f"by {actor_type.value}{f' #{actor_id}' if actor_id else ''}"
        )

        self.notification_service.send_status_notification(order, target, extra=metadata)
        return order

    def update_admin_notes(self, order_id: int, notes: str | None) -> OrderModel:
        order = self.get_order(order_id)
        order.admin_notes = notes
        order.updated_at = utcnow()
        self.repo.commit()
        logger.info(f"Admin notes updated on order {order.reference}")
        return order

    # skroty dla typowych przejsc
    def confirm_payment(self, order_id: int, payment_reference: str | None = None) -> OrderModel:
        metadata = {"payment_reference": payment_reference} if payment_reference else {}
        return self.change_status(order_id, OrderStatus.CONFIRMED, reason="Payment confirmed", metadata=metadata)

    def mark_processing(self, order_id: int, actor_id: int | None = None) -> OrderModel:
        return self.change_status(
            order_id, OrderStatus.PROCESSING, actor_id=actor_id, actor_type=ActorType.ADMIN,
            reason="Order is being prepared",
        )

    def mark_shipped(
        self,
        order_id: int,
        tracking_number: str | None = None,
        carrier: str | None = None,
        actor_id: int | None = None,
    ) -> OrderModel:
        metadata = {}
        if tracking_number:
            metadata["tracking_number"] = tracking_number
        if carrier:
            metadata["carrier"] = carrier
        return self.change_status(
            order_id, OrderStatus.SHIPPED, actor_id=actor_id, actor_type=ActorType.ADMIN,
            reason="Order shipped", metadata=metadata,
        )

    def mark_delivered(self, order_id: int) -> OrderModel:
        return self.change_status(order_id, OrderStatus.DELIVERED, reason="Order delivered")

    def cancel(
        self,
        order_id: int,
        reason: str | None = None,
        actor_id: int | None = None,
        actor_type: ActorType | str = ActorType.CUSTOMER,
    ) -> OrderModel:
        return self.change_status(
            order_id, OrderStatus.CANCELLED, actor_id=actor_id, actor_type=actor_type,
            reason=reason or "Order cancelled",
        )

    # =====================================================
    # HELPERS
    # =====================================================
    @staticmethod
    def _stamp_milestone(order: OrderModel, target: OrderStatus, now) -> None:
        # pierwszy zapis wygrywa, kolejne przejscia nie nadpisuja
        if target == OrderStatus.CONFIRMED and order.validated_at is None:
            order.validated_at = now
        elif target == OrderStatus.CANCELLED and order.cancelled_at is None:
            order.cancelled_at = now
        elif target == OrderStatus.DELIVERED and order.delivered_at is None:
            order.delivered_at = now

    def _restock(self, order: OrderModel) -> None:
        for item in order.items:
            if item.variant_id is None:
                logger.info(f"Order {order.reference}: variant of item {item.id} no longer exists, not restocked")
                continue
            self.stock.release(item.variant_id, item.quantity)
