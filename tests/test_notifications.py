import pytest

from shopcore.domain.status import OrderStatus
from shopcore.services.notification_service import NotificationService, send_status_notification_task


@pytest.fixture
def order(consolidator, freezer, guest_cart, variant, address):
    consolidator.add_item(guest_cart, variant.id, 1)
    return freezer.freeze(guest_cart, address, customer_email="guest@example.com")


@pytest.mark.parametrize(
    "status, expected",
    [
        (OrderStatus.CONFIRMED, True),
        (OrderStatus.PROCESSING, False),
        (OrderStatus.SHIPPED, True),
        (OrderStatus.DELIVERED, True),
        (OrderStatus.CANCELLED, True),
    ],
)
def test_only_customer_facing_statuses_are_sent(order, status, expected):
    assert NotificationService().send_status_notification(order, status) is expected


def test_guest_without_email_is_skipped(consolidator, freezer, guest_cart, variant, address):
    consolidator.add_item(guest_cart, variant.id, 1)
    order = freezer.freeze(guest_cart, address)

    assert NotificationService().send_status_notification(order, OrderStatus.CONFIRMED) is False


def test_task_result():
    result = send_status_notification_task.apply(
        kwargs={
            "order_id": 1,
            "reference": "2026-01-00001",
            "email": "guest@example.com",
            "status": "shipped",
            "message": "Your order has been shipped.",
            "extra": {"tracking_number": "TRK1"},
        }
    )

    assert result.get() == {"order_id": 1, "reference": "2026-01-00001", "status": "shipped", "sent": True}
