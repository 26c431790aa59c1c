from decimal import Decimal

import pytest

from shopcore.domain.errors import ConflictError, DomainInvariantError, IllegalTransitionError, NotFoundError
from shopcore.domain.status import TRANSITIONS, ActorType, OrderStatus, can_transition, is_terminal
from shopcore.services.order_state_machine import OrderStateMachine


@pytest.fixture
def order(consolidator, freezer, user, variant, address):
    cart = consolidator.get_or_create_cart(1, "EUR", "fr", user_id=user.id).cart
    consolidator.add_item(cart, variant.id, 2)
    return freezer.freeze(cart, address)


def test_transition_table():
    assert can_transition(OrderStatus.PENDING, OrderStatus.CONFIRMED)
    assert can_transition(OrderStatus.PENDING, OrderStatus.CANCELLED)
    assert not can_transition(OrderStatus.PENDING, OrderStatus.DELIVERED)
    assert not can_transition(OrderStatus.CONFIRMED, OrderStatus.PENDING)
    assert is_terminal(OrderStatus.DELIVERED)
    assert is_terminal(OrderStatus.CANCELLED)
    assert all(TRANSITIONS[status] == frozenset() for status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED))


def test_pending_to_delivered_is_rejected(state_machine, order):
    with pytest.raises(IllegalTransitionError) as exc:
        state_machine.change_status(order.id, OrderStatus.DELIVERED)

    assert exc.value.context == {"from_status": "pending", "to_status": "delivered"}
    assert order.status == "pending"
    assert len(order.status_history) == 1


def test_full_lifecycle_records_history(state_machine, order):
    state_machine.confirm_payment(order.id, payment_reference="PAY-1")
    state_machine.mark_processing(order.id, actor_id=7)
    state_machine.mark_shipped(order.id, tracking_number="TRK123", carrier="DHL")
    order = state_machine.mark_delivered(order.id)

    assert order.order_status is OrderStatus.DELIVERED
    assert [(h.from_status, h.to_status) for h in order.status_history] == [
        (None, "pending"),
        ("pending", "confirmed"),
        ("confirmed", "processing"),
        ("processing", "shipped"),
        ("shipped", "delivered"),
    ]
    shipped = order.status_history[3]
    assert shipped.changed_by_type == ActorType.ADMIN.value
    assert shipped.extra == {"tracking_number": "TRK123", "carrier": "DHL"}
    assert order.validated_at is not None
    assert order.delivered_at is not None


def test_delivered_is_terminal(state_machine, order):
    for step in (state_machine.confirm_payment, state_machine.mark_processing,
                 state_machine.mark_shipped, state_machine.mark_delivered):
        step(order.id)

    with pytest.raises(IllegalTransitionError):
        state_machine.cancel(order.id)


def test_milestone_timestamps_are_set_once(state_machine, order):
    order = state_machine.confirm_payment(order.id)
    validated_at = order.validated_at

    order = state_machine.mark_processing(order.id)

    assert order.validated_at == validated_at
    assert order.cancelled_at is None


def test_cancel_restores_stock(db, state_machine, order, variant):
    db.refresh(variant)
    assert variant.stock == 98

    order = state_machine.cancel(order.id, reason="Changed my mind", actor_id=order.user_id)

    db.refresh(variant)
    assert variant.stock == 100
    assert order.cancelled_at is not None
    assert order.status_history[-1].reason == "Changed my mind"
    assert order.status_history[-1].changed_by_type == "customer"


def test_concurrent_cancel_restocks_once(db, session_factory, state_machine, order, variant):
    # order juz wczytany w db jako pending, druga sesja anuluje pierwsza
    other = session_factory()
    try:
        OrderStateMachine(other).cancel(order.id, reason="First")
    finally:
        other.close()

    with pytest.raises(ConflictError) as exc:
        state_machine.cancel(order.id, reason="Second")

    assert exc.value.code == "concurrent_modification"
    db.refresh(variant)
    assert variant.stock == 100
    order = state_machine.get_order(order.id)
    assert [(h.from_status, h.to_status, h.reason) for h in order.status_history] == [
        (None, "pending", order.status_history[0].reason),
        ("pending", "cancelled", "First"),
    ]


def test_cancelled_is_terminal(state_machine, order):
    state_machine.cancel(order.id)

    with pytest.raises(IllegalTransitionError):
        state_machine.confirm_payment(order.id)


def test_every_status_change_goes_to_notifications(db, order):
    sent = []

    class RecordingNotifications:
        def send_status_notification(self, order, status, extra=None):
            sent.append(status)
            return True

    machine = OrderStateMachine(db, notification_service=RecordingNotifications())
    machine.confirm_payment(order.id)
    machine.mark_processing(order.id)

    assert sent == [OrderStatus.CONFIRMED, OrderStatus.PROCESSING]


def test_lookup(state_machine, order, user):
    assert state_machine.get_by_reference(order.reference).id == order.id
    assert [o.id for o in state_machine.list_user_orders(user.id)] == [order.id]
    with pytest.raises(NotFoundError):
        state_machine.get_order(9999)
    with pytest.raises(NotFoundError):
        state_machine.get_by_reference("1999-01-00001")


def test_admin_notes_are_editable(state_machine, order):
    order = state_machine.update_admin_notes(order.id, "Call before delivery")

    assert order.admin_notes == "Call before delivery"


def test_frozen_order_fields_cannot_change(db, order):
    order.grand_total = Decimal("1.00")

    with pytest.raises(DomainInvariantError):
        db.commit()
    db.rollback()


def test_frozen_order_item_cannot_change(db, order):
    order.items[0].unit_price = Decimal("0.01")

    with pytest.raises(DomainInvariantError):
        db.commit()
    db.rollback()


def test_order_item_reference_can_be_cleared(db, order):
    order.items[0].variant_id = None
    db.commit()

    assert order.items[0].variant_id is None


def test_history_is_append_only(db, order):
    order.status_history[0].reason = "rewritten"

    with pytest.raises(DomainInvariantError):
        db.commit()
    db.rollback()
