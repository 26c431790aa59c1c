# shopcore/domain/status.py
from enum import Enum
from typing import Dict, FrozenSet


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ActorType(str, Enum):
    SYSTEM = "system"
    CUSTOMER = "customer"
    ADMIN = "admin"


#stan -> stany osiagalne w jednym kroku; kazde przejscie spoza tabeli jest nielegalne
TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)

# statusy o ktorych klient dostaje powiadomienie
NOTIFY_CUSTOMER_ON: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

CUSTOMER_MESSAGES: Dict[OrderStatus, str] = {
    OrderStatus.CONFIRMED: "Your order has been confirmed and will be prepared soon.",
    OrderStatus.SHIPPED: "Your order has been shipped.",
    OrderStatus.DELIVERED: "Your order has been delivered. Thank you!",
    OrderStatus.CANCELLED: "Your order has been cancelled.",
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES
