"""
Order lifecycle shared by every provider.

    created -> pending_authorization -> authorized -> captured
    created -> captured                  (card_direct, completed out-of-band)
    any non-terminal -> cancelled | failed
"""
from enum import Enum
from typing import Dict, FrozenSet

from paybridge.errors import StateConflictError
from paybridge.psp.adapter import PaymentProvider


class OrderStatus(str, Enum):
    CREATED = "created"
    PENDING_AUTHORIZATION = "pending_authorization"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES: FrozenSet[OrderStatus] = frozenset([
    OrderStatus.CAPTURED,
    OrderStatus.CANCELLED,
    OrderStatus.FAILED,
])

# Forward edges only; cancel/fail edges are added for every non-terminal state
_FORWARD: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.CREATED: frozenset([OrderStatus.PENDING_AUTHORIZATION]),
    OrderStatus.PENDING_AUTHORIZATION: frozenset([OrderStatus.AUTHORIZED]),
    OrderStatus.AUTHORIZED: frozenset([OrderStatus.CAPTURED]),
}

# Lifecycle rank; statuses observed on one order never decrease
RANK: Dict[OrderStatus, int] = {
    OrderStatus.CREATED: 0,
    OrderStatus.PENDING_AUTHORIZATION: 1,
    OrderStatus.AUTHORIZED: 2,
    OrderStatus.CAPTURED: 3,
    OrderStatus.CANCELLED: 3,
    OrderStatus.FAILED: 3,
}


def is_terminal(status) -> bool:
    return OrderStatus(status) in TERMINAL_STATES


def allowed_targets(provider, current) -> FrozenSet[OrderStatus]:
    current = OrderStatus(current)
    if current in TERMINAL_STATES:
        return frozenset()
    targets = set(_FORWARD.get(current, frozenset()))
    targets.update((OrderStatus.CANCELLED, OrderStatus.FAILED))
    if PaymentProvider(provider) == PaymentProvider.CARD_DIRECT and current == OrderStatus.CREATED:
        targets.add(OrderStatus.CAPTURED)
    return frozenset(targets)


def can_transition(provider, current, target) -> bool:
    return OrderStatus(target) in allowed_targets(provider, current)


def check_transition(order_id: str, provider, current, target) -> None:
    """Raise StateConflictError if ``current -> target`` is not on the lifecycle graph."""
    if not can_transition(provider, current, target):
        raise StateConflictError(order_id, OrderStatus(current).value, OrderStatus(target).value)
