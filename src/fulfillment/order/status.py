"""Order status machine — the legal progression of an order.

Pure logic: decides whether a transition is allowed and through which cause.
It never reads or writes records.

State Machine:
    PENDING → PAID → IN_PACKING → PACKED → SHIPPED → DELIVERED
    IN_PACKING → PAID          (packing session cancelled)
    {PENDING, PAID} → CANCELLED
    DELIVERED and CANCELLED are terminal.
"""

from enum import Enum


class OrderStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    IN_PACKING = "in_packing"
    PACKED = "packed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class TransitionCause(Enum):
    """What is driving a status change."""

    STATUS_UPDATE = "status_update"
    PACKING_STARTED = "packing_started"
    PACKING_CANCELLED = "packing_cancelled"
    PACKING_COMPLETED = "packing_completed"
    SHIPMENT = "shipment"
    DELIVERY = "delivery"
    CANCELLATION = "cancellation"


# (from, to) → causes allowed to drive the edge
_VALID_TRANSITIONS = {
    (OrderStatus.PENDING, OrderStatus.PAID): {TransitionCause.STATUS_UPDATE},
    (OrderStatus.PENDING, OrderStatus.CANCELLED): {
        TransitionCause.CANCELLATION,
        TransitionCause.STATUS_UPDATE,
    },
    (OrderStatus.PAID, OrderStatus.IN_PACKING): {TransitionCause.PACKING_STARTED},
    (OrderStatus.PAID, OrderStatus.CANCELLED): {
        TransitionCause.CANCELLATION,
        TransitionCause.STATUS_UPDATE,
    },
    (OrderStatus.IN_PACKING, OrderStatus.PAID): {TransitionCause.PACKING_CANCELLED},
    (OrderStatus.IN_PACKING, OrderStatus.PACKED): {TransitionCause.PACKING_COMPLETED},
    (OrderStatus.PACKED, OrderStatus.SHIPPED): {TransitionCause.SHIPMENT},
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED): {
        TransitionCause.DELIVERY,
        TransitionCause.STATUS_UPDATE,
    },
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PAID})


class InvalidTransition(Exception):
    """An order status change that the state machine does not allow."""

    def __init__(self, from_status: OrderStatus, to_status: OrderStatus, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        message = f"Cannot transition order from {from_status.value} to {to_status.value}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


def allowed_targets(current: OrderStatus) -> set[OrderStatus]:
    """Statuses reachable from `current` through any cause."""
    return {to for (frm, to) in _VALID_TRANSITIONS if frm == current}


def validate_transition(
    current: OrderStatus,
    target: OrderStatus,
    via: TransitionCause = TransitionCause.STATUS_UPDATE,
) -> None:
    """Raise InvalidTransition unless `current → target` is legal through `via`."""
    if current in TERMINAL_STATUSES:
        raise InvalidTransition(current, target, f"{current.value} is a terminal status")

    causes = _VALID_TRANSITIONS.get((current, target))
    if causes is None:
        if target == OrderStatus.CANCELLED:
            raise InvalidTransition(current, target, "only pending or paid orders can be cancelled")
        raise InvalidTransition(current, target)

    if via not in causes:
        allowed = ", ".join(sorted(c.value for c in causes))
        raise InvalidTransition(current, target, f"only allowed via {allowed}")


def parse_status(value: str) -> OrderStatus:
    """Convert an external status string into an OrderStatus.

    Raises ValueError for anything outside the closed set.
    """
    try:
        return OrderStatus((value or "").strip().lower())
    except ValueError:
        valid = ", ".join(s.value for s in OrderStatus)
        raise ValueError(f"Unknown order status '{value}'. Expected one of: {valid}") from None
