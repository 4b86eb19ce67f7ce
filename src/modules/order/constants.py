"""Order state machine transitions, terminal states, and transition timestamps."""

from __future__ import annotations

from src.models.enums import OrderStatus, OrderTransitionType

# Valid transitions: from_status -> {transition_type -> to_status}
ORDER_TRANSITIONS: dict[OrderStatus, dict[OrderTransitionType, OrderStatus]] = {
    OrderStatus.CREATED: {
        OrderTransitionType.QUEUE_DISPATCH: OrderStatus.PENDING_DISPATCH,
        OrderTransitionType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.PENDING_DISPATCH: {
        OrderTransitionType.OFFER: OrderStatus.OFFERED,
        OrderTransitionType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.OFFERED: {
        OrderTransitionType.ASSIGN: OrderStatus.ASSIGNED,
        OrderTransitionType.REQUEUE: OrderStatus.PENDING_DISPATCH,
        OrderTransitionType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.ASSIGNED: {
        OrderTransitionType.PICK_UP: OrderStatus.PICKED_UP,
        OrderTransitionType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.PICKED_UP: {
        OrderTransitionType.START_ROUTE: OrderStatus.EN_ROUTE,
        OrderTransitionType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.EN_ROUTE: {
        OrderTransitionType.DELIVER: OrderStatus.DELIVERED,
        OrderTransitionType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.DELIVERED: {
        OrderTransitionType.REFUND: OrderStatus.REFUNDED,
    },
    OrderStatus.CANCELLED: {
        OrderTransitionType.REFUND: OrderStatus.REFUNDED,
    },
}

# Terminal statuses: only the refund path leads out of DELIVERED / CANCELLED
ORDER_TERMINAL_STATUSES: set[OrderStatus] = {
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
}

# Transitions only the assigned driver may perform
DRIVER_TRANSITIONS: set[OrderTransitionType] = {
    OrderTransitionType.PICK_UP,
    OrderTransitionType.START_ROUTE,
    OrderTransitionType.DELIVER,
}

# Timestamp column stamped when the order enters a status
STATUS_TIMESTAMPS: dict[OrderStatus, str] = {
    OrderStatus.PENDING_DISPATCH: "dispatch_requested_at",
    OrderStatus.ASSIGNED: "assigned_at",
    OrderStatus.PICKED_UP: "picked_up_at",
    OrderStatus.EN_ROUTE: "en_route_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REFUNDED: "refunded_at",
}

ORDER_NUMBER_PREFIX = "FF"
