"""Who may chat about an order, and when."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from src.models.enums import UserRole
from src.models.order import Order
from src.modules.order.constants import ORDER_TERMINAL_STATUSES

DENY_NO_DRIVER = "NO_DRIVER_ASSIGNED"
DENY_NOT_PARTICIPANT = "NOT_A_PARTICIPANT"
DENY_ORDER_CLOSED = "ORDER_CLOSED"


@dataclass(frozen=True)
class ChatAccess:
    allowed: bool
    reason: str | None = None
    # The requester's side of the conversation and the other participant
    role: UserRole | None = None
    counterpart_id: uuid.UUID | None = None


def chat_access(order: Order, requester_id: uuid.UUID) -> ChatAccess:
    """Chat is open between the customer and the assigned driver until the order closes."""
    if order.driver_id is None:
        return ChatAccess(False, DENY_NO_DRIVER)
    if requester_id == order.customer_id:
        role, counterpart = UserRole.CUSTOMER, order.driver_id
    elif requester_id == order.driver_id:
        role, counterpart = UserRole.DRIVER, order.customer_id
    else:
        return ChatAccess(False, DENY_NOT_PARTICIPANT)
    if order.status in ORDER_TERMINAL_STATUSES:
        return ChatAccess(False, DENY_ORDER_CLOSED)
    return ChatAccess(True, role=role, counterpart_id=counterpart)
