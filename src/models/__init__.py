# Import all models so SQLAlchemy metadata is populated for Alembic autogenerate
from src.models.chat import ChatMessage, ChatThread
from src.models.depot import Depot, DepotPrice
from src.models.depot_order import DepotOrder, DepotOrderTransition
from src.models.dispatch_offer import DispatchOffer
from src.models.driver import Driver
from src.models.enums import (
    ChatMessageType,
    DepotAction,
    DepotOrderStatus,
    DepotPaymentStatus,
    EventStatus,
    FuelType,
    FulfillmentMode,
    OfferDecision,
    OfferStatus,
    OrderStatus,
    OrderTransitionType,
    PaymentMethod,
    PaymentStatus,
    UserRole,
)
from src.models.event_outbox import EventOutbox
from src.models.order import Order
from src.models.order_transition import OrderTransition

__all__ = [
    "ChatMessage",
    "ChatMessageType",
    "ChatThread",
    "Depot",
    "DepotAction",
    "DepotOrder",
    "DepotOrderStatus",
    "DepotOrderTransition",
    "DepotPaymentStatus",
    "DepotPrice",
    "DispatchOffer",
    "Driver",
    "EventOutbox",
    "EventStatus",
    "FuelType",
    "FulfillmentMode",
    "OfferDecision",
    "OfferStatus",
    "Order",
    "OrderStatus",
    "OrderTransition",
    "OrderTransitionType",
    "PaymentMethod",
    "PaymentStatus",
    "UserRole",
]
