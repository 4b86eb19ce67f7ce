import enum


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    DRIVER = "DRIVER"
    SUPPLIER = "SUPPLIER"
    ADMIN = "ADMIN"


class FuelType(str, enum.Enum):
    DIESEL = "DIESEL"
    PETROL_93 = "PETROL_93"
    PETROL_95 = "PETROL_95"
    PARAFFIN = "PARAFFIN"


class FulfillmentMode(str, enum.Enum):
    DIRECT = "DIRECT"
    DEPOT_PICKUP = "DEPOT_PICKUP"


class OrderStatus(str, enum.Enum):
    CREATED = "CREATED"
    PENDING_DISPATCH = "PENDING_DISPATCH"
    OFFERED = "OFFERED"
    ASSIGNED = "ASSIGNED"
    PICKED_UP = "PICKED_UP"
    EN_ROUTE = "EN_ROUTE"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class OrderTransitionType(str, enum.Enum):
    QUEUE_DISPATCH = "QUEUE_DISPATCH"
    OFFER = "OFFER"
    ASSIGN = "ASSIGN"
    REQUEUE = "REQUEUE"
    PICK_UP = "PICK_UP"
    START_ROUTE = "START_ROUTE"
    DELIVER = "DELIVER"
    CANCEL = "CANCEL"
    REFUND = "REFUND"


class PaymentMethod(str, enum.Enum):
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class OfferStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    SUPERSEDED = "SUPERSEDED"


class OfferDecision(str, enum.Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"


class DepotOrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    AWAITING_DRIVER_SIGNATURE = "AWAITING_DRIVER_SIGNATURE"
    COMPLETED = "COMPLETED"


class DepotAction(str, enum.Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    SUBMIT_PAYMENT_PROOF = "SUBMIT_PAYMENT_PROOF"
    VERIFY_PAYMENT = "VERIFY_PAYMENT"
    DISPUTE_PAYMENT = "DISPUTE_PAYMENT"
    SUPPLIER_SIGN = "SUPPLIER_SIGN"
    RELEASE = "RELEASE"
    DRIVER_SIGN = "DRIVER_SIGN"


class DepotPaymentStatus(str, enum.Enum):
    AWAITING_PROOF = "AWAITING_PROOF"
    PROOF_SUBMITTED = "PROOF_SUBMITTED"
    VERIFIED = "VERIFIED"
    DISPUTED = "DISPUTED"


class ChatMessageType(str, enum.Enum):
    TEXT = "TEXT"
    IMAGE = "IMAGE"
    SYSTEM = "SYSTEM"


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
