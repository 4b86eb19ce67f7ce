"""Depot fulfillment sub-machine transitions and action ownership."""

from __future__ import annotations

from src.models.enums import DepotAction, DepotOrderStatus

# Valid transitions: from_status -> {action -> to_status}
DEPOT_TRANSITIONS: dict[DepotOrderStatus, dict[DepotAction, DepotOrderStatus]] = {
    DepotOrderStatus.PENDING: {
        # Acceptance passes through ACCEPTED straight into PENDING_PAYMENT
        DepotAction.ACCEPT: DepotOrderStatus.PENDING_PAYMENT,
        DepotAction.REJECT: DepotOrderStatus.REJECTED,
    },
    DepotOrderStatus.PENDING_PAYMENT: {
        DepotAction.SUBMIT_PAYMENT_PROOF: DepotOrderStatus.PENDING_PAYMENT,
        DepotAction.VERIFY_PAYMENT: DepotOrderStatus.PAID,
        DepotAction.DISPUTE_PAYMENT: DepotOrderStatus.PENDING_PAYMENT,
    },
    DepotOrderStatus.PAID: {
        DepotAction.SUPPLIER_SIGN: DepotOrderStatus.READY_FOR_PICKUP,
    },
    DepotOrderStatus.READY_FOR_PICKUP: {
        DepotAction.RELEASE: DepotOrderStatus.AWAITING_DRIVER_SIGNATURE,
    },
    DepotOrderStatus.AWAITING_DRIVER_SIGNATURE: {
        DepotAction.DRIVER_SIGN: DepotOrderStatus.COMPLETED,
    },
}

DEPOT_TERMINAL_STATUSES: set[DepotOrderStatus] = {
    DepotOrderStatus.REJECTED,
    DepotOrderStatus.COMPLETED,
}

# Actions the assigned driver performs; every other action is the supplier's
DRIVER_ACTIONS: set[DepotAction] = {
    DepotAction.SUBMIT_PAYMENT_PROOF,
    DepotAction.DRIVER_SIGN,
}

# Actions that must carry an artifact reference (proof of payment, signature)
EVIDENCE_REQUIRED: set[DepotAction] = {
    DepotAction.SUBMIT_PAYMENT_PROOF,
    DepotAction.SUPPLIER_SIGN,
    DepotAction.DRIVER_SIGN,
}
