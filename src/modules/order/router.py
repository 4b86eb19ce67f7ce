"""Order API router — creation, reads, and lifecycle transitions."""

import uuid

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.middleware.rate_limit import limiter, write_limit
from src.models.enums import OrderStatus, UserRole
from src.modules.identity.auth import AuthenticatedUser, get_current_user, require_role
from src.modules.order.schemas import (
    OrderCancelRequest,
    OrderCreate,
    OrderListResponse,
    OrderRefundRequest,
    OrderResponse,
    PaymentConfirmation,
)
from src.modules.order.service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


# ---------------------------------------------------------------------------
# Order CRUD
# ---------------------------------------------------------------------------


@router.post("/", response_model=OrderResponse, status_code=201)
@limiter.limit(write_limit)
async def create_order(
    request: Request,
    body: OrderCreate,
    user: AuthenticatedUser = Depends(require_role(UserRole.CUSTOMER)),
    db: AsyncSession = Depends(get_db),
):
    """Place a priced order in CREATED status."""
    svc = OrderService(db)
    order = await svc.create_order(customer_id=user.id, **body.model_dump())
    return OrderResponse.model_validate(order)


@router.get("/", response_model=OrderListResponse)
async def list_orders(
    status: OrderStatus | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List orders visible to the caller's role."""
    svc = OrderService(db)
    items, total = await svc.list_orders(user, status=status, limit=limit, offset=offset)
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = OrderService(db)
    order = await svc.get_order_for(order_id, user)
    return OrderResponse.model_validate(order)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    body: OrderCancelRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel an order (customer or admin)."""
    svc = OrderService(db)
    order = await svc.cancel_order(order_id, user, reason=body.reason)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/pick-up", response_model=OrderResponse)
async def pick_up_order(
    order_id: uuid.UUID,
    user: AuthenticatedUser = Depends(require_role(UserRole.DRIVER)),
    db: AsyncSession = Depends(get_db),
):
    svc = OrderService(db)
    order = await svc.mark_picked_up(order_id, user)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/en-route", response_model=OrderResponse)
async def start_route(
    order_id: uuid.UUID,
    user: AuthenticatedUser = Depends(require_role(UserRole.DRIVER)),
    db: AsyncSession = Depends(get_db),
):
    svc = OrderService(db)
    order = await svc.mark_en_route(order_id, user)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/deliver", response_model=OrderResponse)
async def deliver_order(
    order_id: uuid.UUID,
    user: AuthenticatedUser = Depends(require_role(UserRole.DRIVER)),
    db: AsyncSession = Depends(get_db),
):
    svc = OrderService(db)
    order = await svc.mark_delivered(order_id, user)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/refund", response_model=OrderResponse)
async def refund_order(
    order_id: uuid.UUID,
    body: OrderRefundRequest,
    user: AuthenticatedUser = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Refund a paid order that was delivered or cancelled."""
    svc = OrderService(db)
    order = await svc.refund_order(order_id, user, reason=body.reason)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/payment", response_model=OrderResponse)
async def confirm_payment(
    order_id: uuid.UUID,
    body: PaymentConfirmation,
    user: AuthenticatedUser = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Payment collaborator callback: mark the order as paid."""
    svc = OrderService(db)
    order = await svc.mark_paid(order_id, user, reference=body.reference)
    return OrderResponse.model_validate(order)
