"""Depot order API router."""

import uuid

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.middleware.rate_limit import limiter, write_limit
from src.models.enums import DepotOrderStatus
from src.modules.depot.schemas import (
    DepotActionRequest,
    DepotOrderListResponse,
    DepotOrderResponse,
)
from src.modules.depot.service import DepotService
from src.modules.identity.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/depot-orders", tags=["depot-orders"])


@router.get("/", response_model=DepotOrderListResponse)
async def list_depot_orders(
    status: DepotOrderStatus | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DepotService(db)
    items, total = await svc.list_depot_orders(user, status=status, limit=limit, offset=offset)
    return DepotOrderListResponse(
        items=[DepotOrderResponse.model_validate(d) for d in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{depot_order_id}", response_model=DepotOrderResponse)
async def get_depot_order(
    depot_order_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DepotService(db)
    depot_order = await svc.get_for(depot_order_id, user)
    return DepotOrderResponse.model_validate(depot_order)


@router.post("/{depot_order_id}/actions", response_model=DepotOrderResponse)
@limiter.limit(write_limit)
async def apply_depot_action(
    request: Request,
    depot_order_id: uuid.UUID,
    body: DepotActionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Apply a supplier or driver action to the depot workflow."""
    svc = DepotService(db)
    depot_order = await svc.transition_depot_order(
        depot_order_id,
        body.action,
        user,
        evidence_ref=body.evidence_ref,
        reason=body.reason,
    )
    return DepotOrderResponse.model_validate(depot_order)
