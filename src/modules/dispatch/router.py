"""Dispatch API router — start dispatch rounds, resolve and list offers."""

import uuid

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.middleware.rate_limit import limiter, write_limit
from src.models.enums import OfferStatus, UserRole
from src.modules.dispatch.schemas import (
    DispatchOutcomeResponse,
    DispatchRequest,
    OfferListResponse,
    OfferResolveRequest,
    OfferResponse,
)
from src.modules.dispatch.service import DispatchOutcome, DispatchService
from src.modules.identity.auth import AuthenticatedUser, get_current_user, require_role
from src.modules.order.schemas import OrderResponse

router = APIRouter(tags=["dispatch"])


def get_dispatch_service(db: AsyncSession = Depends(get_db)) -> DispatchService:
    """Dependency seam; tests swap in a service with a recording timer."""
    return DispatchService(db)


def _outcome_response(outcome: DispatchOutcome) -> DispatchOutcomeResponse:
    return DispatchOutcomeResponse(
        order=OrderResponse.model_validate(outcome.order),
        offer=OfferResponse.model_validate(outcome.offer) if outcome.offer else None,
        exhausted=outcome.exhausted,
    )


@router.post("/orders/{order_id}/dispatch", response_model=DispatchOutcomeResponse)
@limiter.limit(write_limit)
async def request_dispatch(
    request: Request,
    order_id: uuid.UUID,
    body: DispatchRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    svc: DispatchService = Depends(get_dispatch_service),
):
    """Start a dispatch round (customer or admin)."""
    outcome = await svc.request_dispatch(order_id, user, candidates=body.candidates)
    return _outcome_response(outcome)


@router.post("/offers/{offer_id}/resolve", response_model=DispatchOutcomeResponse)
@limiter.limit(write_limit)
async def resolve_offer(
    request: Request,
    offer_id: uuid.UUID,
    body: OfferResolveRequest,
    user: AuthenticatedUser = Depends(require_role(UserRole.DRIVER)),
    svc: DispatchService = Depends(get_dispatch_service),
):
    """Accept or reject an offer as the offered driver."""
    outcome = await svc.resolve_offer(offer_id, user, body.decision, reason=body.reason)
    return _outcome_response(outcome)


@router.get("/offers", response_model=OfferListResponse)
async def list_offers(
    status: OfferStatus | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(require_role(UserRole.DRIVER)),
    svc: DispatchService = Depends(get_dispatch_service),
):
    """The calling driver's offers, newest first."""
    items = await svc.list_offers_for_driver(user.id, status=status, limit=limit, offset=offset)
    return OfferListResponse(
        items=[OfferResponse.model_validate(o) for o in items],
        limit=limit,
        offset=offset,
    )
