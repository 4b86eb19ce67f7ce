"""Reconciliation snapshot — the state a client pulls after ``sync.required``."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.depot_order import DepotOrder
from src.models.dispatch_offer import DispatchOffer
from src.models.enums import OfferStatus, UserRole
from src.models.order import Order
from src.modules.depot.constants import DEPOT_TERMINAL_STATUSES
from src.modules.identity.auth import AuthenticatedUser
from src.modules.order.constants import ORDER_TERMINAL_STATUSES

# Bounds the snapshot for admins, who see every active order
SNAPSHOT_LIMIT = 200


class SyncSnapshot:
    def __init__(
        self,
        orders: list[Order],
        offers: list[DispatchOffer],
        depot_orders: list[DepotOrder],
    ) -> None:
        self.server_time = datetime.now(UTC)
        self.orders = orders
        self.offers = offers
        self.depot_orders = depot_orders


class SyncService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def snapshot(self, user: AuthenticatedUser) -> SyncSnapshot:
        """Active orders, pending offers and active depot orders for ``user``."""
        orders_query = select(Order).where(Order.status.not_in(ORDER_TERMINAL_STATUSES))
        depot_query = select(DepotOrder).where(
            DepotOrder.status.not_in(DEPOT_TERMINAL_STATUSES)
        )

        if user.role == UserRole.CUSTOMER:
            orders_query = orders_query.where(Order.customer_id == user.id)
            depot_query = depot_query.where(
                DepotOrder.order_id.in_(
                    select(Order.id).where(Order.customer_id == user.id).scalar_subquery()
                )
            )
        elif user.role == UserRole.DRIVER:
            orders_query = orders_query.where(Order.driver_id == user.id)
            depot_query = depot_query.where(DepotOrder.driver_id == user.id)
        elif user.role == UserRole.SUPPLIER:
            orders_query = orders_query.where(Order.supplier_id == user.id)
            depot_query = depot_query.where(DepotOrder.supplier_id == user.id)

        orders = await self.db.execute(
            orders_query.order_by(Order.updated_at.desc()).limit(SNAPSHOT_LIMIT)
        )
        depot_orders = await self.db.execute(
            depot_query.order_by(DepotOrder.updated_at.desc()).limit(SNAPSHOT_LIMIT)
        )

        offers: list[DispatchOffer] = []
        if user.role == UserRole.DRIVER:
            offer_result = await self.db.execute(
                select(DispatchOffer)
                .where(
                    DispatchOffer.driver_id == user.id,
                    DispatchOffer.status == OfferStatus.PENDING,
                )
                .order_by(DispatchOffer.expires_at.asc())
            )
            offers = list(offer_result.scalars().all())

        return SyncSnapshot(
            orders=list(orders.scalars().all()),
            offers=offers,
            depot_orders=list(depot_orders.scalars().all()),
        )
