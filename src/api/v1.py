"""Centralized v1 API router — all module routers are included here."""

from fastapi import APIRouter

from src.modules.chat.router import router as chat_router
from src.modules.depot.router import router as depot_router
from src.modules.dispatch.router import router as dispatch_router
from src.modules.order.router import router as order_router
from src.modules.realtime.router import router as realtime_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(order_router)
v1_router.include_router(dispatch_router)
v1_router.include_router(depot_router)
v1_router.include_router(chat_router)
v1_router.include_router(realtime_router)
