"""Realtime API router — the push WebSocket and the reconciliation snapshot."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.exceptions import UnauthorizedException
from src.modules.identity.auth import AuthenticatedUser, authenticate_token, get_current_user
from src.modules.realtime.distributor import hub
from src.modules.realtime.events import SyncRequired, SyncRequiredPayload
from src.modules.realtime.hub import ClientSession
from src.modules.realtime.schemas import SyncResponse
from src.modules.realtime.sync import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.get("/sync", response_model=SyncResponse)
async def sync_state(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current state to reconcile against before trusting further pushes."""
    snapshot = await SyncService(db).snapshot(user)
    return SyncResponse.model_validate(snapshot)


@router.websocket("/ws")
async def push_socket(websocket: WebSocket, token: str = Query("")):
    """Subscribe to pushes for the token's identity.

    The first message is always ``sync.required``. Clients answer ``ping``
    with ``pong`` and may send ``ping`` themselves; any inbound frame counts
    as a heartbeat.
    """
    try:
        user = authenticate_token(token)
    except UnauthorizedException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    session = ClientSession(websocket, user.id, user.role)
    hub.register(session)
    await hub.send_to_session(session, SyncRequired(payload=SyncRequiredPayload(reason="connected")))

    try:
        while True:
            data = await websocket.receive_text()
            session.touch()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid message format"})
                continue
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.debug("Push socket for %s disconnected", user.id)
    finally:
        hub.unregister(session)
