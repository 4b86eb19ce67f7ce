"""Outbox handlers for dispatch events."""

from __future__ import annotations

import logging

import httpx

from src.config import settings
from src.modules.events.handlers import EventHandlerRegistry

logger = logging.getLogger(__name__)


@EventHandlerRegistry.on("dispatch.exhausted")
async def alert_admins_of_exhaustion(event: dict) -> None:
    """Escalate an order nobody accepted to the operations webhook."""
    payload = event.get("payload", {})
    if not settings.admin_alert_webhook_url:
        logger.info(
            "No admin webhook configured; order %s exhausted dispatch round %s",
            event.get("order_id"), payload.get("dispatch_round"),
        )
        return

    async with httpx.AsyncClient(timeout=settings.admin_alert_timeout_seconds) as client:
        response = await client.post(
            settings.admin_alert_webhook_url,
            json={
                "type": event.get("type"),
                "order_id": event.get("order_id"),
                "order_number": payload.get("order_number"),
                "dispatch_round": payload.get("dispatch_round"),
                "candidates_tried": payload.get("candidates_tried"),
                "message": (
                    f"Order {payload.get('order_number')} was declined or ignored by "
                    f"every candidate driver; manual dispatch required"
                ),
            },
        )
        response.raise_for_status()

    logger.info("Admin webhook notified about exhausted order %s", event.get("order_id"))
