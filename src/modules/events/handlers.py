"""EventHandlerRegistry — side-effect consumers of outbox events."""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict], Awaitable[None]]


class EventHandlerRegistry:
    """Class-level registry of async handlers keyed by event type.

    Handlers receive the serialized event envelope. Several handlers may be
    registered for the same event type.
    """

    _handlers: dict[str, list[EventHandler]] = defaultdict(list)

    @classmethod
    def register(cls, event_type: str, handler: EventHandler) -> None:
        if handler in cls._handlers[event_type]:
            return
        cls._handlers[event_type].append(handler)
        logger.info("Registered handler %s for event type %s", handler.__name__, event_type)

    @classmethod
    def on(cls, event_type: str) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: EventHandler) -> EventHandler:
            cls.register(event_type, handler)
            return handler

        return decorator

    @classmethod
    def get_handlers(cls, event_type: str) -> list[EventHandler]:
        return cls._handlers.get(event_type, [])

    @classmethod
    async def dispatch(cls, event_type: str, payload: dict) -> list[dict]:
        """Run every handler for ``event_type``.

        Returns a list of result dicts with handler name and status.
        Errors are logged and captured but do not stop other handlers.
        """
        results = []
        for handler in cls.get_handlers(event_type):
            try:
                await handler(payload)
                results.append({"handler": handler.__name__, "status": "ok"})
            except Exception as exc:
                logger.exception(
                    "Handler %s failed for event type %s", handler.__name__, event_type
                )
                results.append({
                    "handler": handler.__name__,
                    "status": "error",
                    "error": str(exc),
                })
        return results

    @classmethod
    def clear(cls) -> None:
        """Remove all registered handlers. Useful for testing."""
        cls._handlers.clear()
