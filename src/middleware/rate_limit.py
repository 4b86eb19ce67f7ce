"""Rate limiting — one slowapi limiter keyed by client IP, limits from settings."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from src.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def write_limit() -> str:
    """Limit for order, dispatch and depot mutations (read per request)."""
    return settings.rate_limit_writes


def chat_limit() -> str:
    return settings.rate_limit_chat
