from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, VersionedMixin
from src.database.cas import compare_and_swap
from src.database.engine import async_session, engine
from src.database.session import get_db

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "VersionedMixin",
    "async_session",
    "compare_and_swap",
    "engine",
    "get_db",
]
