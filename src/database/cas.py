"""Compare-and-swap writes — the only concurrency-control primitive."""

from __future__ import annotations

import uuid
from typing import Any, TypeVar

from sqlalchemy import ColumnElement, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import ConflictException, NotFoundException

T = TypeVar("T")


async def try_compare_and_swap(
    session: AsyncSession,
    model: type[T],
    record_id: uuid.UUID,
    expected_version: int,
    values: dict[str, Any],
    *conditions: ColumnElement[bool],
) -> T | None:
    """Apply ``values`` only if the row is still at ``expected_version``.

    ``conditions`` narrow the guard further (usually the expected status).
    The version is bumped on success and the refreshed record returned;
    ``None`` means another writer got there first.
    """
    statement = (
        update(model)
        .where(model.id == record_id, model.version == expected_version, *conditions)
        .values(**values, version=model.version + 1)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(statement)
    if result.rowcount != 1:
        return None

    refreshed = await session.execute(
        select(model)
        .where(model.id == record_id)
        .execution_options(populate_existing=True)
    )
    return refreshed.scalar_one()


async def compare_and_swap(
    session: AsyncSession,
    model: type[T],
    record_id: uuid.UUID,
    expected_version: int,
    values: dict[str, Any],
    *conditions: ColumnElement[bool],
) -> T:
    """Like :func:`try_compare_and_swap` but raises on a lost race."""
    record = await try_compare_and_swap(
        session, model, record_id, expected_version, values, *conditions
    )
    if record is not None:
        return record

    exists = await session.execute(select(model.id).where(model.id == record_id))
    if exists.scalar_one_or_none() is None:
        raise NotFoundException(f"{model.__name__} {record_id} not found")
    raise ConflictException(
        f"{model.__name__} {record_id} was modified concurrently "
        f"(expected version {expected_version}); re-fetch and retry"
    )
