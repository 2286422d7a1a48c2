"""Generic repository base for the queue tables.

Sessions are always passed in explicitly and transactions belong to the
caller: repositories flush, they never commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from sqlalchemy import Select, func, select

from notify_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class SearchResult(Generic[T]):
    """One page of rows plus the total across all pages."""

    items: Sequence[T]
    total: int
    limit: int
    offset: int

    @property
    def page(self) -> int:
        return (self.offset // self.limit) + 1 if self.limit else 1

    @property
    def pages(self) -> int:
        """Number of pages; zero when there are no rows."""
        if self.limit == 0:
            return 1 if self.total else 0
        return -(-self.total // self.limit)


class BaseRepository(Generic[T]):
    """Shared helpers for a single mapped model."""

    __slots__ = ("model", "_logger", "_lazy")

    def __init__(self, model: type[T]) -> None:
        self.model = model
        self._logger = logging.getLogger(f"repository.{model.__name__}")
        self._lazy = get_lazy_logger(f"repository.{model.__name__}")

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Add ``instance`` and flush so server-side defaults are populated."""
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        self._lazy.debug(lambda: f"db.create: {self.model.__name__}(id={getattr(instance, 'id', None)})")
        return instance

    async def search(
        self,
        session: AsyncSession,
        statement: Select[tuple[T]],
        *,
        limit: int,
        offset: int = 0,
    ) -> SearchResult[T]:
        """Run ``statement`` for one page and count all matching rows.

        The statement's own ordering is kept for the page and dropped for
        the count.
        """
        count_stmt = select(func.count()).select_from(statement.order_by(None).subquery())
        total = (await session.execute(count_stmt)).scalar_one()
        items = (await session.execute(statement.limit(limit).offset(offset))).scalars().all()

        self._lazy.debug(
            lambda: f"db.search: {self.model.__name__}(limit={limit}, offset={offset}) -> {len(items)}/{total}"
        )
        return SearchResult(items=items, total=total, limit=limit, offset=offset)
