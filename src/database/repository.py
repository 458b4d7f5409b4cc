"""Rank store: async repository over the favorites table."""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.errors import ConstraintViolation
from src.utils.logging import get_logger

from .models import Base, FavoriteRecord

logger = get_logger(__name__)

T = TypeVar("T")

# Columns a caller may write directly; id is assigned by the database
WRITABLE_FIELDS = frozenset({"rank", "title", "artist", "year", "last_played"})


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown favorite fields: {', '.join(sorted(unknown))}")


class RankTransaction:
    """Reads and writes bound to one open transaction.

    Every write is flushed to the database immediately, so the UNIQUE
    constraint on ``rank`` is checked per write rather than at commit.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, favorite_id: int) -> FavoriteRecord | None:
        """Get a favorite as currently seen by this transaction."""
        result = await self.session.execute(
            select(FavoriteRecord)
            .where(FavoriteRecord.id == favorite_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def count(self) -> int:
        return await self.session.scalar(select(func.count(FavoriteRecord.id))) or 0

    async def list_by_rank(self) -> list[FavoriteRecord]:
        result = await self.session.execute(
            select(FavoriteRecord)
            .order_by(FavoriteRecord.rank)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def insert_raw(self, **fields: Any) -> int:
        """Insert a favorite at the caller-supplied rank.

        Returns:
            The id assigned by the database
        """
        _check_fields(fields)
        record = FavoriteRecord(**fields)
        self.session.add(record)
        await self.session.flush()
        return record.id

    async def update_raw(self, favorite_id: int, **fields: Any) -> int:
        """Update columns of one favorite in place.

        Returns:
            Number of rows updated (0 if the id does not exist)
        """
        _check_fields(fields)
        if not fields:
            return 0
        result = await self.session.execute(
            update(FavoriteRecord)
            .where(FavoriteRecord.id == favorite_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_raw(self, favorite_id: int) -> int:
        result = await self.session.execute(
            delete(FavoriteRecord)
            .where(FavoriteRecord.id == favorite_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def shift_ranks(
        self,
        delta: int,
        lower: int | None = None,
        upper: int | None = None,
    ) -> int:
        """Add ``delta`` to every rank in the inclusive window [lower, upper].

        Args:
            delta: Amount added to each matching rank (may be negative)
            lower: Smallest rank affected, unbounded if None
            upper: Largest rank affected, unbounded if None

        Returns:
            Number of rows shifted
        """
        stmt = update(FavoriteRecord).values(rank=FavoriteRecord.rank + delta)
        if lower is not None:
            stmt = stmt.where(FavoriteRecord.rank >= lower)
        if upper is not None:
            stmt = stmt.where(FavoriteRecord.rank <= upper)

        result = await self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        logger.debug("ranks_shifted", delta=delta, lower=lower, upper=upper, rows=result.rowcount)
        return result.rowcount

    async def reflect_ranks(self, pivot: int) -> int:
        """Set ``rank = pivot - rank`` for every rank below ``pivot``.

        Ranks parked at ``pivot - n`` come back as ``n``. Rows at or above
        the pivot are left alone.
        """
        stmt = (
            update(FavoriteRecord)
            .where(FavoriteRecord.rank < pivot)
            .values(rank=pivot - FavoriteRecord.rank)
        )
        result = await self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        logger.debug("ranks_reflected", pivot=pivot, rows=result.rowcount)
        return result.rowcount


class Repository:
    """Async repository for the favorites table."""

    def __init__(self, database_url: str) -> None:
        """Initialize the repository.

        Args:
            database_url: SQLAlchemy database URL (e.g., sqlite+aiosqlite:///favorites.db)
        """
        self.engine = create_async_engine(database_url, echo=False)
        self.session_factory = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    async def init_db(self) -> None:
        """Create the favorites table if it does not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_initialized")

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()

    # Transactions

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[RankTransaction]:
        """Open a transaction that commits on success and rolls back on error.

        A UNIQUE violation on ``rank`` is re-raised as ConstraintViolation
        after the rollback.
        """
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield RankTransaction(session)
            except IntegrityError as e:
                message = str(e.orig)
                if "UNIQUE" not in message or "rank" not in message:
                    raise
                raise ConstraintViolation(str(e.orig)) from e

    async def run_atomic(self, work: Callable[[RankTransaction], Awaitable[T]]) -> T:
        """Run ``work`` so that all of its writes land together or not at all."""
        async with self.atomic() as txn:
            return await work(txn)

    # Single-write helpers, each in its own transaction

    async def insert_raw(self, **fields: Any) -> int:
        async with self.atomic() as txn:
            return await txn.insert_raw(**fields)

    async def update_raw(self, favorite_id: int, **fields: Any) -> int:
        async with self.atomic() as txn:
            return await txn.update_raw(favorite_id, **fields)

    async def delete_raw(self, favorite_id: int) -> int:
        async with self.atomic() as txn:
            return await txn.delete_raw(favorite_id)

    # Reads

    async def get_by_id(self, favorite_id: int) -> FavoriteRecord | None:
        """Get a favorite by id."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(FavoriteRecord).where(FavoriteRecord.id == favorite_id)
            )
            return result.scalar_one_or_none()

    async def list_by_rank(self) -> list[FavoriteRecord]:
        """Get all favorites, best rank first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(FavoriteRecord).order_by(FavoriteRecord.rank)
            )
            return list(result.scalars().all())

    async def list_by_recency(self) -> list[FavoriteRecord]:
        """Get all favorites, most recently played first.

        Never-played favorites come last; ties are broken by rank.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(FavoriteRecord).order_by(
                    FavoriteRecord.last_played.desc().nullslast(),
                    FavoriteRecord.rank,
                )
            )
            return list(result.scalars().all())

    async def count(self) -> int:
        async with self.session_factory() as session:
            return await session.scalar(select(func.count(FavoriteRecord.id))) or 0

    async def get_max_rank(self) -> int:
        """Get the highest rank in use, 0 when the table is empty."""
        async with self.session_factory() as session:
            return await session.scalar(select(func.max(FavoriteRecord.rank))) or 0
