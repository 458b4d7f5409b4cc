"""Rank engine: insert, move and delete favorites while keeping ranks dense.

Ranks are unique at the storage level and SQLite checks that constraint
after every row it writes, so a range of ranks can never be shifted by one
in place: the first row moved would land on its neighbour. Insert, move and
delete therefore park the affected rows in a temporary range above
``temp_offset`` and bring them back in a second statement. Both
statements and the write that opened or closed the gap run in one
transaction, so other readers only ever see the before or after state.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import TypeVar

from src.database import FavoriteRecord, RankTransaction, Repository
from src.errors import ConstraintViolation, InvalidInputError, NotFoundError
from src.utils.config import Settings
from src.utils.logging import get_logger

from .models import Favorite, FavoriteCreate, FavoriteUpdate, ListOrder

logger = get_logger(__name__)

T = TypeVar("T")

# Must exceed the largest list size ever stored
TEMP_OFFSET = 30000

# Rank held by a favorite while it is between its old and new position
PARKED_RANK = -1


@dataclass
class IntegrityReport:
    """Result of checking that ranks are exactly 1..N."""

    count: int
    missing_ranks: list[int] = field(default_factory=list)
    unexpected_ranks: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing_ranks and not self.unexpected_ranks


class RankEngine:
    """Rank-preserving operations on top of the favorites repository.

    Rank-changing transactions are serialised by a single lock; reads go
    straight to the repository.
    """

    def __init__(self, repository: Repository, temp_offset: int = TEMP_OFFSET) -> None:
        if temp_offset <= 1:
            raise ValueError("temp_offset must be greater than 1")
        self.repository = repository
        self.temp_offset = temp_offset
        self._lock = asyncio.Lock()

    async def _mutate(self, operation: str, work: Callable[[RankTransaction], Awaitable[T]]) -> T:
        async with self._lock:
            try:
                return await self.repository.run_atomic(work)
            except ConstraintViolation as e:
                logger.error("rank_protocol_violation", operation=operation, error=str(e))
                raise

    async def _require(self, txn: RankTransaction, favorite_id: int) -> FavoriteRecord:
        record = await txn.get_by_id(favorite_id)
        if record is None:
            raise NotFoundError(favorite_id)
        return record

    async def _restore_from_temp(self, txn: RankTransaction, delta: int) -> None:
        """Bring every parked rank back into the live range, adjusted by ``delta``."""
        await txn.shift_ranks(-self.temp_offset + delta, lower=self.temp_offset + 1)

    # Reads

    async def list(self, order: ListOrder = ListOrder.RANK) -> list[Favorite]:
        """List favorites by rank or by most recently played."""
        if order == ListOrder.RECENT:
            records = await self.repository.list_by_recency()
        else:
            records = await self.repository.list_by_rank()
        return [Favorite.model_validate(r) for r in records]

    async def get(self, favorite_id: int) -> Favorite:
        record = await self.repository.get_by_id(favorite_id)
        if record is None:
            raise NotFoundError(favorite_id)
        return Favorite.model_validate(record)

    async def get_max_rank(self) -> int:
        """Highest rank in use, 0 for an empty list."""
        return await self.repository.get_max_rank()

    # Mutations

    async def insert(self, data: FavoriteCreate) -> Favorite:
        """Insert a favorite at ``data.rank``, pushing later favorites down by one."""

        async def work(txn: RankTransaction) -> Favorite:
            count = await txn.count()
            if count + 1 >= self.temp_offset:
                raise InvalidInputError(f"List is full ({count} favorites)")
            if not 1 <= data.rank <= count + 1:
                raise InvalidInputError(f"Rank must be between 1 and {count + 1}, got {data.rank}")

            await txn.shift_ranks(self.temp_offset, lower=data.rank)
            favorite_id = await txn.insert_raw(**data.columns())
            await self._restore_from_temp(txn, +1)
            return Favorite.model_validate(await txn.get_by_id(favorite_id))

        favorite = await self._mutate("insert", work)
        logger.info("favorite_inserted", id=favorite.id, rank=favorite.rank, title=favorite.title)
        return favorite

    async def update(self, favorite_id: int, data: FavoriteUpdate) -> Favorite:
        """Apply field edits and, if ``rank`` is set and differs, move the favorite."""
        changes = data.columns()
        return await self._update(favorite_id, changes.pop("rank", None), changes)

    async def move(self, favorite_id: int, rank: int) -> Favorite:
        """Move a favorite to ``rank`` without touching its other fields.

        Raises:
            InvalidInputError: If ``rank`` is outside 1..N
        """
        return await self._update(favorite_id, rank, {})

    async def _update(self, favorite_id: int, new_rank: int | None, changes: dict) -> Favorite:
        async def work(txn: RankTransaction) -> tuple[Favorite, int]:
            current = await self._require(txn, favorite_id)
            old_rank = current.rank

            if new_rank is None or new_rank == old_rank:
                await txn.update_raw(favorite_id, **changes)
            else:
                count = await txn.count()
                if not 1 <= new_rank <= count:
                    raise InvalidInputError(f"Rank must be between 1 and {count}, got {new_rank}")

                await txn.update_raw(favorite_id, rank=PARKED_RANK)
                if new_rank < old_rank:
                    # Favorites in [new, old) each move one place down the list
                    await txn.shift_ranks(self.temp_offset, lower=new_rank, upper=old_rank - 1)
                    await txn.update_raw(favorite_id, rank=new_rank, **changes)
                    await self._restore_from_temp(txn, +1)
                else:
                    # Favorites in (old, new] each move one place up the list
                    await txn.shift_ranks(self.temp_offset, lower=old_rank + 1, upper=new_rank)
                    await txn.update_raw(favorite_id, rank=new_rank, **changes)
                    await self._restore_from_temp(txn, -1)

            return Favorite.model_validate(await txn.get_by_id(favorite_id)), old_rank

        favorite, old_rank = await self._mutate("update", work)
        if favorite.rank != old_rank:
            logger.info("favorite_moved", id=favorite_id, from_rank=old_rank, to_rank=favorite.rank)
        if changes:
            logger.info("favorite_updated", id=favorite_id, fields=sorted(changes))
        return favorite

    async def delete(self, favorite_id: int) -> Favorite:
        """Delete a favorite and close the gap it leaves.

        Returns:
            Snapshot of the deleted favorite
        """

        async def work(txn: RankTransaction) -> Favorite:
            current = Favorite.model_validate(await self._require(txn, favorite_id))
            await txn.delete_raw(favorite_id)
            await txn.shift_ranks(self.temp_offset, lower=current.rank + 1)
            await self._restore_from_temp(txn, -1)
            return current

        favorite = await self._mutate("delete", work)
        logger.info("favorite_deleted", id=favorite_id, rank=favorite.rank)
        return favorite

    async def mark_played(self, favorite_id: int, today: date | None = None) -> Favorite:
        """Set ``last_played`` to today's local date."""
        played_on = today or date.today()

        async def work(txn: RankTransaction) -> Favorite:
            await self._require(txn, favorite_id)
            await txn.update_raw(favorite_id, last_played=played_on.isoformat())
            return Favorite.model_validate(await txn.get_by_id(favorite_id))

        favorite = await self._mutate("mark_played", work)
        logger.info("favorite_played", id=favorite_id, last_played=played_on.isoformat())
        return favorite

    # Maintenance

    async def check_integrity(self) -> IntegrityReport:
        """Compare the stored ranks with 1..N."""
        ranks = [r.rank for r in await self.repository.list_by_rank()]
        expected = set(range(1, len(ranks) + 1))
        actual = set(ranks)
        report = IntegrityReport(
            count=len(ranks),
            missing_ranks=sorted(expected - actual),
            unexpected_ranks=sorted(actual - expected),
        )
        if not report.ok:
            logger.warning(
                "rank_integrity_failed",
                missing=report.missing_ranks,
                unexpected=report.unexpected_ranks,
            )
        return report

    async def normalize(self) -> int:
        """Renumber favorites 1..N keeping their current order.

        Returns:
            Number of favorites whose rank changed
        """

        async def work(txn: RankTransaction) -> int:
            records = await txn.list_by_rank()
            moved = [(r.id, position) for position, r in enumerate(records, 1) if r.rank != position]
            if not moved:
                return 0

            # Stray ranks may sit anywhere, temp range included, so park below all of them
            pivot = min(records[0].rank, 0)
            for favorite_id, position in moved:
                await txn.update_raw(favorite_id, rank=pivot - position)
            await txn.reflect_ranks(pivot)
            return len(moved)

        changed = await self._mutate("normalize", work)
        logger.info("ranks_normalized", changed=changed)
        return changed


@asynccontextmanager
async def open_engine(settings: Settings) -> AsyncIterator[RankEngine]:
    """Create the store and engine for one process and close them afterwards."""
    settings.database.ensure_directory()
    repository = Repository(settings.database.url)
    try:
        await repository.init_db()
        yield RankEngine(repository, temp_offset=settings.ranking.temp_offset)
    finally:
        await repository.close()
