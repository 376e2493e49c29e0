"""
Persistent per-user visited-cell ledger.

The unique ``(user_id, cell_x, cell_y)`` index on ``visited_cells`` is the
single source of truth for novelty: a cell is new for exactly the one
insert that claims it. Losing a race to a concurrent writer is ordinary
control flow and simply means the cell was not new for us.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from config import DEFAULT_LEDGER_BATCH_SIZE
from core.date_utils import get_current_utc_time
from db.models import VisitedCell
from novelty.models import GridCell

if TYPE_CHECKING:
    from collections.abc import Iterable

    from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

    from db.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

LEDGER_KEY_FIELDS: Final[tuple[str, ...]] = ("user_id", "cell_x", "cell_y")


def neighborhood(cell: GridCell, radius: int) -> list[GridCell]:
    """The (2r+1)^2 block of cells centered on ``cell``."""
    offsets = range(-radius, radius + 1)
    return [GridCell(cell.x + dx, cell.y + dy) for dx in offsets for dy in offsets]


class NoveltyLedger:
    """Set-add access to the ``visited_cells`` collection."""

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        batch_size: int = DEFAULT_LEDGER_BATCH_SIZE,
    ) -> None:
        self.collection = collection
        self.batch_size = max(int(batch_size), 1)

    @classmethod
    def from_database(
        cls,
        database: AsyncIOMotorDatabase,
        batch_size: int = DEFAULT_LEDGER_BATCH_SIZE,
    ) -> NoveltyLedger:
        return cls(database[VisitedCell.Settings.name], batch_size)

    async def register_visited(
        self,
        user_id: str,
        cells: Iterable[GridCell],
        neighbor_radius: int,
        unit: UnitOfWork,
    ) -> set[GridCell]:
        """
        Record the cells (and their halo) as visited by the user.

        Args:
            user_id: Owner of the ledger rows.
            cells: Cells the activity traversed.
            neighbor_radius: Halo radius; every cell within this Chebyshev
                distance of a traversed cell is registered too.
            unit: Unit of work the inserts belong to.

        Returns:
            The cells this call inserted for the first time, halo included.
        """
        radius = max(int(neighbor_radius), 0)
        traversed = list(cells)
        newly_visited: set[GridCell] = set()

        for start in range(0, len(traversed), self.batch_size):
            batch = traversed[start : start + self.batch_size]
            candidates = list(
                dict.fromkeys(
                    neighbor
                    for cell in batch
                    for neighbor in neighborhood(cell, radius)
                    if neighbor not in newly_visited
                ),
            )
            if not candidates:
                continue

            seen_at = get_current_utc_time()
            documents = [
                {
                    "user_id": user_id,
                    "cell_x": candidate.x,
                    "cell_y": candidate.y,
                    "first_seen_at": seen_at,
                }
                for candidate in candidates
            ]
            inserted = await unit.insert_missing(
                self.collection,
                documents,
                LEDGER_KEY_FIELDS,
            )
            newly_visited.update(candidates[idx] for idx in inserted)

        logger.debug(
            "Ledger for user %s: %d traversed cells, %d newly visited (radius %d)",
            user_id,
            len(traversed),
            len(newly_visited),
            radius,
        )
        return newly_visited

    async def count_visited(self, user_id: str) -> int:
        return await self.collection.count_documents({"user_id": user_id})
