"""
Novelty grid engine: masked geometry in, novelty result out.

Simplify -> segment -> ledger -> aggregate. The geometric stages are pure;
the ledger is the only stage that touches storage and it does so through
the caller's unit of work.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from novelty.aggregator import aggregate
from novelty.grid import segment_geometry
from novelty.models import ActivityNoveltyResult

if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry

    from config import NoveltySettings
    from db.unit_of_work import UnitOfWork
    from novelty.ledger import NoveltyLedger

logger = logging.getLogger(__name__)


class NoveltyEngine:
    def __init__(self, settings: NoveltySettings, ledger: NoveltyLedger) -> None:
        self.settings = settings
        self.ledger = ledger

    async def compute(
        self,
        user_id: str,
        geometry: BaseGeometry | dict[str, Any] | None,
        unit: UnitOfWork,
    ) -> ActivityNoveltyResult:
        """Score one activity's geometry against the user's ledger.

        Empty or malformed geometry yields the zero result without touching
        the ledger.
        """
        segmentation = segment_geometry(
            geometry,
            self.settings.cell_size_deg,
            self.settings.snap_tolerance_deg,
            self.settings.grid_simplify_m,
        )
        if not segmentation.accumulators:
            return ActivityNoveltyResult.empty()

        newly_visited = await self.ledger.register_visited(
            user_id,
            segmentation.cells,
            self.settings.neighbor_radius,
            unit,
        )
        result = aggregate(
            segmentation.accumulators,
            segmentation.total_meters,
            newly_visited,
        )
        logger.info(
            "Novelty for user %s: %.1fm of %.1fm new (%d new cells)",
            user_id,
            result.novel_meters,
            result.total_meters,
            result.novel_cell_count,
        )
        return result
