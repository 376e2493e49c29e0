"""
Novelty Grid Package.

Determines how much of an activity covered ground its user had never
visited before:
- Douglas-Peucker simplification over a local planar projection
- Grid segmentation with re-entry suppression
- Persistent per-user visited-cell ledger with halo buffering
- Aggregation into an ActivityNoveltyResult

Usage:
    from novelty import NoveltyEngine, NoveltyLedger

    engine = NoveltyEngine(settings, NoveltyLedger.from_database(db_manager.db))
    async with unit_of_work() as unit:
        result = await engine.compute(user_id, masked_geometry, unit)
"""

from novelty.aggregator import aggregate
from novelty.engine import NoveltyEngine
from novelty.grid import GridSegmenter, segment, segment_geometry
from novelty.ledger import NoveltyLedger
from novelty.models import (
    ActivityNoveltyResult,
    CellAccumulator,
    GridCell,
    SegmentationResult,
)
from novelty.simplify import simplify_track

__all__ = [
    # Results and value types
    "ActivityNoveltyResult",
    "CellAccumulator",
    "GridCell",
    # Stages
    "GridSegmenter",
    "NoveltyEngine",
    "NoveltyLedger",
    "SegmentationResult",
    "aggregate",
    "segment",
    "segment_geometry",
    "simplify_track",
]
