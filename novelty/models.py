"""
Value types shared by the novelty grid stages.

Everything here is plain in-memory data; persistence lives in
``novelty.ledger`` and ``db.models``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from core.spatial import Point

Segment = tuple[Point, Point]


@dataclass(frozen=True, slots=True, order=True)
class GridCell:
    """Integer cell index on the uniform lon/lat grid."""

    x: int
    y: int

    @classmethod
    def containing(cls, point: Point, cell_size_deg: float) -> GridCell:
        return cls(
            math.floor(point[0] / cell_size_deg),
            math.floor(point[1] / cell_size_deg),
        )

    def bounds(self, cell_size_deg: float) -> tuple[float, float, float, float]:
        """(min_lon, min_lat, max_lon, max_lat) of the cell square."""
        return (
            self.x * cell_size_deg,
            self.y * cell_size_deg,
            (self.x + 1) * cell_size_deg,
            (self.y + 1) * cell_size_deg,
        )


@dataclass(slots=True)
class CellAccumulator:
    """Per-activity tally of the distance credited to one cell."""

    cell: GridCell
    length_m: float = 0.0
    segments: list[Segment] = field(default_factory=list)
    is_active: bool = False
    first_pass_done: bool = False

    def close(self) -> None:
        """Mark the first contiguous interval through this cell as finished."""
        self.is_active = False
        self.first_pass_done = True


@dataclass(frozen=True)
class SegmentationResult:
    """Output of the grid segmenter for one track."""

    accumulators: dict[GridCell, CellAccumulator]
    total_meters: float

    @property
    def cells(self) -> list[GridCell]:
        return list(self.accumulators)

    @classmethod
    def empty(cls) -> SegmentationResult:
        return cls(accumulators={}, total_meters=0.0)


@dataclass(frozen=True)
class ActivityNoveltyResult:
    """How much of one activity covered ground the user had never visited."""

    total_meters: float = 0.0
    novel_meters: float = 0.0
    novel_fraction: float = 0.0
    novel_cell_count: int = 0
    novel_segments: tuple[Segment, ...] = ()

    @classmethod
    def empty(cls) -> ActivityNoveltyResult:
        return cls()

    def novel_geometry(self) -> dict[str, Any] | None:
        """GeoJSON of the novel sub-segments, or None when nothing was new."""
        if not self.novel_segments:
            return None
        lines = [[list(start), list(end)] for start, end in self.novel_segments]
        if len(lines) == 1:
            return {"type": "LineString", "coordinates": lines[0]}
        return {"type": "MultiLineString", "coordinates": lines}
