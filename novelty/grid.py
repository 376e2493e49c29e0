"""
Grid segmentation of activity tracks.

Every line of a (masked) activity geometry is simplified, snapped to the
snap grid, subdivided so that no sub-segment spans more than one cell
width, and each sub-segment is credited to the cell containing its
midpoint. Within one activity a cell is credited only for its first
contiguous interval; re-entries still become the current cell but add
no length.
"""

from __future__ import annotations

import logging
import math
import sys
from typing import TYPE_CHECKING, Any

from shapely.errors import ShapelyError
from shapely.geometry import GeometryCollection, LineString, MultiLineString, shape
from shapely.geometry.base import BaseGeometry

from core.spatial import Point, haversine_meters
from novelty.models import CellAccumulator, GridCell, SegmentationResult
from novelty.simplify import simplify_track

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

logger = logging.getLogger(__name__)


def snap_value(value: float, step: float) -> float:
    """Round to the nearest multiple of ``step``; halves round up."""
    return math.floor(value / step + 0.5) * step


def snap_point(point: Sequence[float], step: float) -> Point:
    return (snap_value(point[0], step), snap_value(point[1], step))


def subdivision_steps(start: Point, end: Point, cell_size_deg: float) -> int:
    """Number of equal sub-segments needed so none spans more than one cell."""
    span = max(abs(end[0] - start[0]), abs(end[1] - start[1]))
    if not math.isfinite(span):
        return 1
    return max(1, math.ceil(span / max(cell_size_deg, sys.float_info.epsilon)))


def iter_lines(geometry: BaseGeometry | None) -> Iterator[list[Point]]:
    """Yield the coordinate list of every line in a geometry.

    LineString, MultiLineString and GeometryCollection (recursively) are
    walked; every other geometry type contributes nothing.
    """
    if geometry is None or geometry.is_empty:
        return
    if isinstance(geometry, LineString):
        yield [(c[0], c[1]) for c in geometry.coords]
    elif isinstance(geometry, MultiLineString):
        for line in geometry.geoms:
            yield [(c[0], c[1]) for c in line.coords]
    elif isinstance(geometry, GeometryCollection):
        for part in geometry.geoms:
            yield from iter_lines(part)


def geometry_from_geojson(value: dict[str, Any] | None) -> BaseGeometry | None:
    """Build a shapely geometry, or None when the GeoJSON is unusable."""
    if not value:
        return None
    try:
        return shape(value)
    except (
        ShapelyError,
        AttributeError,
        IndexError,
        KeyError,
        TypeError,
        ValueError,
    ) as e:
        logger.warning("Ignoring malformed geometry: %s", e)
        return None


class GridSegmenter:
    """
    Accumulates per-cell lengths for one activity.

    Cell accumulators are shared across all lines fed to the same segmenter;
    the "current cell" used for re-entry detection is reset per line.
    """

    def __init__(
        self,
        cell_size_deg: float,
        snap_tolerance_deg: float | None = None,
        simplify_m: float = 0.0,
    ) -> None:
        self.cell_size_deg = cell_size_deg
        if snap_tolerance_deg is None:
            snap_tolerance_deg = cell_size_deg / 2
        self.snap_tolerance_deg = max(snap_tolerance_deg, sys.float_info.epsilon)
        self.simplify_m = simplify_m
        self.accumulators: dict[GridCell, CellAccumulator] = {}
        self.total_meters = 0.0

    def add_geometry(self, geometry: BaseGeometry | None) -> None:
        for coords in iter_lines(geometry):
            self.add_line(coords)

    def add_line(self, coords: Sequence[Point]) -> None:
        simplified = simplify_track(coords, self.simplify_m)
        if len(simplified) < 2:
            return

        current: CellAccumulator | None = None
        prev = snap_point(simplified[0], self.snap_tolerance_deg)
        for raw in simplified[1:]:
            curr = snap_point(raw, self.snap_tolerance_deg)
            if curr == prev:
                continue
            steps = subdivision_steps(prev, curr, self.cell_size_deg)
            seg_start = prev
            for step in range(1, steps + 1):
                t = step / steps
                seg_end = (
                    prev[0] + (curr[0] - prev[0]) * t,
                    prev[1] + (curr[1] - prev[1]) * t,
                )
                current = self._credit(current, seg_start, seg_end)
                seg_start = seg_end
            prev = curr

        if current is not None:
            current.close()

    def _credit(
        self,
        current: CellAccumulator | None,
        seg_start: Point,
        seg_end: Point,
    ) -> CellAccumulator | None:
        meters = haversine_meters(seg_start, seg_end)
        if not math.isfinite(meters) or meters <= 0:
            return current

        self.total_meters += meters
        midpoint = (
            (seg_start[0] + seg_end[0]) / 2,
            (seg_start[1] + seg_end[1]) / 2,
        )
        cell = GridCell.containing(midpoint, self.cell_size_deg)
        if current is not None and current.cell != cell:
            current.close()

        entry = self.accumulators.get(cell)
        if entry is None:
            entry = CellAccumulator(cell=cell)
            self.accumulators[cell] = entry

        if not (entry.first_pass_done and not entry.is_active):
            entry.is_active = True
            entry.length_m += meters
            entry.segments.append((seg_start, seg_end))
        return entry

    def result(self) -> SegmentationResult:
        return SegmentationResult(
            accumulators=self.accumulators,
            total_meters=self.total_meters,
        )


def segment(
    track: Sequence[Point],
    cell_size_deg: float,
    snap_tolerance_deg: float | None = None,
) -> SegmentationResult:
    """Segment a single, already simplified track onto the grid."""
    segmenter = GridSegmenter(cell_size_deg, snap_tolerance_deg)
    segmenter.add_line(track)
    return segmenter.result()


def segment_geometry(
    geometry: BaseGeometry | dict[str, Any] | None,
    cell_size_deg: float,
    snap_tolerance_deg: float | None = None,
    simplify_m: float = 0.0,
) -> SegmentationResult:
    """Simplify and segment every line of a geometry with shared accumulators."""
    if isinstance(geometry, dict):
        geometry = geometry_from_geojson(geometry)
    if geometry is None:
        return SegmentationResult.empty()

    segmenter = GridSegmenter(cell_size_deg, snap_tolerance_deg, simplify_m)
    segmenter.add_geometry(geometry)
    logger.debug(
        "Segmented geometry into %d cells (%.1fm)",
        len(segmenter.accumulators),
        segmenter.total_meters,
    )
    return segmenter.result()
