"""
Douglas-Peucker line simplification over a local planar projection.

The line is projected to meters around its first point and reduced with
an explicit stack rather than recursion, so arbitrarily long tracks never
hit the interpreter's recursion limit.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from core.spatial import LocalProjection, Point

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


def point_segment_distance_sq(p: Point, a: Point, b: Point) -> float:
    """Squared distance from ``p`` to the segment ``a``-``b`` in planar meters.

    The projection parameter is clamped to [0, 1]; a zero-length segment
    degrades to the distance to ``a``.
    """
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    if dx == 0 and dy == 0:
        ex = p[0] - a[0]
        ey = p[1] - a[1]
        return ex * ex + ey * ey
    t = ((p[0] - a[0]) * dx + (p[1] - a[1]) * dy) / (dx * dx + dy * dy)
    t = min(max(t, 0.0), 1.0)
    ex = p[0] - (a[0] + t * dx)
    ey = p[1] - (a[1] + t * dy)
    return ex * ex + ey * ey


def simplify_track(coords: Sequence[Point], tolerance_m: float) -> list[Point]:
    """
    Reduce a (lon, lat) track, keeping every point farther than
    ``tolerance_m`` from the simplified line.

    Args:
        coords: Ordered (lon, lat) points.
        tolerance_m: Maximum perpendicular deviation in meters.

    Returns:
        An ordered subsequence of ``coords`` that always includes the first
        and last point. Non-positive or non-finite tolerances and tracks of
        two points or fewer come back unchanged.
    """
    points = [(float(c[0]), float(c[1])) for c in coords]
    if not math.isfinite(tolerance_m) or tolerance_m <= 0 or len(points) <= 2:
        return points

    projection = LocalProjection(points[0])
    projected = [projection.to_meters(p) for p in points]
    tol_sq = tolerance_m * tolerance_m

    keep = [False] * len(points)
    keep[0] = True
    keep[-1] = True

    stack: list[tuple[int, int]] = [(0, len(points) - 1)]
    while stack:
        start, end = stack.pop()
        if end - start < 2:
            continue
        max_dist_sq = -1.0
        max_idx = -1
        a = projected[start]
        b = projected[end]
        for idx in range(start + 1, end):
            dist_sq = point_segment_distance_sq(projected[idx], a, b)
            # Strict comparison: on ties the lowest index stays the split point.
            if dist_sq > max_dist_sq:
                max_dist_sq = dist_sq
                max_idx = idx
        if max_dist_sq > tol_sq and start < max_idx < end:
            keep[max_idx] = True
            stack.append((start, max_idx))
            stack.append((max_idx, end))

    simplified = [p for p, kept in zip(points, keep, strict=True) if kept]
    if len(simplified) == 1:
        return [points[0], points[-1]]
    if len(simplified) < 2:
        return points[:2]

    logger.debug(
        "Simplified track from %d to %d points (tolerance %.2fm)",
        len(points),
        len(simplified),
        tolerance_m,
    )
    return simplified
