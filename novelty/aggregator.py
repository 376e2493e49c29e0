"""Combine per-cell accumulators with the ledger outcome."""

from __future__ import annotations

from typing import TYPE_CHECKING

from novelty.models import ActivityNoveltyResult

if TYPE_CHECKING:
    from collections.abc import Mapping, Set

    from novelty.models import CellAccumulator, GridCell, Segment


def aggregate(
    accumulators: Mapping[GridCell, CellAccumulator],
    total_meters: float,
    newly_visited: Set[GridCell],
) -> ActivityNoveltyResult:
    """
    Credit novel distance only to traversed cells that were newly visited.

    Halo cells appear in ``newly_visited`` and therefore in the cell count,
    but have no accumulator and contribute no meters.
    """
    novel_meters = 0.0
    novel_segments: list[Segment] = []
    # Accumulator order is traversal order; keep it for the novel geometry.
    for cell, entry in accumulators.items():
        if cell not in newly_visited:
            continue
        novel_meters += entry.length_m
        novel_segments.extend(entry.segments)

    novel_meters = min(novel_meters, total_meters) if total_meters > 0 else 0.0
    return ActivityNoveltyResult(
        total_meters=total_meters,
        novel_meters=novel_meters,
        novel_fraction=novel_meters / total_meters if total_meters > 0 else 0.0,
        novel_cell_count=len(newly_visited),
        novel_segments=tuple(novel_segments),
    )
