import math

import pytest

from core.spatial import LocalProjection
from novelty.simplify import point_segment_distance_sq, simplify_track

ZIGZAG = [
    (0.0, 0.0),
    (0.0001, 0.00002),
    (0.0002, -0.00003),
    (0.0003, 0.0002),
    (0.0004, 0.0),
    (0.0005, 0.00001),
    (0.0006, -0.0004),
    (0.0007, 0.0),
    (0.0008, 0.00003),
    (0.0009, 0.0),
]


def _max_deviation_m(original, simplified) -> float:
    projection = LocalProjection(original[0])
    kept = [projection.to_meters(p) for p in simplified]
    worst = 0.0
    for point in original:
        p = projection.to_meters(point)
        nearest = min(
            point_segment_distance_sq(p, kept[i], kept[i + 1])
            for i in range(len(kept) - 1)
        )
        worst = max(worst, math.sqrt(nearest))
    return worst


def test_short_or_untolerant_input_is_returned_unchanged() -> None:
    assert simplify_track([], 5.0) == []
    assert simplify_track([(1.0, 2.0)], 5.0) == [(1.0, 2.0)]
    assert simplify_track([(1.0, 2.0), (1.1, 2.1)], 5.0) == [(1.0, 2.0), (1.1, 2.1)]
    assert simplify_track(ZIGZAG, 0.0) == ZIGZAG
    assert simplify_track(ZIGZAG, -3.0) == ZIGZAG
    assert simplify_track(ZIGZAG, math.nan) == ZIGZAG
    assert simplify_track(ZIGZAG, math.inf) == ZIGZAG


def test_collinear_track_reduces_to_endpoints() -> None:
    track = [(0.0, 0.0), (0.0, 0.0004), (0.0, 0.0008)]
    assert simplify_track(track, 4.0) == [(0.0, 0.0), (0.0, 0.0008)]


def test_keeps_endpoints_and_is_ordered_subsequence() -> None:
    simplified = simplify_track(ZIGZAG, 5.0)

    assert simplified[0] == ZIGZAG[0]
    assert simplified[-1] == ZIGZAG[-1]
    indices = [ZIGZAG.index(p) for p in simplified]
    assert indices == sorted(indices)


def test_every_dropped_point_is_within_tolerance() -> None:
    tolerance = 5.0
    simplified = simplify_track(ZIGZAG, tolerance)
    assert _max_deviation_m(ZIGZAG, simplified) <= tolerance + 1e-9


def test_simplification_is_idempotent() -> None:
    once = simplify_track(ZIGZAG, 5.0)
    assert simplify_track(once, 5.0) == once


@pytest.mark.parametrize(("smaller", "larger"), [(1.0, 5.0), (5.0, 20.0), (2.0, 100.0)])
def test_larger_tolerance_never_keeps_more_points(smaller: float, larger: float) -> None:
    assert len(simplify_track(ZIGZAG, larger)) <= len(simplify_track(ZIGZAG, smaller))


def test_ties_keep_the_lowest_index() -> None:
    # Points 1 and 2 are equally far from the chord; only the first is kept.
    track = [(0.0, 0.0), (0.0001, 0.001), (0.0002, 0.001), (0.0003, 0.0)]
    simplified = simplify_track(track, 50.0)
    assert (0.0001, 0.001) in simplified
    assert simplified.index((0.0001, 0.001)) == 1


def test_closed_loop_returns_first_and_last() -> None:
    loop = [(0.0, 0.0), (0.00001, 0.00001), (0.0, 0.0)]
    assert simplify_track(loop, 10.0) == [(0.0, 0.0), (0.0, 0.0)]


def test_point_segment_distance_degenerate_segment() -> None:
    assert point_segment_distance_sq((3.0, 4.0), (0.0, 0.0), (0.0, 0.0)) == 25.0
    # Projection beyond the segment end clamps to the endpoint.
    assert point_segment_distance_sq((5.0, 0.0), (0.0, 0.0), (2.0, 0.0)) == 9.0
