import pytest

from novelty.aggregator import aggregate
from novelty.grid import segment
from novelty.ledger import neighborhood
from novelty.models import ActivityNoveltyResult, GridCell


def test_only_newly_visited_cells_contribute() -> None:
    seg = segment([(0.0, 0.0), (0.0, 0.0008)], 0.0005, 0.00025)
    first = seg.accumulators[GridCell(0, 0)]

    result = aggregate(seg.accumulators, seg.total_meters, {GridCell(0, 0)})

    assert result.novel_meters == pytest.approx(first.length_m)
    assert result.novel_segments == tuple(first.segments)
    assert result.novel_fraction == pytest.approx(first.length_m / seg.total_meters)
    assert result.novel_cell_count == 1


def test_halo_cells_count_but_carry_no_distance() -> None:
    seg = segment([(0.0001, 0.0002), (0.0004, 0.0002)], 0.0005, 1e-6)
    halo = set(neighborhood(GridCell(0, 0), 1))

    result = aggregate(seg.accumulators, seg.total_meters, halo)

    assert result.novel_cell_count == 9
    assert result.novel_meters == pytest.approx(seg.total_meters)
    assert result.novel_fraction == pytest.approx(1.0)


def test_nothing_new() -> None:
    seg = segment([(0.0, 0.0), (0.0, 0.0008)], 0.0005, 0.00025)
    result = aggregate(seg.accumulators, seg.total_meters, set())

    assert result.novel_meters == 0.0
    assert result.novel_fraction == 0.0
    assert result.novel_cell_count == 0
    assert result.total_meters == pytest.approx(seg.total_meters)
    assert result.novel_geometry() is None


def test_zero_total_has_zero_fraction() -> None:
    result = aggregate({}, 0.0, {GridCell(0, 0)})
    assert result.novel_fraction == 0.0
    assert result.novel_cell_count == 1


def test_novel_geometry_shapes() -> None:
    one = ActivityNoveltyResult(novel_segments=(((0.0, 0.0), (0.0, 1.0)),))
    assert one.novel_geometry() == {
        "type": "LineString",
        "coordinates": [[0.0, 0.0], [0.0, 1.0]],
    }

    two = ActivityNoveltyResult(
        novel_segments=(((0.0, 0.0), (0.0, 1.0)), ((0.0, 1.0), (1.0, 1.0))),
    )
    geometry = two.novel_geometry()
    assert geometry["type"] == "MultiLineString"
    assert len(geometry["coordinates"]) == 2
