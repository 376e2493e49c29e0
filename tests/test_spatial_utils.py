import math

import pytest

from core.spatial import (
    LocalProjection,
    get_local_transformers,
    haversine_meters,
    linestring_from_coordinate_pairs,
    validate_coordinate_pair,
)


def test_validate_coordinate_pair() -> None:
    valid, coords = validate_coordinate_pair([-97.0, 32.0])
    assert valid
    assert coords == [-97.0, 32.0]

    invalid, coords = validate_coordinate_pair([200.0, 0.0])
    assert not invalid
    assert coords is None

    assert validate_coordinate_pair(["x", 1]) == (False, None)
    assert validate_coordinate_pair([1.0]) == (False, None)


def test_linestring_from_coordinate_pairs_drops_invalid() -> None:
    geometry = linestring_from_coordinate_pairs(
        [[-97.0, 32.0], ["bad", 0], [-96.9, 32.1]],
    )
    assert geometry == {
        "type": "LineString",
        "coordinates": [[-97.0, 32.0], [-96.9, 32.1]],
    }
    assert linestring_from_coordinate_pairs([[-97.0, 32.0]]) is None


def test_haversine_meters() -> None:
    assert haversine_meters((0.0, 0.0), (0.0, 0.0)) == 0.0
    # One degree of latitude is roughly 111.2 km.
    assert haversine_meters((0.0, 0.0), (0.0, 1.0)) == pytest.approx(111_195, rel=1e-3)
    assert math.isnan(haversine_meters((0.0, math.nan), (0.0, 1.0)))


def test_local_projection_scales_longitude_by_latitude() -> None:
    projection = LocalProjection((10.0, 60.0))
    x, y = projection.to_meters((10.001, 60.001))
    assert y == pytest.approx(111.32)
    assert x == pytest.approx(111.32 * 0.5, rel=1e-3)


def test_local_transformers_round_trip_point() -> None:
    to_meters, to_wgs84 = get_local_transformers(-97.0, 32.0)
    x, y = to_meters(-97.0, 32.0)
    assert x == pytest.approx(0.0, abs=1e-6)
    assert y == pytest.approx(0.0, abs=1e-6)
    lon, lat = to_wgs84(100.0, 0.0)
    assert lat == pytest.approx(32.0, abs=1e-4)
    assert lon > -97.0
