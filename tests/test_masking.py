import pytest
from shapely.geometry import Point, shape

from activities.masking import mask_geometry, zone_polygon
from core.spatial import haversine_meters
from db.models import PrivacyZone

TRACK = {
    "type": "LineString",
    "coordinates": [[0.0, 0.0], [0.0, 0.01], [0.0, 0.02]],
}


def _zone(center, radius_m: float) -> PrivacyZone:
    return PrivacyZone.model_construct(user_id="user-1", center=center, radius_m=radius_m)


def test_zone_polygon_radius_is_metric() -> None:
    circle = zone_polygon([-97.0, 45.0], 200.0)
    min_lon, min_lat, max_lon, max_lat = circle.bounds
    assert haversine_meters((-97.0, 45.0), (-97.0, max_lat)) == pytest.approx(200, rel=0.01)
    assert haversine_meters((-97.0, 45.0), (max_lon, 45.0)) == pytest.approx(200, rel=0.01)
    assert circle.contains(Point(-97.0, 45.0))


def test_no_zones_keeps_track() -> None:
    masked = mask_geometry(TRACK, [])
    assert masked["type"] == "MultiLineString"
    assert shape(masked).length == pytest.approx(0.02)


def test_zone_at_start_trims_the_track() -> None:
    masked = mask_geometry(TRACK, [_zone([0.0, 0.0], 300.0)])
    remaining = shape(masked)
    assert remaining.length < 0.02
    for lon, lat in remaining.geoms[0].coords:
        assert haversine_meters((0.0, 0.0), (lon, lat)) >= 299.0


def test_zone_in_the_middle_splits_the_track() -> None:
    masked = mask_geometry(TRACK, [_zone([0.0, 0.01], 300.0)])
    assert len(masked["coordinates"]) == 2


def test_fully_covered_track_is_dropped() -> None:
    assert mask_geometry(TRACK, [_zone([0.0, 0.01], 5000.0)]) is None


def test_degenerate_zones_are_ignored() -> None:
    masked = mask_geometry(TRACK, [_zone([0.0, 0.01], 0.0), _zone([0.0], 100.0)])
    assert shape(masked).length == pytest.approx(0.02)


@pytest.mark.parametrize("geometry", [None, {}, {"type": "LineString", "coordinates": []}])
def test_unusable_geometry(geometry) -> None:
    assert mask_geometry(geometry, []) is None
