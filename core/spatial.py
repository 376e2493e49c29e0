"""
Spatial and geometry utilities.

Centralizes GeoJSON handling, coordinate validation, great-circle
distance, the local planar projection used for line simplification and
pyproj helpers for metric buffering.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

import pyproj

from core.constants import EARTH_RADIUS_M, METERS_PER_DEGREE_LAT, MIN_LON_SCALE

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

logger = logging.getLogger(__name__)

WGS84 = pyproj.CRS("EPSG:4326")

Point = tuple[float, float]


def haversine_meters(a: Sequence[float], b: Sequence[float]) -> float:
    """Great-circle distance in meters between two (lon, lat) points.

    Non-finite input propagates as a non-finite result; callers guard.
    """
    lat1 = math.radians(a[1])
    lat2 = math.radians(b[1])
    d_lat = math.radians(b[1] - a[1])
    d_lon = math.radians(b[0] - a[0])
    sin_d_lat = math.sin(d_lat / 2)
    sin_d_lon = math.sin(d_lon / 2)
    h = sin_d_lat * sin_d_lat + math.cos(lat1) * math.cos(lat2) * sin_d_lon * sin_d_lon
    if not math.isfinite(h):
        return math.nan
    # Clamp rounding drift so antipodal input cannot produce a domain error.
    h = min(max(h, 0.0), 1.0)
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def meters_per_degree_longitude(lat: float) -> float:
    """Meters spanned by one degree of longitude at the given latitude."""
    return max(math.cos(math.radians(lat)), MIN_LON_SCALE) * METERS_PER_DEGREE_LAT


class LocalProjection:
    """Equirectangular projection to planar meters around an origin point."""

    __slots__ = ("lat_factor", "lon_factor", "origin_lat", "origin_lon")

    def __init__(self, origin: Sequence[float]) -> None:
        self.origin_lon = float(origin[0])
        self.origin_lat = float(origin[1])
        self.lon_factor = meters_per_degree_longitude(self.origin_lat)
        self.lat_factor = METERS_PER_DEGREE_LAT

    def to_meters(self, point: Sequence[float]) -> Point:
        return (
            (point[0] - self.origin_lon) * self.lon_factor,
            (point[1] - self.origin_lat) * self.lat_factor,
        )


def validate_coordinate_pair(
    coord: Sequence[Any],
) -> tuple[bool, list[float] | None]:
    """Validate a [lon, lat] coordinate pair."""
    if not isinstance(coord, (list, tuple)) or len(coord) < 2:
        return False, None
    try:
        lon = float(coord[0])
        lat = float(coord[1])
    except (TypeError, ValueError, IndexError):
        return False, None
    if not (-180 <= lon <= 180 and -90 <= lat <= 90):
        return False, None
    return True, [lon, lat]


def linestring_from_coordinate_pairs(
    coords: Iterable[Sequence[Any]],
) -> dict[str, Any] | None:
    """Build a GeoJSON LineString from [lon, lat] pairs, dropping invalid ones."""
    cleaned: list[list[float]] = []
    for coord in coords:
        is_valid, pair = validate_coordinate_pair(coord)
        if not is_valid or pair is None:
            continue
        cleaned.append(pair)

    if len(cleaned) < 2:
        return None
    return {"type": "LineString", "coordinates": cleaned}


def feature_from_geometry(
    geometry: dict[str, Any] | None,
    properties: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a GeoJSON Feature from geometry and properties."""
    return {
        "type": "Feature",
        "geometry": geometry,
        "properties": properties or {},
    }


def feature_collection(features: list[dict[str, Any]]) -> dict[str, Any]:
    """Build a GeoJSON FeatureCollection."""
    return {"type": "FeatureCollection", "features": features}


def get_local_transformers(
    lon: float,
    lat: float,
) -> tuple[
    Callable[[float, float], tuple[float, float]],
    Callable[[float, float], tuple[float, float]],
]:
    """
    Build local azimuthal equidistant transformers centered on a point.

    Returns (to_meters, to_wgs84) callables.
    """
    local_crs = pyproj.CRS.from_proj4(
        f"+proj=aeqd +lat_0={lat} +lon_0={lon} +datum=WGS84 +units=m +no_defs",
    )
    to_meters = pyproj.Transformer.from_crs(
        WGS84,
        local_crs,
        always_xy=True,
    ).transform
    to_wgs84 = pyproj.Transformer.from_crs(
        local_crs,
        WGS84,
        always_xy=True,
    ).transform
    return to_meters, to_wgs84
