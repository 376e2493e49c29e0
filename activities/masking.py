"""
Privacy masking of activity tracks.

Each privacy zone is a circle (center + radius in meters). Circles are
buffered in a local azimuthal equidistant projection around their own
center, unioned, and subtracted from the track. Only the line parts of
the difference survive.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from shapely.geometry import MultiLineString, Point, mapping
from shapely.ops import transform, unary_union

from core.spatial import get_local_transformers
from db.models import PrivacyZone
from novelty.grid import geometry_from_geojson, iter_lines

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

ZONE_BUFFER_RESOLUTION = 32


async def load_privacy_zones(user_id: str) -> list[PrivacyZone]:
    return await PrivacyZone.find({"user_id": user_id}).to_list()


def zone_polygon(center: Sequence[float], radius_m: float) -> BaseGeometry:
    """Circle of ``radius_m`` meters around a (lon, lat) center, in WGS84."""
    lon, lat = float(center[0]), float(center[1])
    to_meters, to_wgs84 = get_local_transformers(lon, lat)
    circle = transform(to_meters, Point(lon, lat)).buffer(
        radius_m,
        resolution=ZONE_BUFFER_RESOLUTION,
    )
    return transform(to_wgs84, circle)


def mask_geometry(
    geometry: dict[str, Any] | None,
    zones: Sequence[PrivacyZone],
) -> dict[str, Any] | None:
    """
    Remove every privacy zone from a track.

    Returns:
        A GeoJSON MultiLineString of what remains, or None when nothing
        (or no usable geometry) is left.
    """
    line = geometry_from_geojson(geometry)
    if line is None or line.is_empty:
        return None

    circles = [
        zone_polygon(zone.center, zone.radius_m)
        for zone in zones
        if zone.radius_m > 0 and len(zone.center) >= 2
    ]
    remaining = line.difference(unary_union(circles)) if circles else line

    parts = [coords for coords in iter_lines(remaining) if len(coords) >= 2]
    if not parts:
        logger.debug("Privacy zones removed the whole track")
        return None
    return mapping(MultiLineString(parts))
