"""
Activity line intake.

Turns Strava-style payloads into a GeoJSON LineString of (lon, lat)
points. The ``latlng`` stream is preferred; the encoded map polyline is
the fallback.
"""

from __future__ import annotations

import logging
from typing import Any

import polyline

from core.spatial import linestring_from_coordinate_pairs

logger = logging.getLogger(__name__)

POLYLINE_PRECISION = 5


def line_from_streams(streams: dict[str, Any] | None) -> dict[str, Any] | None:
    """Build a line from a ``key_by_type`` streams payload."""
    if not isinstance(streams, dict):
        return None
    latlng = streams.get("latlng")
    data = latlng.get("data") if isinstance(latlng, dict) else None
    if not isinstance(data, list) or not data:
        return None
    swapped = [
        [pair[1], pair[0]]
        for pair in data
        if isinstance(pair, (list, tuple)) and len(pair) >= 2
    ]
    return linestring_from_coordinate_pairs(swapped)


def line_from_polyline(encoded: str | None) -> dict[str, Any] | None:
    """Decode a precision-5 Google polyline into a line."""
    if not encoded:
        return None
    try:
        decoded = polyline.decode(encoded, POLYLINE_PRECISION)
    except (ValueError, IndexError, TypeError) as e:
        logger.warning("Could not decode activity polyline: %s", e)
        return None
    return linestring_from_coordinate_pairs([lon, lat] for lat, lon in decoded)


def line_from_detail(detail: dict[str, Any] | None) -> dict[str, Any] | None:
    if not isinstance(detail, dict):
        return None
    activity_map = detail.get("map") or {}
    if not isinstance(activity_map, dict):
        return None
    return line_from_polyline(
        activity_map.get("polyline") or activity_map.get("summary_polyline"),
    )


def extract_activity_line(
    detail: dict[str, Any] | None,
    streams: dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    """The activity's track, or None when fewer than two usable points exist."""
    line = line_from_streams(streams)
    if line is not None:
        return line
    return line_from_detail(detail)
