"""
Activity eligibility rules.

Only outdoor, GPS-recorded activities of a supported sport are scored;
everything else is stored as a zero-length record so it is not fetched
again.
"""

from typing import Any, Final

ALLOWED_SPORTS: Final[frozenset[str]] = frozenset(
    {
        "Run",
        "TrailRun",
        "Walk",
        "Hike",
        "Ride",
        "GravelRide",
        "MountainBikeRide",
        "EBikeRide",
        "EMountainBikeRide",
    },
)
MIN_DISTANCE_M: Final[float] = 200.0


def _is_virtual(value: Any) -> bool:
    return isinstance(value, str) and "virtual" in value.lower()


def activity_sport(detail: dict[str, Any], default: str | None = None) -> str | None:
    return detail.get("sport_type") or detail.get("type") or default


def should_process(detail: dict[str, Any]) -> tuple[bool, str | None]:
    """Decide whether an activity detail payload is eligible for scoring.

    Returns:
        (ok, reason) where reason explains a rejection.
    """
    sport = activity_sport(detail)
    if _is_virtual(sport) or _is_virtual(detail.get("type")):
        return False, "virtual activity"
    if not sport or sport not in ALLOWED_SPORTS:
        return False, f"sport {sport or 'unknown'} not allowed"
    if detail.get("trainer"):
        return False, "trainer/indoor"
    if detail.get("manual"):
        return False, "manual activity"
    distance = detail.get("distance")
    if isinstance(distance, (int, float)) and not isinstance(distance, bool):
        if distance < MIN_DISTANCE_M:
            return False, f"distance < {MIN_DISTANCE_M:g}m"
    return True, None
