"""
Place unlocks.

Boundaries touched by a masked track are recorded twice: once per user in
``visited_places`` (the first activity to reach a place unlocks it) and
once per activity in ``place_visits``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, Protocol

from core.date_utils import get_current_utc_time
from db.models import PlaceBoundary, PlaceVisit, VisitedPlace

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from motor.motor_asyncio import AsyncIOMotorDatabase

    from db.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

SUPPORTED_COUNTRIES: Final[tuple[str, ...]] = ("US", "CA", "GB")


@dataclass(frozen=True)
class MatchedPlace:
    place_id: str
    name: str
    place_type: str


class PlaceMatcher(Protocol):
    """Spatial lookup of the place boundaries a geometry touches."""

    async def match_place_boundaries(
        self,
        geometry: dict[str, Any],
        countries: Sequence[str],
    ) -> list[MatchedPlace]:
        ...


class MongoPlaceMatcher:
    """``$geoIntersects`` lookup against the 2dsphere-indexed boundaries."""

    async def match_place_boundaries(
        self,
        geometry: dict[str, Any],
        countries: Sequence[str] = SUPPORTED_COUNTRIES,
    ) -> list[MatchedPlace]:
        boundaries = await PlaceBoundary.find(
            {
                "country_code": {"$in": list(countries)},
                "geometry": {"$geoIntersects": {"$geometry": geometry}},
            },
        ).to_list()
        return [
            MatchedPlace(
                place_id=str(boundary.id),
                name=boundary.name,
                place_type=boundary.place_type,
            )
            for boundary in boundaries
        ]


class PlaceRegistry:
    """Insert-or-ignore writer for the two place tables."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self.visited_places = database[VisitedPlace.Settings.name]
        self.place_visits = database[PlaceVisit.Settings.name]

    async def register(
        self,
        user_id: str,
        activity_id: str,
        places: Sequence[MatchedPlace],
        visited_at: datetime | None,
        unit: UnitOfWork,
    ) -> list[MatchedPlace]:
        """Record visits and return the places this activity unlocked."""
        unique = list({place.place_id: place for place in places}.values())
        if not unique:
            return []

        inserted = await unit.insert_missing(
            self.visited_places,
            [
                {
                    "user_id": user_id,
                    "place_boundary_id": place.place_id,
                    "first_activity_id": activity_id,
                    "first_seen_at": visited_at or get_current_utc_time(),
                }
                for place in unique
            ],
            ("user_id", "place_boundary_id"),
        )
        await unit.insert_missing(
            self.place_visits,
            [
                {
                    "user_id": user_id,
                    "place_boundary_id": place.place_id,
                    "activity_id": activity_id,
                    "visited_at": visited_at,
                }
                for place in unique
            ],
            ("user_id", "place_boundary_id", "activity_id"),
        )

        unlocked = [unique[idx] for idx in inserted]
        if unlocked:
            logger.info(
                "User %s unlocked %d places: %s",
                user_id,
                len(unlocked),
                ", ".join(place.name for place in unlocked),
            )
        return unlocked
