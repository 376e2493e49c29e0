"""Beanie ODM document models for MongoDB collections.

This module defines all document models using Beanie ODM, which provides:
- Automatic Pydantic validation
- Built-in async CRUD operations
- Index definitions at the model level

Usage:
    from db.models import Activity, VisitedCell

    activity = await Activity.find_one(Activity.strava_activity_id == 123)
    activity.processing_state = "processed"
    await activity.save()
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import Field, field_validator
from pymongo import ASCENDING, IndexModel

from core.date_utils import get_current_utc_time, parse_timestamp


class Activity(Document):
    """One recorded activity and its novelty outcome."""

    user_id: str
    strava_activity_id: Indexed(int, unique=True)
    sport_type: str | None = None
    start_date: datetime | None = None
    processing_state: str = "pending"
    skip_reason: str | None = None

    # Geometry (GeoJSON)
    geom: dict[str, Any] | None = None
    masked_geom: dict[str, Any] | None = None
    novel_geom: dict[str, Any] | None = None

    # Novelty metrics
    geom_len_m: float | None = None
    new_len_m: float = 0.0
    new_frac: float = 0.0
    novel_cell_count: int = 0

    # Annotation bookkeeping
    annotation_text: str | None = None
    annotation_generated_at: datetime | None = None
    annotation_applied_at: datetime | None = None
    annotation_attempts: int = 0

    processed_at: datetime | None = None

    @field_validator(
        "start_date",
        "annotation_generated_at",
        "annotation_applied_at",
        "processed_at",
        mode="before",
    )
    @classmethod
    def parse_datetime_fields(cls, v: Any) -> datetime | None:
        if v is None:
            return None
        return parse_timestamp(v)

    def apply_annotation_text(
        self,
        text: str | None,
        now: datetime | None = None,
    ) -> None:
        """Store freshly composed annotation text.

        Identical text keeps its timestamps and attempt counter so an
        already-applied annotation is not dispatched again; changed text
        is re-stamped as newly generated and unapplied.
        """
        if text is None:
            self.annotation_generated_at = None
            self.annotation_applied_at = None
            self.annotation_attempts = 0
        elif text != self.annotation_text:
            self.annotation_generated_at = now or get_current_utc_time()
            self.annotation_applied_at = None
            self.annotation_attempts = 0
        self.annotation_text = text

    class Settings:
        name = "activities"
        indexes = [
            IndexModel(
                [("user_id", ASCENDING), ("start_date", ASCENDING)],
                name="activities_user_start_idx",
            ),
            IndexModel(
                [("annotation_generated_at", ASCENDING)],
                name="activities_annotation_generated_idx",
                sparse=True,
            ),
        ]


class VisitedCell(Document):
    """Novelty ledger entry: a grid cell a user has visited. Append-only."""

    user_id: str
    cell_x: int
    cell_y: int
    first_seen_at: datetime = Field(default_factory=get_current_utc_time)

    class Settings:
        name = "visited_cells"
        indexes = [
            IndexModel(
                [
                    ("user_id", ASCENDING),
                    ("cell_x", ASCENDING),
                    ("cell_y", ASCENDING),
                ],
                name="visited_cells_user_cell_unique_idx",
                unique=True,
            ),
            IndexModel(
                [
                    ("user_id", ASCENDING),
                    ("cell_y", ASCENDING),
                    ("cell_x", ASCENDING),
                ],
                name="visited_cells_user_row_major_idx",
            ),
        ]


class PrivacyZone(Document):
    """Circular area removed from a user's tracks before scoring."""

    user_id: Indexed(str)
    center: list[float]
    radius_m: float

    class Settings:
        name = "privacy_zones"


class PlaceBoundary(Document):
    """Administrative boundary that can be unlocked by visiting it."""

    name: str
    place_type: str
    country_code: str
    geometry: dict[str, Any]

    class Settings:
        name = "place_boundaries"
        indexes = [
            IndexModel([("geometry", "2dsphere")], name="place_boundaries_geom_idx"),
            IndexModel([("country_code", ASCENDING)], name="place_boundaries_cc_idx"),
        ]


class VisitedPlace(Document):
    """First visit of a user to a place boundary."""

    user_id: str
    place_boundary_id: str
    first_activity_id: str
    first_seen_at: datetime = Field(default_factory=get_current_utc_time)

    class Settings:
        name = "visited_places"
        indexes = [
            IndexModel(
                [("user_id", ASCENDING), ("place_boundary_id", ASCENDING)],
                name="visited_places_user_place_unique_idx",
                unique=True,
            ),
        ]


class PlaceVisit(Document):
    """Every activity that touched a place boundary."""

    user_id: str
    place_boundary_id: str
    activity_id: str
    visited_at: datetime | None = None

    class Settings:
        name = "place_visits"
        indexes = [
            IndexModel(
                [
                    ("user_id", ASCENDING),
                    ("place_boundary_id", ASCENDING),
                    ("activity_id", ASCENDING),
                ],
                name="place_visits_unique_idx",
                unique=True,
            ),
        ]


ALL_DOCUMENT_MODELS = [
    Activity,
    VisitedCell,
    PrivacyZone,
    PlaceBoundary,
    VisitedPlace,
    PlaceVisit,
]
