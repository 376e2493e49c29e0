"""
Activity Processor Module.

Main orchestrator that runs one activity through eligibility, intake,
masking, novelty scoring, place unlocks and annotation composition, and
persists the outcome. Everything after intake is a single unit of work
that is retried once on transient storage errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from activities.filters import activity_sport, should_process
from activities.intake import extract_activity_line
from activities.masking import load_privacy_zones, mask_geometry
from activities.places import (
    SUPPORTED_COUNTRIES,
    MongoPlaceMatcher,
    PlaceMatcher,
    PlaceRegistry,
)
from activities.state import ANNOTATED_SOURCES, ActivityState
from activity_annotations.composer import build_annotation_message
from core.date_utils import get_current_utc_time, parse_timestamp
from core.exceptions import ValidationError
from db.manager import db_manager
from db.models import Activity
from db.unit_of_work import unit_of_work
from novelty.engine import NoveltyEngine
from novelty.ledger import NoveltyLedger
from novelty.models import ActivityNoveltyResult

if TYPE_CHECKING:
    from datetime import datetime

    from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

    from config import NoveltySettings
    from db.models import PrivacyZone
    from db.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessingOutcome:
    """What happened to one activity."""

    strava_activity_id: int
    state: ActivityState
    reason: str | None = None
    result: ActivityNoveltyResult = field(default_factory=ActivityNoveltyResult)
    unlocked_places: tuple[str, ...] = ()
    annotation_text: str | None = None


def _measurement_preference(detail: dict[str, Any]) -> str | None:
    athlete = detail.get("athlete")
    if not isinstance(athlete, dict):
        return None
    pref = athlete.get("measurement_preference")
    return pref.lower() if isinstance(pref, str) else None


def _start_date(detail: dict[str, Any]) -> datetime:
    return (
        parse_timestamp(detail.get("start_date_local"))
        or parse_timestamp(detail.get("start_date"))
        or get_current_utc_time()
    )


class ActivityProcessor:
    """
    Orchestrates novelty processing for a user's activities.

    Storage handles and the place matcher are injected so tests can run
    against an in-memory database; by default the process-wide
    DatabaseManager connection is used.
    """

    def __init__(
        self,
        settings: NoveltySettings,
        database: AsyncIOMotorDatabase | None = None,
        place_matcher: PlaceMatcher | None = None,
        client: AsyncIOMotorClient | None = None,
        use_transactions: bool | None = None,
    ) -> None:
        self.settings = settings
        self._database = database
        self._client = client
        self._place_matcher = place_matcher
        self._engine: NoveltyEngine | None = None
        self._places: PlaceRegistry | None = None
        self.use_transactions = use_transactions

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if self._database is None:
            self._database = db_manager.db
        return self._database

    @property
    def place_matcher(self) -> PlaceMatcher:
        if self._place_matcher is None:
            self._place_matcher = MongoPlaceMatcher()
        return self._place_matcher

    @property
    def engine(self) -> NoveltyEngine:
        if self._engine is None:
            ledger = NoveltyLedger.from_database(
                self.database,
                self.settings.ledger_batch_size,
            )
            self._engine = NoveltyEngine(self.settings, ledger)
        return self._engine

    @property
    def places(self) -> PlaceRegistry:
        if self._places is None:
            self._places = PlaceRegistry(self.database)
        return self._places

    async def process(
        self,
        user_id: str,
        detail: dict[str, Any],
        streams: dict[str, Any] | None = None,
        source: str = "",
    ) -> ProcessingOutcome:
        """
        Process one activity end to end.

        Args:
            user_id: Owner of the activity.
            detail: Activity detail payload (Strava shape).
            streams: Optional ``key_by_type`` streams payload.
            source: Where the request came from; ``webhook`` and ``fixture``
                requests also compose annotation text.

        Raises:
            ValidationError: If the payload has no activity id.
            PyMongoError: If persistence fails after the retry; ledger
                claims made by the failed attempt are rolled back.
        """
        try:
            strava_activity_id = int(detail["id"])
        except (KeyError, TypeError, ValueError) as e:
            msg = "Activity detail is missing a numeric id"
            raise ValidationError(msg, {"detail_keys": sorted(detail)}) from e

        ok, reason = should_process(detail)
        if not ok:
            logger.info("Skipping activity %s: %s", strava_activity_id, reason)
            await self._record_unscored(
                user_id,
                strava_activity_id,
                detail,
                ActivityState.SKIPPED,
                reason,
            )
            return ProcessingOutcome(strava_activity_id, ActivityState.SKIPPED, reason)

        line = extract_activity_line(detail, streams)
        if line is None:
            reason = "no usable geometry"
            logger.info("Activity %s: %s", strava_activity_id, reason)
            await self._record_unscored(
                user_id,
                strava_activity_id,
                detail,
                ActivityState.NO_GEOMETRY,
                reason,
            )
            return ProcessingOutcome(
                strava_activity_id,
                ActivityState.NO_GEOMETRY,
                reason,
            )

        zones = await load_privacy_zones(user_id)
        return await db_manager.execute_with_retry(
            lambda: self._process_unit(
                user_id,
                strava_activity_id,
                detail,
                line,
                zones,
                source,
            ),
            operation_name=f"processing activity {strava_activity_id}",
        )

    async def _process_unit(
        self,
        user_id: str,
        strava_activity_id: int,
        detail: dict[str, Any],
        line: dict[str, Any],
        zones: list[PrivacyZone],
        source: str,
    ) -> ProcessingOutcome:
        async with unit_of_work(
            self._client,
            use_transactions=self.use_transactions,
        ) as unit:
            activity = await self._upsert_activity(
                user_id,
                strava_activity_id,
                detail,
                line,
                unit,
            )

            masked = mask_geometry(line, zones)
            if masked is None:
                activity.masked_geom = None
                activity.novel_geom = None
                activity.geom_len_m = 0.0
                activity.new_len_m = 0.0
                activity.new_frac = 0.0
                activity.novel_cell_count = 0
                activity.processing_state = ActivityState.PROCESSED.value
                activity.processed_at = get_current_utc_time()
                await activity.save(session=unit.session)
                return ProcessingOutcome(strava_activity_id, ActivityState.PROCESSED)

            result = await self.engine.compute(user_id, masked, unit)
            matched = await self.place_matcher.match_place_boundaries(
                masked,
                SUPPORTED_COUNTRIES,
            )
            unlocked = await self.places.register(
                user_id,
                str(activity.id),
                matched,
                activity.start_date,
                unit,
            )
            unlocked_names = tuple(place.name for place in unlocked)

            annotation_text = None
            if source in ANNOTATED_SOURCES:
                annotation_text = build_annotation_message(
                    result.novel_meters,
                    _measurement_preference(detail),
                    unlocked_names,
                )

            activity.masked_geom = masked
            activity.novel_geom = result.novel_geometry()
            activity.geom_len_m = result.total_meters
            activity.new_len_m = result.novel_meters
            activity.new_frac = result.novel_fraction
            activity.novel_cell_count = result.novel_cell_count
            activity.apply_annotation_text(annotation_text)
            activity.processing_state = ActivityState.PROCESSED.value
            activity.processed_at = get_current_utc_time()
            await activity.save(session=unit.session)

        return ProcessingOutcome(
            strava_activity_id,
            ActivityState.PROCESSED,
            result=result,
            unlocked_places=unlocked_names,
            annotation_text=annotation_text,
        )

    async def _upsert_activity(
        self,
        user_id: str,
        strava_activity_id: int,
        detail: dict[str, Any],
        line: dict[str, Any],
        unit: UnitOfWork,
    ) -> Activity:
        """Create or refresh the activity row in one atomic upsert."""
        changes = {
            "sport_type": activity_sport(detail, "Ride"),
            "start_date": _start_date(detail),
            "geom": line,
            "skip_reason": None,
        }
        fresh = Activity(user_id=user_id, strava_activity_id=strava_activity_id)
        defaults = {
            key: value
            for key, value in fresh.model_dump(exclude={"id", "revision_id"}).items()
            if key not in changes and key != "strava_activity_id"
        }
        collection = Activity.get_motor_collection()
        doc = await collection.find_one_and_update(
            {"strava_activity_id": strava_activity_id},
            {"$set": changes, "$setOnInsert": defaults},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=unit.session,
        )
        return Activity.model_validate(doc)

    async def _record_unscored(
        self,
        user_id: str,
        strava_activity_id: int,
        detail: dict[str, Any],
        state: ActivityState,
        reason: str | None,
    ) -> None:
        """Store a zero-length record unless the activity is already known."""
        if await Activity.find_one({"strava_activity_id": strava_activity_id}):
            return
        activity = Activity(
            user_id=user_id,
            strava_activity_id=strava_activity_id,
            sport_type=activity_sport(detail, "Unknown"),
            start_date=_start_date(detail),
            processing_state=state.value,
            skip_reason=reason,
            geom_len_m=0.0,
            processed_at=get_current_utc_time(),
        )
        try:
            await activity.insert()
        except DuplicateKeyError:
            logger.debug("Activity %s recorded concurrently", strava_activity_id)
