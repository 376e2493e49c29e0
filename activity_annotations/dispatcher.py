"""
Annotation dispatcher.

Pushes pending annotation text into Strava activity descriptions. A rate
limit stops the whole run; any other failure bumps the activity's attempt
counter and the run moves on. Dispatch never touches novelty results.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Final

import aiohttp
from beanie import PydanticObjectId
from bson.errors import InvalidId

from activity_annotations.composer import merge_annotation_description
from activity_annotations.state import AnnotationResult, AnnotationStatus, is_pending
from activity_annotations.strava import StravaClient
from config import STRAVA_ANNOTATE_DRYRUN
from core.date_utils import get_current_utc_time
from core.exceptions import LorgError, RateLimitError, ValidationError
from db.models import Activity

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    TokenProvider = Callable[[str], Awaitable[str]]
    ClientFactory = Callable[[str], StravaClient]

logger = logging.getLogger(__name__)

DEFAULT_BATCH_LIMIT: Final[int] = 5
MAX_BATCH_LIMIT: Final[int] = 50

# Failures that count as a failed attempt rather than aborting the run.
DISPATCH_ERRORS = (LorgError, aiohttp.ClientError, asyncio.TimeoutError)


def clamp_limit(limit: object) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_BATCH_LIMIT
    return min(max(value, 1), MAX_BATCH_LIMIT)


class AnnotationDispatcher:
    """
    Applies pending annotations, oldest generation first.

    Args:
        token_provider: Returns a valid Strava access token for a user id.
        client_factory: Builds a Strava client from an access token.
        dry_run: Log and mark applied without calling Strava.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        client_factory: ClientFactory = StravaClient,
        dry_run: bool = STRAVA_ANNOTATE_DRYRUN,
    ) -> None:
        self._token_provider = token_provider
        self._client_factory = client_factory
        self.dry_run = dry_run

    async def pending(
        self,
        limit: int = DEFAULT_BATCH_LIMIT,
        activity_id: str | None = None,
    ) -> list[Activity]:
        filters: dict[str, object] = {
            "annotation_text": {"$ne": None},
            "annotation_generated_at": {"$ne": None},
        }
        if activity_id is not None:
            try:
                filters["_id"] = PydanticObjectId(activity_id)
            except (InvalidId, TypeError) as e:
                msg = "Invalid activity id"
                raise ValidationError(msg, {"activity_id": activity_id}) from e

        # Applied-vs-generated needs a field comparison; filter client side.
        selected: list[Activity] = []
        async for activity in Activity.find(filters).sort("annotation_generated_at"):
            if is_pending(activity):
                selected.append(activity)
                if len(selected) >= limit:
                    break
        return selected

    async def run(
        self,
        limit: object = DEFAULT_BATCH_LIMIT,
        activity_id: str | None = None,
    ) -> list[AnnotationResult]:
        """Dispatch up to ``limit`` pending annotations."""
        batch = await self.pending(clamp_limit(limit), activity_id)
        results: list[AnnotationResult] = []
        for activity in batch:
            result = await self.dispatch(activity)
            results.append(result)
            logger.info("Annotation dispatch: %s", json.dumps(result.to_dict()))
            if result.status is AnnotationStatus.RATE_LIMITED:
                break
        return results

    async def dispatch(self, activity: Activity) -> AnnotationResult:
        def outcome(
            status: AnnotationStatus,
            message: str | None = None,
            retry_at: float | None = None,
        ) -> AnnotationResult:
            return AnnotationResult(
                activity_id=str(activity.id),
                strava_activity_id=activity.strava_activity_id,
                status=status,
                message=message,
                retry_at=retry_at,
            )

        annotation = (activity.annotation_text or "").strip()
        if not annotation:
            await self._mark_applied(activity)
            return outcome(AnnotationStatus.SKIPPED, "empty annotation text")

        if self.dry_run:
            logger.warning(
                "Dry run, not annotating %s: %s",
                activity.strava_activity_id,
                annotation,
            )
            await self._mark_applied(activity)
            return outcome(AnnotationStatus.DRY_RUN)

        try:
            access_token = await self._token_provider(activity.user_id)
            client = self._client_factory(access_token)
            detail = await client.get_activity(activity.strava_activity_id)
        except RateLimitError as e:
            return outcome(AnnotationStatus.RATE_LIMITED, e.message, e.retry_at)
        except DISPATCH_ERRORS as e:
            await self._record_failure(activity)
            return outcome(AnnotationStatus.ERROR, f"detail: {e}")

        description, unchanged = merge_annotation_description(
            detail.get("description"),
            annotation,
        )
        if unchanged:
            await self._mark_applied(activity)
            return outcome(AnnotationStatus.SKIPPED, "annotation already present")

        try:
            await client.update_description(activity.strava_activity_id, description)
        except RateLimitError as e:
            return outcome(AnnotationStatus.RATE_LIMITED, e.message, e.retry_at)
        except DISPATCH_ERRORS as e:
            await self._record_failure(activity)
            return outcome(AnnotationStatus.ERROR, f"update: {e}")

        await self._mark_applied(activity)
        return outcome(AnnotationStatus.APPLIED)

    @staticmethod
    def _generation_filter(activity: Activity) -> dict[str, object]:
        # Only touch the annotation generation this dispatch read.
        return {
            "_id": activity.id,
            "annotation_generated_at": activity.annotation_generated_at,
        }

    async def _mark_applied(self, activity: Activity) -> None:
        now = get_current_utc_time()
        result = await Activity.get_motor_collection().update_one(
            self._generation_filter(activity),
            {"$set": {"annotation_applied_at": now, "annotation_attempts": 0}},
        )
        if result.matched_count == 0:
            logger.info(
                "Annotation for %s changed during dispatch, leaving it pending",
                activity.strava_activity_id,
            )
            return
        activity.annotation_applied_at = now
        activity.annotation_attempts = 0

    async def _record_failure(self, activity: Activity) -> None:
        result = await Activity.get_motor_collection().update_one(
            self._generation_filter(activity),
            {"$inc": {"annotation_attempts": 1}},
        )
        if result.matched_count:
            activity.annotation_attempts += 1
