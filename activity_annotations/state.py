"""
Annotation dispatch state.

An annotation is pending while it has text and a generation time that is
newer than its last application.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from db.models import Activity


class AnnotationStatus(Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"
    DRY_RUN = "dry_run"


@dataclass(frozen=True)
class AnnotationResult:
    activity_id: str
    strava_activity_id: int
    status: AnnotationStatus
    message: str | None = None
    retry_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


def is_pending(activity: Activity) -> bool:
    if activity.annotation_text is None or activity.annotation_generated_at is None:
        return False
    applied = activity.annotation_applied_at
    return applied is None or applied < activity.annotation_generated_at
