"""
Activity Annotations Package.

Composes the short "explored" paragraph for an activity description and
dispatches it to Strava.

Usage:
    from activity_annotations import AnnotationDispatcher

    dispatcher = AnnotationDispatcher(token_provider)
    results = await dispatcher.run(limit=5)
"""

from activity_annotations.composer import (
    build_annotation_message,
    merge_annotation_description,
    strip_annotation,
)
from activity_annotations.dispatcher import AnnotationDispatcher
from activity_annotations.state import AnnotationResult, AnnotationStatus, is_pending
from activity_annotations.strava import StravaClient

__all__ = [
    "AnnotationDispatcher",
    "AnnotationResult",
    "AnnotationStatus",
    "StravaClient",
    "build_annotation_message",
    "is_pending",
    "merge_annotation_description",
    "strip_annotation",
]
