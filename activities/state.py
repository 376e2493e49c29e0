"""
Activity Processing State Module.

Defines the states an activity record moves through.
"""

from enum import Enum


class ActivityState(Enum):
    """Enumeration of activity processing states."""

    PENDING = "pending"
    SKIPPED = "skipped"
    NO_GEOMETRY = "no_geometry"
    PROCESSED = "processed"


# Sources whose processing should (re)compose the description annotation.
ANNOTATED_SOURCES = frozenset({"webhook", "fixture"})
