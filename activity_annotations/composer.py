"""
Annotation text for activity descriptions.

The annotation is one paragraph appended to the activity description.
Merging strips any earlier annotation paragraph first, so re-applying the
same annotation leaves the description unchanged.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

from core.constants import METERS_PER_KILOMETER, METERS_PER_MILE

if TYPE_CHECKING:
    from collections.abc import Sequence

ANNOTATION_PREFIXES: Final[tuple[str, ...]] = ("🗺️ Explored ", "🗺️ Unlocked ")
MAX_PLACE_NAMES: Final[int] = 3

_PARAGRAPH_BREAK = re.compile(r"\n{2,}")


def build_annotation_message(
    novel_meters: float,
    measurement_preference: str | None = None,
    place_names: Sequence[str] = (),
) -> str | None:
    """Compose the annotation, or None when there is nothing to report.

    ``measurement_preference`` follows Strava: ``"meters"`` selects
    kilometers, anything else miles.
    """
    if novel_meters <= 0 and not place_names:
        return None

    if (measurement_preference or "").lower() == "meters":
        distance_text = f"{novel_meters / METERS_PER_KILOMETER:.1f} new kilometers"
    else:
        distance_text = f"{novel_meters / METERS_PER_MILE:.1f} new miles"

    message = f"🗺️ Explored {distance_text} in Lorg"
    if place_names:
        headline = ", ".join(place_names[:MAX_PLACE_NAMES])
        extra = len(place_names) - MAX_PLACE_NAMES
        extras = f", +{extra} more" if extra > 0 else ""
        message += f". 📍 New places: {headline}{extras}"
    return message


def is_annotation_paragraph(paragraph: str) -> bool:
    return paragraph.lstrip().startswith(ANNOTATION_PREFIXES)


def strip_annotation(description: str) -> str:
    paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(description)]
    kept = [p for p in paragraphs if p and not is_annotation_paragraph(p)]
    return "\n\n".join(kept).strip()


def merge_annotation_description(
    existing_description: str | None,
    annotation: str,
) -> tuple[str, bool]:
    """Replace any earlier annotation in a description with ``annotation``.

    Returns:
        (description, unchanged) where ``unchanged`` means the existing text
        already ends with exactly this annotation.
    """
    existing = existing_description or ""
    base = strip_annotation(existing)
    description = f"{base}\n\n{annotation}" if base else annotation
    return description, existing.strip() == description.strip()
