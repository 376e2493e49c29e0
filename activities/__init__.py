"""
Activities Package.

Turns incoming activity payloads into novelty-scored activity records:
- Eligibility filtering (sport allow-list, virtual/trainer/manual rejects)
- Track intake from latlng streams or encoded polylines
- Privacy-zone masking
- Place unlocks
- Orchestration in a single retried unit of work

Usage:
    from activities import ActivityProcessor
    from config import load_novelty_settings

    processor = ActivityProcessor(load_novelty_settings())
    outcome = await processor.process(user_id, detail, streams, source="webhook")
"""

from activities.filters import should_process
from activities.intake import extract_activity_line
from activities.masking import mask_geometry
from activities.places import MatchedPlace, MongoPlaceMatcher, PlaceMatcher
from activities.processor import ActivityProcessor, ProcessingOutcome
from activities.state import ActivityState

__all__ = [
    "ActivityProcessor",
    "ActivityState",
    "MatchedPlace",
    "MongoPlaceMatcher",
    "PlaceMatcher",
    "ProcessingOutcome",
    "extract_activity_line",
    "mask_geometry",
    "should_process",
]
