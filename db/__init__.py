"""Database package for MongoDB operations using Beanie ODM.

This package provides a clean interface for all database operations
using Beanie ODM with Pydantic models.

Modules:
    manager: DatabaseManager singleton for connection handling and retries
    models: Beanie Document models for all collections
    operations: upsert-based insert-or-ignore helpers for append-only collections
    unit_of_work: per-activity transaction or compensating write scope

Usage:
    from db import db_manager
    from db.models import Activity

    await db_manager.init_beanie()
    activity = await Activity.find_one(Activity.strava_activity_id == 123)
"""

from __future__ import annotations

from db.manager import DatabaseManager, db_manager, is_transient_error
from db.models import (
    ALL_DOCUMENT_MODELS,
    Activity,
    PlaceBoundary,
    PlaceVisit,
    PrivacyZone,
    VisitedCell,
    VisitedPlace,
)
from db.operations import delete_by_ids, insert_missing
from db.unit_of_work import UnitOfWork, unit_of_work

__all__ = [
    "ALL_DOCUMENT_MODELS",
    "Activity",
    "DatabaseManager",
    "PlaceBoundary",
    "PlaceVisit",
    "PrivacyZone",
    "UnitOfWork",
    "VisitedCell",
    "VisitedPlace",
    "db_manager",
    "delete_by_ids",
    "insert_missing",
    "is_transient_error",
    "unit_of_work",
]
