"""Database operations module.

Insert-or-ignore primitives shared by every append-only collection (the
novelty ledger and the place unlock tables).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from bson import ObjectId
from pymongo import UpdateOne
from pymongo.errors import BulkWriteError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection

logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODES: Final[frozenset[int]] = frozenset({11000, 11001, 12582})


async def insert_missing(
    collection: AsyncIOMotorCollection,
    documents: Sequence[dict[str, Any]],
    key_fields: Sequence[str],
    *,
    session: AsyncIOMotorClientSession | None = None,
) -> dict[int, ObjectId]:
    """Insert documents whose key is not present yet, leaving the rest alone.

    Each document becomes an upsert on its ``key_fields`` with every other
    field in ``$setOnInsert``, so an existing key is a plain match rather
    than a write error and the call is safe inside a transaction.

    Returns:
        ``{position in documents: _id}`` for the rows this call inserted.

    Raises:
        BulkWriteError: If any write failed for a reason other than a
            duplicate key from a concurrent upsert of the same key.
    """
    if not documents:
        return {}

    ids = [ObjectId() for _ in documents]
    requests = []
    for doc, doc_id in zip(documents, ids, strict=True):
        key = {field: doc[field] for field in key_fields}
        on_insert = {k: v for k, v in doc.items() if k not in key}
        on_insert["_id"] = doc_id
        requests.append(UpdateOne(key, {"$setOnInsert": on_insert}, upsert=True))

    try:
        result = await collection.bulk_write(requests, ordered=False, session=session)
        upserted = list(result.upserted_ids.values())
    except BulkWriteError as bwe:
        # Two writers upserting one key outside a transaction: the loser
        # gets E11000 and the key is simply already present.
        write_errors = bwe.details.get("writeErrors", [])
        fatal = [err for err in write_errors if err.get("code") not in DUPLICATE_KEY_CODES]
        if fatal or bwe.details.get("writeConcernErrors"):
            logger.error(
                "Insert into %s failed: %s",
                collection.name,
                fatal or bwe.details.get("writeConcernErrors"),
            )
            raise
        upserted = [entry["_id"] for entry in bwe.details.get("upserted", [])]

    # Map back through our own _ids; upsert indexes are not reliable across backends.
    claimed = set(upserted)
    inserted = {idx: doc_id for idx, doc_id in enumerate(ids) if doc_id in claimed}
    logger.debug(
        "Insert into %s: %d new, %d already present",
        collection.name,
        len(inserted),
        len(documents) - len(inserted),
    )
    return inserted


async def delete_by_ids(
    collection: AsyncIOMotorCollection,
    ids: Sequence[ObjectId],
    *,
    session: AsyncIOMotorClientSession | None = None,
    chunk_size: int = 500,
) -> int:
    """Delete the given documents by ``_id``, in bounded chunks."""
    deleted = 0
    for start in range(0, len(ids), chunk_size):
        chunk = list(ids[start : start + chunk_size])
        result = await collection.delete_many({"_id": {"$in": chunk}}, session=session)
        deleted += result.deleted_count
    return deleted
