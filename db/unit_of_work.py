"""
Per-activity unit of work.

With ``MONGODB_TRANSACTIONS`` enabled the unit is a real multi-document
transaction on a client session. Standalone servers (and the in-memory
test backend) cannot run transactions, so the fallback unit remembers the
_id of every row it inserted into an append-only collection and deletes
exactly those rows when the unit fails. Either way a failed activity
leaves no ledger claims behind and can be reprocessed later.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from pymongo.errors import PyMongoError

from db.manager import db_manager
from db.operations import delete_by_ids, insert_missing

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from bson import ObjectId
    from motor.motor_asyncio import (
        AsyncIOMotorClient,
        AsyncIOMotorClientSession,
        AsyncIOMotorCollection,
    )

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Write scope handed to every stage that persists during one activity."""

    def __init__(self, session: AsyncIOMotorClientSession | None = None) -> None:
        self.session = session
        self._collections: dict[str, AsyncIOMotorCollection] = {}
        self._claims: defaultdict[str, list[ObjectId]] = defaultdict(list)

    @property
    def transactional(self) -> bool:
        return self.session is not None

    @property
    def claim_count(self) -> int:
        return sum(len(ids) for ids in self._claims.values())

    async def insert_missing(
        self,
        collection: AsyncIOMotorCollection,
        documents: Sequence[dict[str, Any]],
        key_fields: Sequence[str],
    ) -> list[int]:
        """Insert-or-ignore inside this unit; see ``db.operations.insert_missing``.

        Returns the positions of the documents that were inserted.
        """
        inserted = await insert_missing(
            collection,
            documents,
            key_fields,
            session=self.session,
        )
        if not self.transactional and inserted:
            self._collections[collection.name] = collection
            self._claims[collection.name].extend(inserted.values())
        return sorted(inserted)

    async def rollback(self) -> int:
        """Delete every row this unit claimed. Returns the number removed."""
        removed = 0
        for name, ids in self._claims.items():
            removed += await delete_by_ids(self._collections[name], ids)
            logger.info("Rolled back %d claimed rows in %s", len(ids), name)
        self._claims.clear()
        return removed


@asynccontextmanager
async def unit_of_work(
    client: AsyncIOMotorClient | None = None,
    *,
    use_transactions: bool | None = None,
) -> AsyncIterator[UnitOfWork]:
    """Open a unit of work; any exception raised inside rolls it back."""
    if use_transactions is None:
        use_transactions = db_manager.transactions_enabled

    if use_transactions:
        client = client or db_manager.client
        async with await client.start_session() as session:
            async with session.start_transaction():
                yield UnitOfWork(session)
        return

    unit = UnitOfWork()
    try:
        yield unit
    except Exception:
        try:
            await unit.rollback()
        except PyMongoError:
            logger.exception(
                "Failed to roll back %d claimed rows",
                unit.claim_count,
            )
        raise
