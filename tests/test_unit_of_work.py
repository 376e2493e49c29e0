from types import SimpleNamespace

import pytest

from db.operations import delete_by_ids, insert_missing
from db.unit_of_work import UnitOfWork, unit_of_work

PLACE_KEY = ("user_id", "place_boundary_id")
CELL_KEY = ("user_id", "cell_x", "cell_y")


@pytest.mark.asyncio
async def test_insert_missing_reports_new_positions(beanie_db) -> None:
    collection = beanie_db["visited_places"]
    docs = [
        {"user_id": "u", "place_boundary_id": "a", "first_activity_id": "1"},
        {"user_id": "u", "place_boundary_id": "b", "first_activity_id": "1"},
    ]

    first = await insert_missing(collection, docs, PLACE_KEY)
    assert sorted(first) == [0, 1]
    assert "_id" not in docs[0]

    again = docs + [
        {"user_id": "u", "place_boundary_id": "c", "first_activity_id": "2"},
    ]
    assert list(await insert_missing(collection, again, PLACE_KEY)) == [2]
    assert await insert_missing(collection, [], PLACE_KEY) == {}

    stored = await collection.find_one({"place_boundary_id": "a"})
    assert stored["_id"] == first[0]
    assert stored["first_activity_id"] == "1"


@pytest.mark.asyncio
async def test_existing_keys_match_without_write_errors(beanie_db) -> None:
    collection = beanie_db["visited_cells"]
    docs = [{"user_id": "u", "cell_x": x, "cell_y": 0, "first_seen_at": None} for x in range(3)]
    await insert_missing(collection, docs, CELL_KEY)

    results = []
    original_bulk_write = collection.bulk_write

    async def recording_bulk_write(*args, **kwargs):
        result = await original_bulk_write(*args, **kwargs)
        results.append(result)
        return result

    collection.bulk_write = recording_bulk_write

    assert await insert_missing(collection, docs, CELL_KEY) == {}
    assert results[0].bulk_api_result["writeErrors"] == []
    assert results[0].matched_count == 3
    assert await collection.count_documents({}) == 3


@pytest.mark.asyncio
async def test_transactional_unit_passes_session_and_keeps_no_claims() -> None:
    session = object()
    calls = []

    class RecordingCollection:
        name = "visited_cells"

        async def bulk_write(self, requests, ordered, session):
            calls.append((len(requests), ordered, session))
            on_insert = requests[1]._doc["$setOnInsert"]
            return SimpleNamespace(upserted_ids={1: on_insert["_id"]})

    unit = UnitOfWork(session)
    inserted = await unit.insert_missing(
        RecordingCollection(),
        [
            {"user_id": "u", "cell_x": 0, "cell_y": 0, "first_seen_at": None},
            {"user_id": "u", "cell_x": 1, "cell_y": 0, "first_seen_at": None},
        ],
        CELL_KEY,
    )

    assert unit.transactional
    assert inserted == [1]
    assert calls == [(2, False, session)]
    assert unit.claim_count == 0


@pytest.mark.asyncio
async def test_delete_by_ids_in_chunks(beanie_db) -> None:
    collection = beanie_db["visited_cells"]
    docs = [{"user_id": "u", "cell_x": x, "cell_y": 0, "first_seen_at": None} for x in range(7)]
    inserted = await insert_missing(collection, docs, CELL_KEY)

    removed = await delete_by_ids(
        collection,
        [inserted[idx] for idx in range(5)],
        chunk_size=2,
    )

    assert removed == 5
    assert await collection.count_documents({"user_id": "u"}) == 2


@pytest.mark.asyncio
async def test_unit_tracks_and_rolls_back_claims(beanie_db) -> None:
    collection = beanie_db["visited_cells"]
    unit = UnitOfWork()
    assert not unit.transactional

    await unit.insert_missing(
        collection,
        [{"user_id": "u", "cell_x": 0, "cell_y": 0, "first_seen_at": None}],
        CELL_KEY,
    )
    assert unit.claim_count == 1

    assert await unit.rollback() == 1
    assert unit.claim_count == 0
    assert await collection.count_documents({}) == 0


@pytest.mark.asyncio
async def test_successful_unit_keeps_rows(beanie_db) -> None:
    collection = beanie_db["visited_cells"]

    async with unit_of_work(use_transactions=False) as unit:
        await unit.insert_missing(
            collection,
            [{"user_id": "u", "cell_x": 1, "cell_y": 1, "first_seen_at": None}],
            CELL_KEY,
        )

    assert await collection.count_documents({}) == 1


@pytest.mark.asyncio
async def test_failed_unit_reraises_after_rollback(beanie_db) -> None:
    collection = beanie_db["visited_cells"]
    await insert_missing(
        collection,
        [{"user_id": "u", "cell_x": 1, "cell_y": 1, "first_seen_at": None}],
        CELL_KEY,
    )

    with pytest.raises(ValueError, match="boom"):
        async with unit_of_work(use_transactions=False) as unit:
            inserted = await unit.insert_missing(
                collection,
                [
                    {"user_id": "u", "cell_x": 1, "cell_y": 1, "first_seen_at": None},
                    {"user_id": "u", "cell_x": 2, "cell_y": 1, "first_seen_at": None},
                ],
                CELL_KEY,
            )
            assert inserted == [1]
            msg = "boom"
            raise ValueError(msg)

    rows = await collection.find({}, {"_id": 0, "cell_x": 1}).to_list(None)
    assert rows == [{"cell_x": 1}]
