import asyncio

import pytest

from activities.places import MatchedPlace
from activities.processor import ActivityProcessor
from activities.state import ActivityState
from core.exceptions import ValidationError
from db.models import Activity, PrivacyZone, VisitedPlace
from novelty.ledger import NoveltyLedger

STREAMS = {
    "latlng": {"data": [[0.0, 0.0], [0.0004, 0.0], [0.0008, 0.0]]},
}


def _detail(activity_id: int, **overrides):
    detail = {
        "id": activity_id,
        "sport_type": "Run",
        "distance": 1000.0,
        "start_date": "2024-05-01T12:00:00Z",
        "athlete": {"measurement_preference": "meters"},
    }
    detail.update(overrides)
    return detail


class FakePlaceMatcher:
    def __init__(self, places: list[MatchedPlace] | None = None) -> None:
        self.places = places or []
        self.calls = 0

    async def match_place_boundaries(self, geometry, countries):
        self.calls += 1
        return list(self.places)


@pytest.fixture
def matcher() -> FakePlaceMatcher:
    return FakePlaceMatcher([MatchedPlace("place-1", "Austin", "city")])


@pytest.fixture
def processor(beanie_db, settings, matcher) -> ActivityProcessor:
    return ActivityProcessor(
        settings,
        database=beanie_db,
        place_matcher=matcher,
        use_transactions=False,
    )


@pytest.mark.asyncio
async def test_processes_new_activity(beanie_db, processor) -> None:
    outcome = await processor.process("user-1", _detail(1), STREAMS, source="webhook")

    assert outcome.state is ActivityState.PROCESSED
    assert outcome.result.novel_cell_count == 12
    assert outcome.unlocked_places == ("Austin",)
    assert outcome.annotation_text.startswith("🗺️ Explored")
    assert outcome.annotation_text.endswith("New places: Austin")

    stored = await Activity.find_one({"strava_activity_id": 1})
    assert stored.processing_state == "processed"
    assert stored.new_len_m == pytest.approx(outcome.result.novel_meters)
    assert stored.geom_len_m == pytest.approx(outcome.result.total_meters)
    assert stored.new_frac == pytest.approx(1.0)
    assert stored.novel_geom is not None
    assert stored.annotation_generated_at is not None
    assert stored.annotation_applied_at is None

    ledger = NoveltyLedger.from_database(beanie_db)
    assert await ledger.count_visited("user-1") == 12


@pytest.mark.asyncio
async def test_second_activity_on_same_route_is_not_novel(processor) -> None:
    await processor.process("user-1", _detail(1), STREAMS, source="webhook")
    outcome = await processor.process("user-1", _detail(2), STREAMS, source="webhook")

    assert outcome.result.novel_meters == 0.0
    assert outcome.result.novel_cell_count == 0
    assert outcome.unlocked_places == ()
    assert outcome.annotation_text is None
    assert await VisitedPlace.find({"user_id": "user-1"}).count() == 1


@pytest.mark.asyncio
async def test_reprocessing_updates_the_same_record(processor) -> None:
    await processor.process("user-1", _detail(1), STREAMS)
    outcome = await processor.process("user-1", _detail(1), STREAMS)

    assert outcome.result.novel_meters == 0.0
    assert await Activity.find({"strava_activity_id": 1}).count() == 1
    stored = await Activity.find_one({"strava_activity_id": 1})
    assert stored.new_len_m == 0.0


@pytest.mark.asyncio
async def test_annotations_only_for_annotated_sources(processor) -> None:
    outcome = await processor.process("user-1", _detail(1), STREAMS, source="backfill")

    assert outcome.annotation_text is None
    stored = await Activity.find_one({"strava_activity_id": 1})
    assert stored.annotation_text is None
    assert stored.annotation_generated_at is None


@pytest.mark.asyncio
async def test_ineligible_activity_is_recorded_as_skipped(processor, matcher) -> None:
    outcome = await processor.process(
        "user-1",
        _detail(3, sport_type="VirtualRide"),
        STREAMS,
    )

    assert outcome.state is ActivityState.SKIPPED
    assert outcome.reason == "virtual activity"
    stored = await Activity.find_one({"strava_activity_id": 3})
    assert stored.processing_state == "skipped"
    assert stored.skip_reason == "virtual activity"
    assert stored.geom_len_m == 0.0
    assert matcher.calls == 0


@pytest.mark.asyncio
async def test_activity_without_geometry(processor) -> None:
    outcome = await processor.process("user-1", _detail(4))

    assert outcome.state is ActivityState.NO_GEOMETRY
    stored = await Activity.find_one({"strava_activity_id": 4})
    assert stored.processing_state == "no_geometry"


@pytest.mark.asyncio
async def test_missing_id_is_rejected(processor) -> None:
    with pytest.raises(ValidationError):
        await processor.process("user-1", {"sport_type": "Run"}, STREAMS)


@pytest.mark.asyncio
async def test_privacy_zone_covering_track(beanie_db, processor, matcher) -> None:
    await PrivacyZone(user_id="user-1", center=[0.0, 0.0004], radius_m=500.0).insert()

    outcome = await processor.process("user-1", _detail(5), STREAMS, source="webhook")

    assert outcome.state is ActivityState.PROCESSED
    assert outcome.result.total_meters == 0.0
    stored = await Activity.find_one({"strava_activity_id": 5})
    assert stored.masked_geom is None
    assert stored.geom_len_m == 0.0
    assert stored.geom is not None
    assert matcher.calls == 0
    ledger = NoveltyLedger.from_database(beanie_db)
    assert await ledger.count_visited("user-1") == 0


@pytest.mark.asyncio
async def test_privacy_zone_for_another_user_is_ignored(processor) -> None:
    await PrivacyZone(user_id="user-2", center=[0.0, 0.0004], radius_m=500.0).insert()

    outcome = await processor.process("user-1", _detail(6), STREAMS)

    assert outcome.result.novel_cell_count == 12


@pytest.mark.asyncio
async def test_failed_persist_releases_ledger_claims(
    beanie_db,
    processor,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original_save = Activity.save
    failing = [True]

    async def flaky_save(self, *args, **kwargs):
        if failing[0]:
            msg = "write failed"
            raise RuntimeError(msg)
        return await original_save(self, *args, **kwargs)

    monkeypatch.setattr(Activity, "save", flaky_save)

    with pytest.raises(RuntimeError, match="write failed"):
        await processor.process("user-1", _detail(8), STREAMS, source="webhook")

    ledger = NoveltyLedger.from_database(beanie_db)
    assert await ledger.count_visited("user-1") == 0
    assert await VisitedPlace.find({"user_id": "user-1"}).count() == 0

    failing[0] = False
    outcome = await processor.process("user-1", _detail(8), STREAMS, source="webhook")
    assert outcome.result.novel_cell_count == 12
    assert outcome.unlocked_places == ("Austin",)


@pytest.mark.asyncio
async def test_concurrent_runs_share_one_activity_row(
    beanie_db,
    processor,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    collection = Activity.get_motor_collection()
    original_upsert = collection.find_one_and_update

    async def interleaved_upsert(*args, **kwargs):
        await asyncio.sleep(0)
        return await original_upsert(*args, **kwargs)

    monkeypatch.setattr(collection, "find_one_and_update", interleaved_upsert)

    first, second = await asyncio.gather(
        processor.process("user-1", _detail(9), STREAMS, source="webhook"),
        processor.process("user-1", _detail(9), STREAMS, source="webhook"),
    )

    assert first.state is ActivityState.PROCESSED
    assert second.state is ActivityState.PROCESSED
    assert first.result.novel_cell_count + second.result.novel_cell_count == 12
    assert await Activity.find({"strava_activity_id": 9}).count() == 1
    ledger = NoveltyLedger.from_database(beanie_db)
    assert await ledger.count_visited("user-1") == 12
