#!/usr/bin/env python3
"""Replay downloaded Strava fixtures through the activity processor.

Fixtures are ``<id>-detail.json`` (or ``<id>-summary.json``) files with an
optional ``<id>-streams.json`` next to them. Activities are replayed in
start-date order, as they would have arrived.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from activities.processor import ActivityProcessor, ProcessingOutcome
from config import load_novelty_settings
from core.date_utils import parse_timestamp
from db.manager import db_manager

logger = logging.getLogger(__name__)

DETAIL_SUFFIXES = ("-detail.json", "-summary.json")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replay Strava fixture JSON files through novelty processing.",
    )
    parser.add_argument("user_id", help="User the activities belong to.")
    parser.add_argument("fixtures_dir", type=Path, help="Directory of fixture files.")
    parser.add_argument(
        "--report",
        action="store_true",
        help="Print a per-activity novelty report after replaying.",
    )
    return parser.parse_args()


def _read_json(path: Path) -> dict[str, Any] | None:
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def load_fixtures(
    fixtures_dir: Path,
) -> list[tuple[dict[str, Any], dict[str, Any] | None]]:
    """(detail, streams) pairs sorted by activity start date."""
    details: dict[str, dict[str, Any]] = {}
    for suffix in DETAIL_SUFFIXES:
        for path in fixtures_dir.glob(f"*{suffix}"):
            activity_id = path.name.removesuffix(suffix)
            if activity_id.isdigit() and activity_id not in details:
                detail = _read_json(path) or {}
                detail.setdefault("id", int(activity_id))
                details[activity_id] = detail

    def start_key(detail: dict[str, Any]) -> float:
        start = parse_timestamp(
            detail.get("start_date_local") or detail.get("start_date"),
        )
        return start.timestamp() if start else 0.0

    ordered = sorted(details.items(), key=lambda item: start_key(item[1]))
    return [
        (detail, _read_json(fixtures_dir / f"{activity_id}-streams.json"))
        for activity_id, detail in ordered
    ]


def _print_report(outcomes: list[ProcessingOutcome]) -> None:
    print("activity_id,state,total_m,novel_m,novel_frac,new_cells,places,annotation")
    for outcome in outcomes:
        result = outcome.result
        print(
            ",".join(
                [
                    str(outcome.strava_activity_id),
                    outcome.state.value,
                    f"{result.total_meters:.1f}",
                    f"{result.novel_meters:.1f}",
                    f"{result.novel_fraction:.3f}",
                    str(result.novel_cell_count),
                    "|".join(outcome.unlocked_places),
                    json.dumps(outcome.annotation_text or ""),
                ],
            ),
        )


async def main() -> int:
    args = parse_args()
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if not args.fixtures_dir.is_dir():
        logger.error("Fixtures directory %s does not exist", args.fixtures_dir)
        return 1
    fixtures = load_fixtures(args.fixtures_dir)
    if not fixtures:
        logger.error("No detail fixtures found in %s", args.fixtures_dir)
        return 1

    await db_manager.init_beanie()
    processor = ActivityProcessor(load_novelty_settings())
    outcomes: list[ProcessingOutcome] = []
    try:
        for detail, streams in fixtures:
            outcome = await processor.process(
                args.user_id,
                detail,
                streams,
                source="fixture",
            )
            logger.info(
                "Replayed %s: %s (%.1fm new of %.1fm)",
                outcome.strava_activity_id,
                outcome.state.value,
                outcome.result.novel_meters,
                outcome.result.total_meters,
            )
            outcomes.append(outcome)
    finally:
        await db_manager.cleanup_connections()

    if args.report:
        _print_report(outcomes)
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
