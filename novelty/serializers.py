"""GeoJSON export of a user's visited cells."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from core.spatial import feature_collection, feature_from_geometry
from db.models import VisitedCell
from novelty.models import GridCell

if TYPE_CHECKING:
    from config import NoveltySettings

logger = logging.getLogger(__name__)


def cell_polygon(cell: GridCell, cell_size_deg: float) -> dict[str, Any]:
    """Closed GeoJSON Polygon ring around one grid cell."""
    min_lon, min_lat, max_lon, max_lat = cell.bounds(cell_size_deg)
    return {
        "type": "Polygon",
        "coordinates": [
            [
                [min_lon, min_lat],
                [max_lon, min_lat],
                [max_lon, max_lat],
                [min_lon, max_lat],
                [min_lon, min_lat],
            ],
        ],
    }


async def visited_cells_feature_collection(
    user_id: str,
    settings: NoveltySettings,
    limit: int | None = None,
) -> dict[str, Any]:
    """The user's ledger cells as square polygons, ordered row by row.

    At most ``settings.visited_cell_limit`` cells are returned; a smaller
    ``limit`` narrows that further.
    """
    cap = settings.visited_cell_limit
    effective_limit = cap if limit is None else min(max(int(limit), 1), cap)
    rows = (
        await VisitedCell.find({"user_id": user_id})
        .sort("cell_y", "cell_x")
        .limit(effective_limit)
        .to_list()
    )
    features = [
        feature_from_geometry(
            cell_polygon(GridCell(row.cell_x, row.cell_y), settings.cell_size_deg),
            {"cell_x": row.cell_x, "cell_y": row.cell_y},
        )
        for row in rows
    ]
    logger.debug("Exporting %d visited cells for user %s", len(features), user_id)
    return feature_collection(features)
