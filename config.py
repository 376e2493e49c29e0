"""Centralized configuration for environment variables and external APIs.

This module is the single source of truth for configuration used across the
application. Import constants from here rather than calling os.getenv directly
in multiple places.

NOTE: Novelty tunables are NOT module constants. Call load_novelty_settings()
once per run and pass the resulting NoveltySettings through the pipeline so a
single activity is always processed against one consistent grid.
"""

from __future__ import annotations

import math
import os
import sys
from dataclasses import dataclass
from typing import Final

from dotenv import load_dotenv

from core.exceptions import ConfigurationError

# Load environment variables from .env if present
load_dotenv()


# --- Strava API Configuration ---
STRAVA_API_BASE: Final[str] = os.getenv(
    "STRAVA_API_BASE",
    "https://www.strava.com/api/v3",
).rstrip("/")

# Dry-run skips the description write but still marks annotations applied
STRAVA_ANNOTATE_DRYRUN: Final[bool] = os.getenv(
    "STRAVA_ANNOTATE_DRYRUN",
    "",
) == "1" or bool(os.getenv("STRAVA_FIXTURES"))


# --- Novelty Grid Defaults ---
DEFAULT_CELL_GRID_DEG: Final[float] = 0.0005
DEFAULT_SIMPLIFY_M: Final[float] = 4.0
DEFAULT_NEIGHBOR_RADIUS: Final[int] = 1
DEFAULT_LEDGER_BATCH_SIZE: Final[int] = 500
DEFAULT_VISITED_CELL_LIMIT: Final[int] = 10000


def _get_float_env(name: str, default: float) -> float:
    """Get a float from an environment variable, NaN when unparsable."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return math.nan


def _get_int_env(name: str, default: int) -> int:
    """Get a positive integer from an environment variable with default."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return max(int(raw), 1)
    except ValueError:
        return default


@dataclass(frozen=True)
class NoveltySettings:
    """Immutable novelty grid configuration for one processing run."""

    cell_size_deg: float = DEFAULT_CELL_GRID_DEG
    simplify_m: float = DEFAULT_SIMPLIFY_M
    grid_simplify_m: float = DEFAULT_SIMPLIFY_M
    snap_tolerance_deg: float = DEFAULT_CELL_GRID_DEG / 2
    neighbor_radius: int = DEFAULT_NEIGHBOR_RADIUS
    ledger_batch_size: int = DEFAULT_LEDGER_BATCH_SIZE
    visited_cell_limit: int = DEFAULT_VISITED_CELL_LIMIT

    def __post_init__(self) -> None:
        if not math.isfinite(self.cell_size_deg) or self.cell_size_deg <= 0:
            msg = "CELL_GRID_DEG must be a positive number"
            raise ConfigurationError(msg, {"cell_size_deg": self.cell_size_deg})


def load_novelty_settings() -> NoveltySettings:
    """Read the novelty tunables from the environment.

    Called once per run; the returned object is passed to every stage.

    Raises:
        ConfigurationError: If the grid cell size is not a positive number.
    """
    raw_cell = os.getenv("CELL_GRID_DEG") or os.getenv("CELL_SIZE_DEG") or ""
    try:
        cell_size = float(raw_cell) if raw_cell.strip() else DEFAULT_CELL_GRID_DEG
    except ValueError:
        cell_size = math.nan
    if not math.isfinite(cell_size) or cell_size <= 0:
        msg = "CELL_GRID_DEG not configured"
        raise ConfigurationError(msg, {"value": raw_cell})

    simplify_m = _get_float_env("SIMPLIFY_M", DEFAULT_SIMPLIFY_M)
    grid_simplify_m = _get_float_env("GRID_SIMPLIFY_M", math.nan)
    if not math.isfinite(grid_simplify_m):
        grid_simplify_m = max(simplify_m, 0.0) if math.isfinite(simplify_m) else 0.0

    snap_tolerance = _get_float_env("SNAP_GRID_DEG", cell_size / 2)
    if not math.isfinite(snap_tolerance):
        snap_tolerance = cell_size / 2
    snap_tolerance = max(snap_tolerance, sys.float_info.epsilon)

    radius_raw = _get_float_env("CELL_NEIGHBOR_RADIUS", DEFAULT_NEIGHBOR_RADIUS)
    neighbor_radius = (
        max(0, math.floor(radius_raw))
        if math.isfinite(radius_raw)
        else DEFAULT_NEIGHBOR_RADIUS
    )

    return NoveltySettings(
        cell_size_deg=cell_size,
        simplify_m=simplify_m if math.isfinite(simplify_m) else DEFAULT_SIMPLIFY_M,
        grid_simplify_m=grid_simplify_m,
        snap_tolerance_deg=snap_tolerance,
        neighbor_radius=neighbor_radius,
        ledger_batch_size=_get_int_env("LEDGER_BATCH_SIZE", DEFAULT_LEDGER_BATCH_SIZE),
        visited_cell_limit=_get_int_env(
            "VISITED_CELL_LIMIT",
            DEFAULT_VISITED_CELL_LIMIT,
        ),
    )


__all__ = [
    "DEFAULT_CELL_GRID_DEG",
    "DEFAULT_LEDGER_BATCH_SIZE",
    "DEFAULT_NEIGHBOR_RADIUS",
    "DEFAULT_SIMPLIFY_M",
    "DEFAULT_VISITED_CELL_LIMIT",
    "STRAVA_ANNOTATE_DRYRUN",
    "STRAVA_API_BASE",
    "NoveltySettings",
    "load_novelty_settings",
]
