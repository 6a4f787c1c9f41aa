from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class StageConfig:
    """Tunables shared by every stage created by one registry."""

    # Table rectangle, centered on the origin.
    table_half_width: float = 10.0
    table_half_depth: float = 4.0

    # Drop parameter bounds. Offsets are normalized onto the table x axis.
    max_offset: float = 1.0
    max_rotation: float = 180.0

    # Distance tolerance for the center-of-mass test; boundary points are stable.
    tolerance: float = 1e-6
    # Contacts smaller than this are treated as a miss.
    min_contact_area: float = 1e-6

    inactivity_timeout: timedelta = timedelta(hours=24)
    allow_join_in_progress: bool = True

    # Seed for the piece dealer; None draws a fresh seed per stage.
    seed: int | None = None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if not raw:
        return default
    return raw.strip().casefold() in {"1", "true", "yes", "on"}


def load_stage_config() -> StageConfig:
    seed = os.environ.get("TOWER_BATTLE_SEED")
    return StageConfig(
        table_half_width=_env_float("TOWER_BATTLE_TABLE_HALF_WIDTH", 10.0),
        table_half_depth=_env_float("TOWER_BATTLE_TABLE_HALF_DEPTH", 4.0),
        tolerance=_env_float("TOWER_BATTLE_TOLERANCE", 1e-6),
        inactivity_timeout=timedelta(hours=_env_float("TOWER_BATTLE_INACTIVITY_HOURS", 24.0)),
        allow_join_in_progress=_env_bool("TOWER_BATTLE_ALLOW_JOIN", True),
        seed=int(seed) if seed else None,
    )


def get_sweep_interval_seconds() -> float:
    return _env_float("TOWER_BATTLE_SWEEP_INTERVAL_SECONDS", 60.0)


def get_shapes_path() -> str | None:
    # Optional JSON catalog replacing the built-in shapes.
    return os.environ.get("TOWER_BATTLE_SHAPES_PATH") or None
