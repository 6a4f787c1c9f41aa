"""Drop resolution and the per-interface stability test.

A dropped piece falls straight down onto the top support polygon (the
overlap of the top piece with what it rests on, or the table for the first
piece). The tower stands iff the combined center of mass of every piece,
the new one included, projects inside the support polygon of every level.
Points within `tolerance` of a boundary count as inside.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal

from shapely.geometry import Point

from tower_battle.config import StageConfig
from tower_battle.core.shapes import Shape
from tower_battle.core.tower import PlacedPiece, Pose, Tower, center_of_mass, place_footprint
from tower_battle.errors import ErrorKind, TowerError

CollapseReason = Literal["missed", "unbalanced"]


@dataclass(frozen=True, slots=True)
class Settlement:
    piece: PlacedPiece
    center_of_mass: tuple[float, float]


@dataclass(frozen=True, slots=True)
class Collapse:
    piece: PlacedPiece
    reason: CollapseReason
    # Lowest unsupported level, counted from the base; None for a miss.
    level: int | None = None


def validate_drop(*, offset: float, rotation: float, config: StageConfig) -> None:
    if not math.isfinite(offset) or abs(offset) > config.max_offset:
        raise TowerError(
            ErrorKind.invalid_placement,
            f"Offset must be between {-config.max_offset:g} and {config.max_offset:g}",
        )
    if not math.isfinite(rotation) or abs(rotation) > config.max_rotation:
        raise TowerError(
            ErrorKind.invalid_placement,
            f"Rotation must be between {-config.max_rotation:g} and {config.max_rotation:g} degrees",
        )


def resolve_pose(tower: Tower, *, offset: float, rotation: float, config: StageConfig) -> Pose:
    return Pose(
        x=offset * config.table_half_width,
        y=0.0,
        rotation=rotation,
        elevation=tower.elevation,
    )


def _unsupported_level(stack: list[PlacedPiece], tolerance: float) -> int | None:
    com = Point(*center_of_mass(stack))
    for level, piece in enumerate(stack):
        if piece.contact.distance(com) > tolerance:
            return level
    return None


def evaluate(
    tower: Tower,
    shape: Shape,
    *,
    offset: float,
    rotation: float,
    config: StageConfig,
    player_id: str | None = None,
) -> Settlement | Collapse:
    """Judge one drop against the current tower without mutating it."""

    if tower.frozen:
        raise TowerError(ErrorKind.invalid_state, "The tower has collapsed")

    validate_drop(offset=offset, rotation=rotation, config=config)

    pose = resolve_pose(tower, offset=offset, rotation=rotation, config=config)
    footprint = place_footprint(shape, pose)
    contact = footprint.intersection(tower.support_polygon_at_top())

    candidate = PlacedPiece(shape=shape, pose=pose, footprint=footprint, contact=contact, player_id=player_id)

    if contact.is_empty or contact.area < config.min_contact_area:
        return Collapse(piece=candidate, reason="missed")

    stack = [*tower.pieces, candidate]
    level = _unsupported_level(stack, config.tolerance)
    if level is not None:
        return Collapse(piece=candidate, reason="unbalanced", level=level)

    return Settlement(piece=candidate, center_of_mass=center_of_mass(stack))
