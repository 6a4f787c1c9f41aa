from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from shapely import affinity
from shapely.geometry import Polygon, box

from tower_battle.core.shapes import Shape
from tower_battle.errors import ErrorKind, InvariantViolation, TowerError


@dataclass(frozen=True, slots=True)
class Pose:
    """Resolved resting pose. Rotation is in degrees, clockwise positive seen from above."""

    x: float
    y: float
    rotation: float
    elevation: float


@dataclass(frozen=True, slots=True)
class PlacedPiece:
    shape: Shape
    pose: Pose
    footprint: Polygon
    # Overlap with the surface this piece rests on: the support polygon of its level.
    contact: Polygon
    player_id: str | None = None

    @property
    def weight(self) -> float:
        return self.shape.weight

    @property
    def top(self) -> float:
        return self.pose.elevation + self.shape.thickness


@dataclass(frozen=True, slots=True)
class PieceView:
    shape_id: str
    player_id: str | None
    x: float
    y: float
    rotation: float
    elevation: float
    thickness: float
    vertices: tuple[tuple[float, float], ...]


@dataclass(frozen=True, slots=True)
class TowerSnapshot:
    """Everything a renderer needs to draw the tower."""

    pieces: tuple[PieceView, ...]
    height: int
    elevation: float
    center_of_mass: tuple[float, float] | None
    frozen: bool
    table: tuple[tuple[float, float], ...]


def place_footprint(shape: Shape, pose: Pose) -> Polygon:
    rotated = affinity.rotate(shape.footprint, -pose.rotation, origin=(0.0, 0.0))
    return affinity.translate(rotated, xoff=pose.x, yoff=pose.y)


def piece_view(piece: PlacedPiece) -> PieceView:
    coords = tuple((float(x), float(y)) for x, y in list(piece.footprint.exterior.coords)[:-1])
    return PieceView(
        shape_id=piece.shape.shape_id,
        player_id=piece.player_id,
        x=piece.pose.x,
        y=piece.pose.y,
        rotation=piece.pose.rotation,
        elevation=piece.pose.elevation,
        thickness=piece.shape.thickness,
        vertices=coords,
    )


def center_of_mass(pieces: Iterable[PlacedPiece]) -> tuple[float, float]:
    """Weight-averaged ground projection of the pieces' centroids."""

    total = 0.0
    mx = 0.0
    my = 0.0
    for piece in pieces:
        c = piece.footprint.centroid
        total += piece.weight
        mx += piece.weight * c.x
        my += piece.weight * c.y
    if total <= 0:
        raise InvariantViolation("center of mass requested for an empty piece list")
    return mx / total, my / total


class Tower:
    """Append-only stack of placed pieces, bottom to top."""

    def __init__(self, table: Polygon):
        self.table = table
        self._pieces: list[PlacedPiece] = []
        self._com: tuple[float, float] | None = None
        self._frozen = False

    @classmethod
    def on_table(cls, *, half_width: float, half_depth: float) -> "Tower":
        return cls(box(-half_width, -half_depth, half_width, half_depth))

    @property
    def pieces(self) -> tuple[PlacedPiece, ...]:
        return tuple(self._pieces)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def elevation(self) -> float:
        return self._pieces[-1].top if self._pieces else 0.0

    def height_of(self) -> int:
        return len(self._pieces)

    def support_polygon_at_top(self) -> Polygon:
        """Surface the next piece lands on: the top piece's overlap with what it rests on, or the table."""

        if not self._pieces:
            return self.table
        return self._pieces[-1].contact

    def support_polygons(self) -> list[Polygon]:
        """Support polygon of each level, bottom to top."""

        return [p.contact for p in self._pieces]

    def center_of_mass(self) -> tuple[float, float]:
        if self._com is None:
            raise InvariantViolation("tower has no pieces")
        return self._com

    def append(self, shape: Shape, pose: Pose, *, player_id: str | None = None) -> PlacedPiece:
        if self._frozen:
            raise TowerError(ErrorKind.invalid_state, "The tower has collapsed")

        if abs(pose.elevation - self.elevation) > 1e-9:
            raise InvariantViolation(
                f"pose elevation {pose.elevation} does not rest on tower top {self.elevation}"
            )

        footprint = place_footprint(shape, pose)
        contact = footprint.intersection(self.support_polygon_at_top())
        if contact.is_empty or contact.area <= 0:
            raise InvariantViolation("appended piece does not touch the tower")

        piece = PlacedPiece(shape=shape, pose=pose, footprint=footprint, contact=contact, player_id=player_id)
        self._pieces.append(piece)
        # Always recomputed from the full list; incremental updates drift on tall towers.
        self._com = center_of_mass(self._pieces)
        return piece

    def freeze(self) -> None:
        self._frozen = True

    def snapshot(self) -> TowerSnapshot:
        return TowerSnapshot(
            pieces=tuple(piece_view(p) for p in self._pieces),
            height=len(self._pieces),
            elevation=self.elevation,
            center_of_mass=self._com,
            frozen=self._frozen,
            table=tuple((float(x), float(y)) for x, y in list(self.table.exterior.coords)[:-1]),
        )
