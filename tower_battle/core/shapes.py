from __future__ import annotations

import json
import math
import random
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from shapely import affinity
from shapely.geometry import Polygon

from tower_battle.errors import ErrorKind, TowerError


@dataclass(frozen=True, slots=True)
class Shape:
    """A droppable slab: convex footprint centered on its centroid, plus thickness."""

    shape_id: str
    footprint: Polygon
    thickness: float
    density: float = 1.0

    @property
    def weight(self) -> float:
        return self.footprint.area * self.density


def _regular_polygon(n: int, radius: float) -> list[tuple[float, float]]:
    return [(radius * math.cos(2 * math.pi * i / n), radius * math.sin(2 * math.pi * i / n)) for i in range(n)]


def _rectangle(width: float, depth: float) -> list[tuple[float, float]]:
    w, d = width / 2, depth / 2
    return [(-w, -d), (w, -d), (w, d), (-w, d)]


# (vertices, thickness) per shape id, in table units.
DEFAULT_SHAPES: dict[str, tuple[list[tuple[float, float]], float]] = {
    "block": (_rectangle(3.0, 3.0), 2.0),
    "slab": (_rectangle(6.0, 3.0), 1.0),
    "plank": (_rectangle(10.0, 1.5), 0.5),
    "beam": (_rectangle(14.0, 1.0), 1.0),
    "wedge": ([(-3.0, -2.0), (3.0, -2.0), (0.0, 2.5)], 1.0),
    "hexagon": (_regular_polygon(6, 2.5), 1.5),
    "disc": (_regular_polygon(16, 2.0), 1.0),
}


def make_shape(
    shape_id: str,
    vertices: Sequence[Sequence[float]],
    *,
    thickness: float,
    density: float = 1.0,
) -> Shape:
    """Normalize raw vertices into a Shape.

    Concave outlines are replaced by their convex hull and the footprint is
    moved so its centroid sits on the origin; rotations then pivot about the
    piece's own center.
    """

    if thickness <= 0:
        raise ValueError(f"shape '{shape_id}' must have positive thickness")
    if density <= 0:
        raise ValueError(f"shape '{shape_id}' must have positive density")

    hull = Polygon([(float(x), float(y)) for x, y in vertices]).convex_hull
    if hull.geom_type != "Polygon" or hull.area <= 0:
        raise ValueError(f"shape '{shape_id}' has a degenerate footprint")

    c = hull.centroid
    footprint = affinity.translate(hull, xoff=-c.x, yoff=-c.y)
    return Shape(shape_id=shape_id, footprint=footprint, thickness=float(thickness), density=float(density))


class ShapeLibrary:
    """The fixed catalog of droppable pieces."""

    def __init__(self, shapes: Iterable[Shape]):
        by_id: dict[str, Shape] = {}
        for shape in shapes:
            if shape.shape_id in by_id:
                raise ValueError(f"duplicate shape id: {shape.shape_id}")
            by_id[shape.shape_id] = shape
        if not by_id:
            raise ValueError("shape library must not be empty")
        self._by_id: Mapping[str, Shape] = by_id

    @classmethod
    def default(cls) -> "ShapeLibrary":
        return cls(make_shape(sid, verts, thickness=t) for sid, (verts, t) in DEFAULT_SHAPES.items())

    @classmethod
    def from_json(cls, path: Path) -> "ShapeLibrary":
        """Load a catalog such as `[{"id": "slab", "vertices": [[0,0],...], "thickness": 1}]`."""

        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError("shape catalog must be a JSON list")
        shapes = [
            make_shape(
                str(entry["id"]),
                entry["vertices"],
                thickness=float(entry.get("thickness", 1.0)),
                density=float(entry.get("density", 1.0)),
            )
            for entry in raw
        ]
        return cls(shapes)

    def shape_for(self, shape_id: str) -> Shape:
        shape = self._by_id.get(shape_id)
        if shape is None:
            raise TowerError(ErrorKind.unknown_shape, f"Unknown shape: {shape_id}")
        return shape

    def all_shape_ids(self) -> frozenset[str]:
        return frozenset(self._by_id)


class ShapeDealer:
    """Picks the piece on deck for each turn."""

    def __init__(self, library: ShapeLibrary, *, seed: int | None = None):
        # None seeds from the OS, so unseeded stages deal different sequences.
        self._rng = random.Random(seed)
        # Sorted so a given seed deals the same sequence on every run.
        self._ids = sorted(library.all_shape_ids())

    def next_shape_id(self) -> str:
        return self._rng.choice(self._ids)
