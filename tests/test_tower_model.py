from __future__ import annotations

import pytest

from tower_battle.core.shapes import make_shape
from tower_battle.core.tower import Pose, Tower
from tower_battle.errors import ErrorKind, InvariantViolation, TowerError

SLAB = make_shape("slab", [(-3, -1.5), (3, -1.5), (3, 1.5), (-3, 1.5)], thickness=1.0)
BLOCK = make_shape("block", [(-1.5, -1.5), (1.5, -1.5), (1.5, 1.5), (-1.5, 1.5)], thickness=2.0)


def _tower() -> Tower:
    return Tower.on_table(half_width=10.0, half_depth=4.0)


def test_empty_tower_exposes_the_table() -> None:
    tower = _tower()
    assert tower.height_of() == 0
    assert tower.elevation == 0.0
    assert tower.support_polygon_at_top().area == pytest.approx(20.0 * 8.0)


def test_center_of_mass_of_empty_tower_is_an_invariant_violation() -> None:
    with pytest.raises(InvariantViolation):
        _tower().center_of_mass()


def test_append_tracks_height_elevation_and_weighted_center_of_mass() -> None:
    tower = _tower()
    tower.append(SLAB, Pose(x=0.0, y=0.0, rotation=0.0, elevation=0.0), player_id="U1")
    tower.append(BLOCK, Pose(x=1.5, y=0.0, rotation=0.0, elevation=1.0), player_id="U2")

    assert tower.height_of() == 2
    assert tower.elevation == pytest.approx(3.0)

    # slab weighs 18 at x=0, block weighs 9 at x=1.5
    cx, cy = tower.center_of_mass()
    assert cx == pytest.approx(0.5)
    assert cy == pytest.approx(0.0)


def test_support_polygons_are_the_overlaps_per_level() -> None:
    tower = _tower()
    tower.append(SLAB, Pose(x=0.0, y=0.0, rotation=0.0, elevation=0.0))
    tower.append(SLAB, Pose(x=2.0, y=0.0, rotation=0.0, elevation=1.0))

    base, upper = tower.support_polygons()
    assert base.area == pytest.approx(18.0)
    # x overlap [-1, 3] times the full 3-unit depth
    assert upper.area == pytest.approx(12.0)
    minx, _, maxx, _ = upper.bounds
    assert (minx, maxx) == (pytest.approx(-1.0), pytest.approx(3.0))

    # The next drop lands on the overlap, not the whole top footprint.
    assert tower.support_polygon_at_top().equals(upper)


def test_append_outside_the_top_overlap_is_an_invariant_violation() -> None:
    tower = _tower()
    tower.append(SLAB, Pose(x=0.0, y=0.0, rotation=0.0, elevation=0.0))
    tower.append(SLAB, Pose(x=2.0, y=0.0, rotation=0.0, elevation=1.0))

    # x in [3.1, 6.1] touches the top slab's footprint [-1, 5] but not the overlap [-1, 3]
    with pytest.raises(InvariantViolation):
        tower.append(BLOCK, Pose(x=4.6, y=0.0, rotation=0.0, elevation=2.0))

    # Stacked inside the overlap, the contact shrinks to what lies under it.
    piece = tower.append(BLOCK, Pose(x=2.0, y=0.0, rotation=0.0, elevation=2.0))
    minx, _, maxx, _ = piece.contact.bounds
    assert (minx, maxx) == (pytest.approx(0.5), pytest.approx(3.0))


def test_append_rejects_pose_not_resting_on_top() -> None:
    tower = _tower()
    with pytest.raises(InvariantViolation):
        tower.append(SLAB, Pose(x=0.0, y=0.0, rotation=0.0, elevation=5.0))


def test_frozen_tower_refuses_appends() -> None:
    tower = _tower()
    tower.append(SLAB, Pose(x=0.0, y=0.0, rotation=0.0, elevation=0.0))
    tower.freeze()

    with pytest.raises(TowerError) as e:
        tower.append(SLAB, Pose(x=0.0, y=0.0, rotation=0.0, elevation=1.0))

    assert e.value.kind == ErrorKind.invalid_state
    assert tower.height_of() == 1


def test_snapshot_lists_resolved_poses_bottom_to_top() -> None:
    tower = _tower()
    tower.append(SLAB, Pose(x=0.0, y=0.0, rotation=0.0, elevation=0.0), player_id="U1")
    tower.append(SLAB, Pose(x=0.0, y=0.0, rotation=90.0, elevation=1.0), player_id="U2")

    snap = tower.snapshot()

    assert snap.height == 2
    assert [p.player_id for p in snap.pieces] == ["U1", "U2"]
    assert snap.pieces[1].rotation == 90.0
    assert snap.pieces[1].elevation == 1.0
    xs = [x for x, _ in snap.pieces[1].vertices]
    ys = [y for _, y in snap.pieces[1].vertices]
    # Rotated a quarter turn the slab is 3 wide and 6 deep.
    assert max(xs) - min(xs) == pytest.approx(3.0)
    assert max(ys) - min(ys) == pytest.approx(6.0)
    assert len(snap.table) == 4
    assert snap.frozen is False
