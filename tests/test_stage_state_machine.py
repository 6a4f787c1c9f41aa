from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from tower_battle.api.models import OutcomeKind, StageStatus
from tower_battle.config import StageConfig
from tower_battle.core.shapes import ShapeLibrary
from tower_battle.errors import ErrorKind, TowerError
from tower_battle.stage import Stage

T0 = datetime(2025, 1, 1, tzinfo=UTC)


def _stage(library: ShapeLibrary, config: StageConfig | None = None, *players: str) -> Stage:
    stage = Stage("C1", first_player_id="U1", library=library, config=config or StageConfig(), now=T0)
    for p in players:
        stage.join(p)
    return stage


def test_new_stage_awaits_first_move_from_its_creator(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library)

    assert stage.status == StageStatus.awaiting_first_move
    assert stage.players == ["U1"]
    assert stage.current_player_id == "U1"
    assert stage.next_shape_id == "slab"
    assert stage.tower.height_of() == 0


def test_solo_player_keeps_the_turn(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library)

    outcome = stage.drop("U1", offset=0.0, rotation=0.0, now=T0)

    assert outcome.kind == OutcomeKind.settled
    assert outcome.status == StageStatus.in_progress
    assert outcome.snapshot is not None and outcome.snapshot.height == 1
    assert outcome.snapshot.center_of_mass == (pytest.approx(0.0), pytest.approx(0.0))
    assert outcome.next_player_id == "U1"


def test_turns_rotate_round_robin(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library, None, "U2", "U3")

    order = []
    for _ in range(6):
        player = stage.current_player_id
        assert player is not None
        order.append(player)
        outcome = stage.drop(player, offset=0.0, rotation=0.0, now=T0)
        assert outcome.kind == OutcomeKind.settled

    assert order == ["U1", "U2", "U3", "U1", "U2", "U3"]
    assert stage.tower.height_of() == 6


def test_out_of_turn_drop_is_rejected_without_mutation(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library, None, "U2")

    with pytest.raises(TowerError) as e:
        stage.drop("U2", offset=0.0, rotation=0.0, now=T0)
    assert e.value.kind == ErrorKind.not_your_turn

    with pytest.raises(TowerError) as e:
        stage.drop("stranger", offset=0.0, rotation=0.0, now=T0)
    assert e.value.kind == ErrorKind.not_your_turn

    assert stage.tower.height_of() == 0
    assert stage.status == StageStatus.awaiting_first_move
    assert stage.current_player_id == "U1"


def test_topple_ends_the_game_and_blames_the_dropper(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library, None, "U2")
    stage.drop("U1", offset=0.0, rotation=0.0, now=T0)

    outcome = stage.drop("U2", offset=1.0, rotation=0.0, now=T0)

    assert outcome.kind == OutcomeKind.toppled
    assert outcome.loser_id == "U2"
    assert outcome.status == StageStatus.ended
    assert outcome.collapse_reason == "missed"
    assert outcome.fallen_piece is not None and outcome.fallen_piece.x == pytest.approx(10.0)
    assert outcome.snapshot is not None
    assert outcome.snapshot.height == 1
    assert outcome.snapshot.frozen is True
    assert stage.current_player_id is None


def test_drops_after_the_end_are_invalid_state(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library)
    stage.drop("U1", offset=0.0, rotation=0.0, now=T0)
    stage.drop("U1", offset=0.6, rotation=0.0, now=T0)
    assert stage.status == StageStatus.ended

    with pytest.raises(TowerError) as e:
        stage.drop("U1", offset=0.0, rotation=0.0, now=T0)

    assert e.value.kind == ErrorKind.invalid_state
    assert stage.tower.height_of() == 1


def test_first_drop_can_topple_straight_from_awaiting(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library, StageConfig(max_offset=1.5))

    outcome = stage.drop("U1", offset=1.5, rotation=0.0, now=T0)

    assert outcome.kind == OutcomeKind.toppled
    assert stage.status == StageStatus.ended


def test_naming_a_shape_other_than_the_one_on_deck(slab_library: ShapeLibrary) -> None:
    library = ShapeLibrary.default()
    stage = _stage(library)
    deck = stage.next_shape_id
    other = next(s for s in sorted(library.all_shape_ids()) if s != deck)

    with pytest.raises(TowerError) as e:
        stage.drop("U1", offset=0.0, rotation=0.0, shape_id=other, now=T0)
    assert e.value.kind == ErrorKind.invalid_placement

    with pytest.raises(TowerError) as e:
        stage.drop("U1", offset=0.0, rotation=0.0, shape_id="anvil", now=T0)
    assert e.value.kind == ErrorKind.unknown_shape

    outcome = stage.drop("U1", offset=0.0, rotation=0.0, shape_id=deck, now=T0)
    assert outcome.kind == OutcomeKind.settled


def test_bad_parameters_do_not_consume_the_turn(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library, None, "U2")

    with pytest.raises(TowerError) as e:
        stage.drop("U1", offset=2.0, rotation=0.0, now=T0 + timedelta(hours=1))

    assert e.value.kind == ErrorKind.invalid_placement
    assert stage.current_player_id == "U1"
    assert stage.last_activity_at == T0


def test_join_in_progress_appends_to_turn_order(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library, None, "U2")
    stage.drop("U1", offset=0.0, rotation=0.0, now=T0)

    assert stage.join("U3") is True
    assert stage.join("U3") is False
    assert stage.players == ["U1", "U2", "U3"]
    assert stage.current_player_id == "U2"


def test_join_in_progress_can_be_disabled(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library, StageConfig(allow_join_in_progress=False), "U2")
    stage.drop("U1", offset=0.0, rotation=0.0, now=T0)

    with pytest.raises(TowerError) as e:
        stage.join("U3")
    assert e.value.kind == ErrorKind.invalid_state


def test_inactivity_expiry(slab_library: ShapeLibrary) -> None:
    stage = _stage(slab_library)
    stage.drop("U1", offset=0.0, rotation=0.0, now=T0 + timedelta(hours=1))

    assert not stage.is_expired(T0 + timedelta(hours=25))
    assert stage.is_expired(T0 + timedelta(hours=25, seconds=1))

    stage.expire()
    assert stage.status == StageStatus.ended
    assert stage.tower.frozen

    # Expiring twice is harmless.
    stage.expire()
    assert stage.status == StageStatus.ended
