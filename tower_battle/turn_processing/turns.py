from __future__ import annotations

from typing import TYPE_CHECKING

from tower_battle.errors import ErrorKind, InvariantViolation, TowerError

if TYPE_CHECKING:
    from tower_battle.stage import Stage


def current_turn_player_id(*, stage: "Stage") -> str:
    """Return which player_id should drop next.

    Policy: strict round-robin over the roster in join order. Before the first
    move the turn index is 0, so the player who started the stage goes first.
    """

    if not stage.players:
        raise InvariantViolation(f"stage {stage.stage_id} has no players")
    return stage.players[stage.turn_index % len(stage.players)]


def next_turn_index(*, stage: "Stage") -> int:
    if not stage.players:
        raise InvariantViolation(f"stage {stage.stage_id} has no players")
    return (stage.turn_index + 1) % len(stage.players)


def assert_is_players_turn(*, stage: "Stage", player_id: str) -> None:
    expected = current_turn_player_id(stage=stage)
    if player_id == expected:
        return
    if player_id not in stage.players:
        raise TowerError(
            ErrorKind.not_your_turn,
            f"You are not in this game yet (it is <@{expected}>'s turn); send start to join",
        )
    raise TowerError(ErrorKind.not_your_turn, f"Not your turn (it is <@{expected}>'s turn)")
