from __future__ import annotations

from typing import TYPE_CHECKING

from statemachine import State, StateMachine

from tower_battle.api.models import StageStatus

if TYPE_CHECKING:
    from tower_battle.stage import Stage


class StageFSM(StateMachine):
    """Transition table for one stage.

    awaiting first move -> in progress (first settled drop) -> ended (topple or inactivity).
    The stage applies gameplay; the FSM only guards which transitions are legal.
    """

    awaiting_first_move = State(
        StageStatus.awaiting_first_move.value,
        value=StageStatus.awaiting_first_move.value,
        initial=True,
    )
    in_progress = State(StageStatus.in_progress.value, value=StageStatus.in_progress.value)
    ended = State(StageStatus.ended.value, value=StageStatus.ended.value, final=True)

    settle = awaiting_first_move.to(in_progress) | in_progress.to.itself()
    topple = awaiting_first_move.to(ended) | in_progress.to(ended)
    expire = awaiting_first_move.to(ended) | in_progress.to(ended)

    def __init__(self, stage: "Stage"):
        self.stage = stage
        super().__init__(start_value=stage.status.value)

    def sync_status_to_model(self) -> None:
        self.stage.status = StageStatus(str(self.current_state.value))
