from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tower_battle.api.models import IntentKind, StageStatus
from tower_battle.errors import ErrorKind, TowerError

if TYPE_CHECKING:
    from tower_battle.stage import Stage


@dataclass(frozen=True, slots=True)
class ValidationContext:
    """Inputs available to validators.

    Keep this tight and serializable-ish so we can safely log it.
    """

    stage_id: str
    player_id: str
    intent: IntentKind


class IntentValidator(ABC):
    """A small, composable validation unit for an incoming intent."""

    @abstractmethod
    def validate(self, *, ctx: ValidationContext, stage: "Stage") -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class StatusValidator(IntentValidator):
    """Validates the current stage status for a given intent."""

    allowed_statuses: frozenset[StageStatus]
    # Shown instead of the generic message when set.
    denial: str | None = None

    def validate(self, *, ctx: ValidationContext, stage: "Stage") -> None:
        if stage.status in self.allowed_statuses:
            return
        if self.denial is not None:
            raise TowerError(ErrorKind.invalid_state, self.denial)
        allowed = ",".join(sorted(s.value for s in self.allowed_statuses))
        raise TowerError(
            ErrorKind.invalid_state,
            f"'{ctx.intent.value}' not allowed while {stage.status.value} (allowed: {allowed})",
        )


@dataclass(frozen=True, slots=True)
class JoinPolicyValidator(IntentValidator):
    """New players may only join after the first move if the stage allows it."""

    def validate(self, *, ctx: ValidationContext, stage: "Stage") -> None:
        if ctx.player_id in stage.players:
            return
        if stage.status == StageStatus.in_progress and not stage.config.allow_join_in_progress:
            raise TowerError(ErrorKind.invalid_state, "This game is already under way; wait for the next one")


@dataclass(frozen=True, slots=True)
class TurnHolderValidator(IntentValidator):
    """Only the current turn-holder may drop."""

    def validate(self, *, ctx: ValidationContext, stage: "Stage") -> None:
        from tower_battle.turn_processing.turns import assert_is_players_turn

        assert_is_players_turn(stage=stage, player_id=ctx.player_id)


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[IntentValidator, ...]

    def validate(self, *, ctx: ValidationContext, stage: "Stage") -> None:
        for v in self.validators:
            v.validate(ctx=ctx, stage=stage)


DEFAULT_INTENT_PIPELINES: dict[IntentKind, ValidatorPipeline] = {
    # A start on an ENDED stage never gets here: the orchestrator opens a fresh stage instead.
    IntentKind.start: ValidatorPipeline(validators=(JoinPolicyValidator(),)),
    IntentKind.drop: ValidatorPipeline(
        validators=(
            StatusValidator(
                allowed_statuses=frozenset({StageStatus.awaiting_first_move, StageStatus.in_progress}),
                denial="Game is over; send reset to start a new tower",
            ),
            TurnHolderValidator(),
        )
    ),
    IntentKind.status: ValidatorPipeline(validators=()),
    IntentKind.reset: ValidatorPipeline(validators=()),
}


def pipeline_for_intent(intent: IntentKind) -> ValidatorPipeline:
    pipe = DEFAULT_INTENT_PIPELINES.get(intent)
    if pipe is None:
        raise TowerError(ErrorKind.invalid_intent, f"Unknown intent: {intent}")
    return pipe
