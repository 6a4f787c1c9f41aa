from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tower_battle.api.models import Intent, IntentKind, Outcome, OutcomeKind, StageStatus
from tower_battle.chat import parse_mention
from tower_battle.config import StageConfig, get_shapes_path, load_stage_config
from tower_battle.core.shapes import ShapeDealer, ShapeLibrary
from tower_battle.errors import ErrorKind, InvariantViolation, TowerError
from tower_battle.registry import StageRegistry, init_registry
from tower_battle.stage import Stage
from tower_battle.users import StaticUserDirectory, UserDirectory

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=UTC)


def rejected(*, stage_id: str, kind: ErrorKind, reason: str) -> Outcome:
    return Outcome(kind=OutcomeKind.rejected, stage_id=stage_id, error=kind, reason=reason)


class GameSessionOrchestrator:
    """Entry point for every inbound intent.

    Resolves the stage, applies the intent under that stage's lock and
    translates errors into `rejected` outcomes. Holds no game rules itself.
    """

    def __init__(
        self,
        *,
        registry: StageRegistry,
        library: ShapeLibrary,
        config: StageConfig,
        users: UserDirectory | None = None,
        clock: Callable[[], datetime] = _now,
        dealer_factory: Callable[[ShapeLibrary], ShapeDealer] | None = None,
    ):
        self.registry = registry
        self.library = library
        self.config = config
        self.users: UserDirectory = users if users is not None else StaticUserDirectory()
        self.clock = clock
        self.dealer_factory = dealer_factory

    def new_stage(self, stage_id: str, *, first_player_id: str, now: datetime) -> Stage:
        dealer = self.dealer_factory(self.library) if self.dealer_factory is not None else None
        return Stage(
            stage_id,
            first_player_id=first_player_id,
            library=self.library,
            config=self.config,
            now=now,
            dealer=dealer,
        )

    def handle(self, intent: Intent) -> Outcome:
        now = self.clock()
        try:
            outcome = self._apply(intent, now)
        except TowerError as e:
            outcome = rejected(stage_id=intent.stage_id, kind=e.kind, reason=str(e))

        # User lookups may hit the network, so they run after the stage lock is released.
        return self._with_display_names(outcome)

    def handle_payload(self, payload: Mapping[str, Any]) -> Outcome:
        """Validate a loosely-typed intent (e.g. decoded JSON) before handling it."""

        try:
            intent = Intent.model_validate(dict(payload))
        except ValidationError as e:
            stage_id = str(payload.get("stage_id") or "")
            return rejected(stage_id=stage_id, kind=ErrorKind.invalid_intent, reason=str(e))
        return self.handle(intent)

    def handle_mention(self, *, stage_id: str, user_id: str, text: str) -> Outcome:
        try:
            command = parse_mention(text)
        except TowerError as e:
            return rejected(stage_id=stage_id, kind=e.kind, reason=str(e))

        intent = Intent(
            stage_id=stage_id,
            user_id=user_id,
            kind=command.kind,
            shape_id=command.shape_id,
            offset=command.offset,
            rotation=command.rotation,
        )
        return self.handle(intent)

    def _apply(self, intent: Intent, now: datetime) -> Outcome:
        while True:
            stage = self.registry.get(intent.stage_id)
            if stage is None:
                outcome = self._apply_without_stage(intent, now)
                if outcome is None:
                    # Lost a creation race; retry against the winner's stage.
                    continue
                return outcome

            with stage.lock:
                if stage.removed:
                    continue

                if stage.is_expired(now):
                    stage.expire()
                    self.registry.remove(intent.stage_id, stage)
                    continue

                try:
                    return self._apply_to_stage(stage, intent, now)
                except InvariantViolation:
                    logger.exception("stage %s: internal invariant violated; forcing reset", stage.stage_id)
                    self.registry.remove(stage.stage_id, stage)
                    return rejected(
                        stage_id=intent.stage_id,
                        kind=ErrorKind.invalid_state,
                        reason="Internal error; this stage has been reset. Send start to play again",
                    )

    def _apply_without_stage(self, intent: Intent, now: datetime) -> Outcome | None:
        if intent.kind in (IntentKind.status, IntentKind.drop):
            raise TowerError(ErrorKind.stage_not_found, "No game here yet; send start to begin")

        stage, created = self.registry.get_or_create(
            intent.stage_id,
            lambda: self.new_stage(intent.stage_id, first_player_id=intent.user_id, now=now),
        )
        if not created:
            return None
        with stage.lock:
            return stage.status_report(event="started")

    def _apply_to_stage(self, stage: Stage, intent: Intent, now: datetime) -> Outcome:
        if intent.kind == IntentKind.status:
            return stage.status_report()

        if intent.kind == IntentKind.drop:
            # Intents built with model_construct skip the model validator.
            if intent.offset is None or intent.rotation is None:
                raise TowerError(ErrorKind.invalid_intent, "A drop needs an offset and a rotation")
            return stage.drop(
                intent.user_id,
                offset=intent.offset,
                rotation=intent.rotation,
                shape_id=intent.shape_id,
                now=now,
            )

        if intent.kind == IntentKind.reset or stage.status == StageStatus.ended:
            fresh = self.new_stage(intent.stage_id, first_player_id=intent.user_id, now=now)
            report = fresh.status_report(event="reset" if intent.kind == IntentKind.reset else "started")
            self.registry.replace(intent.stage_id, fresh)
            return report

        joined = stage.join(intent.user_id)
        return stage.status_report(event="joined" if joined else None)

    def _with_display_names(self, outcome: Outcome) -> Outcome:
        ids = [*outcome.players]
        for extra in (outcome.next_player_id, outcome.loser_id):
            if extra is not None and extra not in ids:
                ids.append(extra)
        if not ids:
            return outcome

        names: dict[str, str] = {}
        for user_id in ids:
            name = self.users.display_name(user_id)
            if name:
                names[user_id] = name
        return outcome.model_copy(update={"display_names": names})


_ORCHESTRATOR: GameSessionOrchestrator | None = None


def init_orchestrator(*, users: UserDirectory | None = None) -> GameSessionOrchestrator:
    """Build the process-wide orchestrator once; later calls return the same instance."""

    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        shapes_path = get_shapes_path()
        library = ShapeLibrary.from_json(Path(shapes_path)) if shapes_path else ShapeLibrary.default()
        _ORCHESTRATOR = GameSessionOrchestrator(
            registry=init_registry(),
            library=library,
            config=load_stage_config(),
            users=users,
        )
    return _ORCHESTRATOR


def get_orchestrator() -> GameSessionOrchestrator:
    return init_orchestrator()


def reset_orchestrator_for_tests() -> None:
    global _ORCHESTRATOR
    _ORCHESTRATOR = None
