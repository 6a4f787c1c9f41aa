from __future__ import annotations

import logging
import threading
from datetime import datetime

from statemachine.exceptions import TransitionNotAllowed

from tower_battle.api.models import IntentKind, Outcome, OutcomeKind, StageStatus
from tower_battle.config import StageConfig
from tower_battle.core.shapes import ShapeDealer, ShapeLibrary
from tower_battle.core.stability import Collapse, evaluate
from tower_battle.core.tower import Tower, piece_view
from tower_battle.errors import ErrorKind, TowerError
from tower_battle.fsm import StageFSM
from tower_battle.turn_processing.turns import current_turn_player_id, next_turn_index
from tower_battle.turn_processing.validators import ValidationContext, pipeline_for_intent

logger = logging.getLogger(__name__)


class Stage:
    """One game instance bound to a chat channel or thread.

    Not thread-safe by itself: callers hold `lock` around every method call.
    """

    def __init__(
        self,
        stage_id: str,
        *,
        first_player_id: str,
        library: ShapeLibrary,
        config: StageConfig,
        now: datetime,
        dealer: ShapeDealer | None = None,
    ):
        self.stage_id = stage_id
        self.library = library
        self.config = config
        self.tower = Tower.on_table(half_width=config.table_half_width, half_depth=config.table_half_depth)

        self.players: list[str] = [first_player_id]
        self.turn_index = 0
        self.status = StageStatus.awaiting_first_move
        self.loser_id: str | None = None

        self.last_activity_at = now

        self.dealer = dealer or ShapeDealer(library, seed=config.seed)
        self.next_shape_id = self.dealer.next_shape_id()

        self.lock = threading.Lock()
        # Set once the registry no longer maps stage_id to this instance.
        self.removed = False

        self._fsm = StageFSM(self)

    @property
    def current_player_id(self) -> str | None:
        if self.status == StageStatus.ended:
            return None
        return current_turn_player_id(stage=self)

    def _validate(self, intent: IntentKind, player_id: str) -> None:
        ctx = ValidationContext(stage_id=self.stage_id, player_id=player_id, intent=intent)
        pipeline_for_intent(intent).validate(ctx=ctx, stage=self)

    def _transition(self, event: str) -> None:
        try:
            self._fsm.send(event)
        except TransitionNotAllowed as e:
            raise TowerError(ErrorKind.invalid_state, f"Cannot {event} while {self.status.value}") from e
        self._fsm.sync_status_to_model()

    def join(self, player_id: str) -> bool:
        """Register a player at the end of the turn order. Returns False if already registered."""

        self._validate(IntentKind.start, player_id)
        if player_id in self.players:
            return False
        self.players.append(player_id)
        logger.info("stage %s: %s joined (%d players)", self.stage_id, player_id, len(self.players))
        return True

    def drop(
        self,
        player_id: str,
        *,
        offset: float,
        rotation: float,
        now: datetime,
        shape_id: str | None = None,
    ) -> Outcome:
        self._validate(IntentKind.drop, player_id)

        deck = self.next_shape_id
        shape = self.library.shape_for(shape_id if shape_id is not None else deck)
        if shape.shape_id != deck:
            raise TowerError(ErrorKind.invalid_placement, f"The piece on deck is '{deck}', not '{shape.shape_id}'")

        result = evaluate(
            self.tower,
            shape,
            offset=offset,
            rotation=rotation,
            config=self.config,
            player_id=player_id,
        )
        self.last_activity_at = now

        if isinstance(result, Collapse):
            self.tower.freeze()
            self.loser_id = player_id
            self._transition("topple")
            logger.info(
                "stage %s: tower toppled at height %d by %s (%s)",
                self.stage_id,
                self.tower.height_of(),
                player_id,
                result.reason,
            )
            return Outcome(
                kind=OutcomeKind.toppled,
                stage_id=self.stage_id,
                status=self.status,
                snapshot=self.tower.snapshot(),
                players=list(self.players),
                loser_id=player_id,
                fallen_piece=piece_view(result.piece),
                collapse_reason=result.reason,
            )

        self.tower.append(shape, result.piece.pose, player_id=player_id)
        self._transition("settle")
        self.turn_index = next_turn_index(stage=self)
        self.next_shape_id = self.dealer.next_shape_id()

        return Outcome(
            kind=OutcomeKind.settled,
            stage_id=self.stage_id,
            status=self.status,
            snapshot=self.tower.snapshot(),
            players=list(self.players),
            next_player_id=self.current_player_id,
            next_shape_id=self.next_shape_id,
        )

    def status_report(self, *, event: str | None = None) -> Outcome:
        return Outcome(
            kind=OutcomeKind.status,
            stage_id=self.stage_id,
            status=self.status,
            snapshot=self.tower.snapshot(),
            players=list(self.players),
            next_player_id=self.current_player_id,
            next_shape_id=None if self.status == StageStatus.ended else self.next_shape_id,
            loser_id=self.loser_id,
            event=event,
        )

    def is_expired(self, now: datetime) -> bool:
        return now - self.last_activity_at > self.config.inactivity_timeout

    def expire(self) -> None:
        """Force the stage to ENDED; a no-op when it already is."""

        if self.status == StageStatus.ended:
            return
        self.tower.freeze()
        self._transition("expire")
        logger.info("stage %s: expired after inactivity", self.stage_id)
