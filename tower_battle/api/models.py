from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from tower_battle.core.tower import PieceView, TowerSnapshot
from tower_battle.errors import ErrorKind


class StageStatus(StrEnum):
    awaiting_first_move = "AWAITING_FIRST_MOVE"
    in_progress = "IN_PROGRESS"
    ended = "ENDED"


class IntentKind(StrEnum):
    start = "start"
    drop = "drop"
    status = "status"
    reset = "reset"


class OutcomeKind(StrEnum):
    settled = "settled"
    toppled = "toppled"
    rejected = "rejected"
    status = "status"


class Intent(BaseModel):
    """A structured player request, already stripped of chat formatting."""

    stage_id: str = Field(..., min_length=1, max_length=200)
    user_id: str = Field(..., min_length=1, max_length=200)
    kind: IntentKind

    # Drop parameters. A missing shape_id means "the piece on deck".
    shape_id: str | None = None
    offset: float | None = None
    rotation: float | None = None

    @model_validator(mode="after")
    def _drop_requires_parameters(self) -> "Intent":
        if self.kind == IntentKind.drop and (self.offset is None or self.rotation is None):
            raise ValueError("drop requires offset and rotation")
        return self


class IntentRequest(BaseModel):
    """Request body for the structured intents endpoint; stage id comes from the path."""

    user_id: str = Field(..., min_length=1, max_length=200)
    kind: IntentKind
    shape_id: str | None = None
    offset: float | None = None
    rotation: float | None = None


class MentionRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=200)
    text: str = Field(..., max_length=4000)


class Outcome(BaseModel):
    """Result of one intent. Returned once to the caller, never stored."""

    kind: OutcomeKind
    stage_id: str
    status: StageStatus | None = None

    snapshot: TowerSnapshot | None = None
    players: list[str] = Field(default_factory=list)
    next_player_id: str | None = None
    next_shape_id: str | None = None

    # Toppled only.
    loser_id: str | None = None
    fallen_piece: PieceView | None = None
    collapse_reason: str | None = None

    # Rejected only.
    error: ErrorKind | None = None
    reason: str | None = None

    # Set on status outcomes produced by start/reset ("started", "joined", "reset").
    event: str | None = None

    display_names: dict[str, str] = Field(default_factory=dict)

    @property
    def elevation(self) -> float:
        return self.snapshot.elevation if self.snapshot is not None else 0.0


class OutcomeResponse(BaseModel):
    outcome: Outcome
    message: str


class ShapeInfo(BaseModel):
    shape_id: str
    vertices: list[tuple[float, float]]
    thickness: float
    weight: float


class ShapeListResponse(BaseModel):
    shapes: list[ShapeInfo]
