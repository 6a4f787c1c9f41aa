from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Mapping, cast

import redis

from tower_battle.api.models import Outcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OutcomeStream:
    """Per-stage outbox read by the chat notifier and the renderer."""

    stage_id: str

    @property
    def key(self) -> str:
        return f"stage:{self.stage_id}:outcomes"


def publish_to_stream(*, r: redis.Redis, stream: OutcomeStream, fields: Mapping[str, str]) -> str:
    # redis-py stubs expect field/value unions; every field we write is a string.
    stream_id = r.xadd(stream.key, {str(k): str(v) for k, v in fields.items()})
    return cast(str, stream_id)


def outcome_fields(*, outcome: Outcome, message: str) -> dict[str, str]:
    snap = outcome.snapshot
    return {
        "type": outcome.kind.value,
        "stage_id": outcome.stage_id,
        "status": outcome.status.value if outcome.status is not None else "",
        "event": outcome.event or "",
        "height": str(snap.height if snap is not None else 0),
        "next_player_id": outcome.next_player_id or "",
        "loser_id": outcome.loser_id or "",
        "error": outcome.error.value if outcome.error is not None else "",
        "message": message,
        # Full payload for renderers that draw the tower.
        "outcome": outcome.model_dump_json(),
        "ts": datetime.now(tz=UTC).isoformat(),
    }


def publish_outcome(*, r: redis.Redis, outcome: Outcome, message: str) -> str | None:
    """Append an outcome to its stage's outbox.

    Notification is best-effort: a Redis outage must not fail the player's turn,
    which has already been applied.
    """

    if not outcome.stage_id:
        return None
    try:
        return publish_to_stream(
            r=r,
            stream=OutcomeStream(stage_id=outcome.stage_id),
            fields=outcome_fields(outcome=outcome, message=message),
        )
    except redis.RedisError:
        logger.warning("stage %s: failed to publish %s outcome", outcome.stage_id, outcome.kind.value, exc_info=True)
        return None
