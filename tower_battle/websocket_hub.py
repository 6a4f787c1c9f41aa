from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from fastapi import WebSocket, WebSocketDisconnect

from tower_battle.api.models import Outcome, OutcomeKind

logger = logging.getLogger(__name__)


def stage_update_event(outcome: Outcome) -> dict[str, object] | None:
    """The `stage_updated` event for an outcome, or None when nothing changed.

    Rejections and plain status queries leave the stage untouched.
    """

    if outcome.kind == OutcomeKind.rejected:
        return None
    if outcome.kind == OutcomeKind.status and outcome.event is None:
        return None
    return {
        "type": "stage_updated",
        "stage_id": outcome.stage_id,
        "kind": outcome.kind.value,
        "event": outcome.event,
        "status": outcome.status.value if outcome.status is not None else None,
        "height": outcome.snapshot.height if outcome.snapshot is not None else 0,
        "next_player_id": outcome.next_player_id,
        "loser_id": outcome.loser_id,
    }


class StageWebSocketHub:
    """Live renderers watching a stage.

    Subscribers only get a small `stage_updated` event; the full tower comes
    from the outbox or `GET /stages/{stage_id}`.
    """

    def __init__(self) -> None:
        self._watchers: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def subscribe(self, stage_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._watchers[stage_id].add(websocket)

    async def unsubscribe(self, stage_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._drop_watchers(stage_id, [websocket])

    def watcher_count(self, stage_id: str) -> int:
        return len(self._watchers.get(stage_id, ()))

    async def publish(self, outcome: Outcome) -> int:
        """Send the outcome's update event to the stage's watchers; returns how many got it."""

        event = stage_update_event(outcome)
        if event is None:
            return 0

        async with self._lock:
            watchers = list(self._watchers.get(outcome.stage_id, ()))

        gone: list[WebSocket] = []
        for ws in watchers:
            try:
                await ws.send_json(event)
            except (WebSocketDisconnect, RuntimeError, OSError):
                gone.append(ws)

        if gone:
            logger.info("stage %s: dropping %d closed watcher(s)", outcome.stage_id, len(gone))
            async with self._lock:
                self._drop_watchers(outcome.stage_id, gone)
        return len(watchers) - len(gone)

    def _drop_watchers(self, stage_id: str, sockets: list[WebSocket]) -> None:
        watchers = self._watchers.get(stage_id)
        if watchers is None:
            return
        watchers.difference_update(sockets)
        if not watchers:
            del self._watchers[stage_id]


hub = StageWebSocketHub()
