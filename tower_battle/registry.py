from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import datetime

from tower_battle.stage import Stage

logger = logging.getLogger(__name__)


class StageRegistry:
    """Process-wide map of stage id -> live Stage.

    The registry lock only guards the map itself; gameplay runs under each
    stage's own lock so stages never wait on each other.
    """

    def __init__(self) -> None:
        self._stages: dict[str, Stage] = {}
        self._lock = threading.Lock()

    def get(self, stage_id: str) -> Stage | None:
        with self._lock:
            return self._stages.get(stage_id)

    def get_or_create(self, stage_id: str, factory: Callable[[], Stage]) -> tuple[Stage, bool]:
        """Return the registered stage, creating it with `factory` if absent.

        The boolean is True when this call created the stage.
        """

        with self._lock:
            stage = self._stages.get(stage_id)
            if stage is not None:
                return stage, False
            stage = factory()
            self._stages[stage_id] = stage
        logger.info("stage %s: created", stage_id)
        return stage, True

    def replace(self, stage_id: str, stage: Stage) -> Stage | None:
        with self._lock:
            old = self._stages.get(stage_id)
            self._stages[stage_id] = stage
        if old is not None:
            old.removed = True
        logger.info("stage %s: replaced with a fresh stage", stage_id)
        return old

    def remove(self, stage_id: str, stage: Stage | None = None) -> bool:
        """Remove a stage. If `stage` is given, only remove that exact instance."""

        with self._lock:
            current = self._stages.get(stage_id)
            if current is None or (stage is not None and current is not stage):
                return False
            del self._stages[stage_id]
        current.removed = True
        logger.info("stage %s: removed", stage_id)
        return True

    def stage_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._stages)

    def sweep(self, now: datetime) -> list[str]:
        """Expire and drop every stage idle for longer than its inactivity timeout.

        Busy stages are skipped; the next intent re-checks expiry under the stage lock.
        """

        with self._lock:
            candidates = list(self._stages.items())

        removed: list[str] = []
        for stage_id, stage in candidates:
            if not stage.lock.acquire(blocking=False):
                continue
            try:
                if stage.removed or not stage.is_expired(now):
                    continue
                stage.expire()
                if self.remove(stage_id, stage):
                    removed.append(stage_id)
            finally:
                stage.lock.release()
        return removed


_REGISTRY: StageRegistry | None = None


def init_registry() -> StageRegistry:
    """Create the process-wide registry (empty). Safe to call multiple times."""

    global _REGISTRY
    if _REGISTRY is None:
        _REGISTRY = StageRegistry()
    return _REGISTRY


def get_registry() -> StageRegistry:
    if _REGISTRY is None:
        raise RuntimeError("Stage registry not initialized. Call init_registry() at startup.")
    return _REGISTRY


def reset_registry_for_tests() -> None:
    global _REGISTRY
    _REGISTRY = None


async def run_sweeper(
    registry: StageRegistry,
    *,
    interval_seconds: float,
    clock: Callable[[], datetime],
) -> None:
    """Periodically drop idle stages until cancelled."""

    while True:
        removed = registry.sweep(clock())
        if removed:
            logger.info("sweep removed %d idle stage(s): %s", len(removed), ", ".join(removed))
        await asyncio.sleep(interval_seconds)
