from __future__ import annotations

from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import fakeredis
import pytest
from fastapi.testclient import TestClient

from tower_battle.config import StageConfig
from tower_battle.core.shapes import ShapeLibrary, make_shape
from tower_battle.orchestrator import GameSessionOrchestrator, reset_orchestrator_for_tests
from tower_battle.registry import StageRegistry, reset_registry_for_tests

SLAB = [(-3.0, -1.5), (3.0, -1.5), (3.0, 1.5), (-3.0, 1.5)]


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _reset_singletons() -> Generator[None, None, None]:
    reset_registry_for_tests()
    reset_orchestrator_for_tests()
    yield
    reset_registry_for_tests()
    reset_orchestrator_for_tests()


@pytest.fixture()
def slab_library() -> ShapeLibrary:
    """A one-shape catalog, so the piece on deck is always `slab`."""

    return ShapeLibrary([make_shape("slab", SLAB, thickness=1.0)])


@pytest.fixture()
def config() -> StageConfig:
    return StageConfig(seed=7)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def orchestrator(slab_library: ShapeLibrary, config: StageConfig, clock: FakeClock) -> GameSessionOrchestrator:
    return GameSessionOrchestrator(
        registry=StageRegistry(),
        library=slab_library,
        config=config,
        clock=clock,
    )


@pytest.fixture()
def client_and_redis(
    orchestrator: GameSessionOrchestrator,
) -> Generator[tuple[TestClient, fakeredis.FakeRedis], None, None]:
    from tower_battle.api.deps import get_redis, get_session_orchestrator
    from tower_battle.main import app

    r = fakeredis.FakeRedis(decode_responses=True)

    def _override_redis() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override_redis
    app.dependency_overrides[get_session_orchestrator] = lambda: orchestrator
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
