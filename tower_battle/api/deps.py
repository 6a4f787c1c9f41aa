from __future__ import annotations

from collections.abc import Generator

import redis

from tower_battle.infra.redis_client import create_redis
from tower_battle.orchestrator import GameSessionOrchestrator, get_orchestrator


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_session_orchestrator() -> GameSessionOrchestrator:
    return get_orchestrator()
