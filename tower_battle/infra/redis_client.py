from __future__ import annotations

import os

import redis


def get_redis_url() -> str:
    # The outbox may live on a dedicated instance; fall back to the shared REDIS_URL.
    return (
        os.environ.get("TOWER_BATTLE_REDIS_URL")
        or os.environ.get("REDIS_URL")
        or "redis://localhost:6379/0"
    )


def create_redis() -> redis.Redis:
    # Outbox fields are plain strings, so decode on the way out.
    return redis.Redis.from_url(get_redis_url(), decode_responses=True)
