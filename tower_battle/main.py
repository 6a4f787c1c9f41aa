from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI

from tower_battle import __version__
from tower_battle.api.routes import router
from tower_battle.config import get_sweep_interval_seconds
from tower_battle.orchestrator import init_orchestrator
from tower_battle.registry import run_sweeper

# Tokens and tunables come from the environment; a local .env is a convenience.
load_dotenv()

app = FastAPI(title="tower-battle", version=__version__)
app.include_router(router)
# Configure logging
logging.basicConfig(level=os.environ.get("TOWER_BATTLE_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

_sweeper: asyncio.Task[None] | None = None


@app.on_event("startup")
async def _startup() -> None:
    global _sweeper
    orchestrator = init_orchestrator()
    interval = get_sweep_interval_seconds()
    _sweeper = asyncio.create_task(
        run_sweeper(orchestrator.registry, interval_seconds=interval, clock=orchestrator.clock)
    )
    logger.info(
        "tower-battle %s ready (%d shapes, sweep every %.0fs)",
        __version__,
        len(orchestrator.library.all_shape_ids()),
        interval,
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    global _sweeper
    if _sweeper is not None:
        _sweeper.cancel()
        try:
            await _sweeper
        except asyncio.CancelledError:
            pass
        _sweeper = None


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "tower-battle", "version": __version__}
