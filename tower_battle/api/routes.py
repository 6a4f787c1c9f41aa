from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool
import redis

from tower_battle.api.deps import get_redis, get_session_orchestrator
from tower_battle.api.models import (
    Intent,
    IntentKind,
    IntentRequest,
    MentionRequest,
    Outcome,
    OutcomeKind,
    OutcomeResponse,
    ShapeInfo,
    ShapeListResponse,
)
from tower_battle.chat import format_outcome
from tower_battle.errors import ErrorKind
from tower_battle.orchestrator import GameSessionOrchestrator
from tower_battle.streams import publish_outcome
from tower_battle.websocket_hub import hub

router = APIRouter()


async def _deliver(*, r: redis.Redis, outcome: Outcome) -> OutcomeResponse:
    # Runs after the orchestrator has released the stage lock.
    message = format_outcome(outcome)
    publish_outcome(r=r, outcome=outcome, message=message)
    await hub.publish(outcome)
    return OutcomeResponse(outcome=outcome, message=message)


@router.websocket("/ws/stage/{stage_id}")
async def stage_updates_ws(websocket: WebSocket, stage_id: str) -> None:
    await hub.subscribe(stage_id, websocket)

    try:
        # Renderers only listen; anything they send is ignored.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await hub.unsubscribe(stage_id, websocket)


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/shapes", response_model=ShapeListResponse)
async def list_shapes_route(
    orchestrator: GameSessionOrchestrator = Depends(get_session_orchestrator),
) -> ShapeListResponse:
    library = orchestrator.library
    shapes = []
    for shape_id in sorted(library.all_shape_ids()):
        shape = library.shape_for(shape_id)
        shapes.append(
            ShapeInfo(
                shape_id=shape_id,
                vertices=[(float(x), float(y)) for x, y in list(shape.footprint.exterior.coords)[:-1]],
                thickness=shape.thickness,
                weight=shape.weight,
            )
        )
    return ShapeListResponse(shapes=shapes)


@router.post("/stages/{stage_id}/intents", response_model=OutcomeResponse)
async def intent_route(
    stage_id: str,
    payload: IntentRequest,
    r: redis.Redis = Depends(get_redis),
    orchestrator: GameSessionOrchestrator = Depends(get_session_orchestrator),
) -> OutcomeResponse:
    try:
        intent = Intent(stage_id=stage_id, **payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    # Stage locks are threading locks; keep them off the event loop.
    outcome = await run_in_threadpool(orchestrator.handle, intent)
    return await _deliver(r=r, outcome=outcome)


@router.post("/stages/{stage_id}/mentions", response_model=OutcomeResponse)
async def mention_route(
    stage_id: str,
    payload: MentionRequest,
    r: redis.Redis = Depends(get_redis),
    orchestrator: GameSessionOrchestrator = Depends(get_session_orchestrator),
) -> OutcomeResponse:
    """Raw chat mention, e.g. `<@BOT> -0.25 45`, forwarded by the chat integration."""

    outcome = await run_in_threadpool(
        orchestrator.handle_mention,
        stage_id=stage_id,
        user_id=payload.user_id,
        text=payload.text,
    )
    return await _deliver(r=r, outcome=outcome)


@router.get("/stages/{stage_id}", response_model=OutcomeResponse)
async def stage_status_route(
    stage_id: str,
    user_id: str = "anonymous",
    orchestrator: GameSessionOrchestrator = Depends(get_session_orchestrator),
) -> OutcomeResponse:
    intent = Intent(stage_id=stage_id, user_id=user_id, kind=IntentKind.status)
    outcome = await run_in_threadpool(orchestrator.handle, intent)
    if outcome.kind == OutcomeKind.rejected and outcome.error == ErrorKind.stage_not_found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=outcome.reason)
    return OutcomeResponse(outcome=outcome, message=format_outcome(outcome))
