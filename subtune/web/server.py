"""Starlette remote-control app: snapshot polling, intents over HTTP and a WebSocket."""
import asyncio
import json
import logging
import uuid
from typing import Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from ..config import APP_VERSION
from ..engine import PlaybackEngine
from ..intents import parse_intent
from .state import SnapshotHub

logger = logging.getLogger(__name__)

_engine: Optional[PlaybackEngine] = None
_hub: Optional[SnapshotHub] = None


# ── HTTP ─────────────────────────────────────────────────────────────────────

async def health(request: Request):
    snapshot = _engine.snapshot
    return JSONResponse({
        "status": "ok",
        "version": APP_VERSION,
        "phase": snapshot.phase.value,
        "clients": _hub.clients,
    })


async def get_snapshot(request: Request):
    return JSONResponse(_engine.snapshot.to_dict())


async def post_intent(request: Request):
    try:
        data = await request.json()
    except json.JSONDecodeError:
        return JSONResponse({"error": "body must be JSON"}, status_code=400)
    if not isinstance(data, dict):
        return JSONResponse({"error": "body must be a JSON object"}, status_code=400)

    try:
        intent = parse_intent(data)
    except (KeyError, ValueError, TypeError) as e:
        return JSONResponse({"error": f"bad arguments: {e}"}, status_code=400)
    if intent is None:
        return JSONResponse({"error": f"unknown intent: {data.get('intent') or data.get('type')}"}, status_code=400)

    snapshot = await _engine.dispatch(intent)
    return JSONResponse(snapshot.to_dict())


# ── WebSocket ────────────────────────────────────────────────────────────────

async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    client_id = str(uuid.uuid4())
    mailbox = _hub.attach(client_id)
    logger.info("WS connected: %s", client_id)

    if _hub.latest is None:
        await websocket.send_json({"type": "snapshot", "data": _engine.snapshot.to_dict()})

    async def _reader():
        try:
            while True:
                data = await websocket.receive_json()
                await _handle_ws_message(websocket, data)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error("WS reader error: %s", e)

    async def _writer():
        try:
            while True:
                snapshot = await mailbox.get()
                await websocket.send_json({"type": "snapshot", "data": snapshot})
        except Exception as e:
            logger.debug("WS writer for %s stopped: %s", client_id, e)

    reader_task = asyncio.create_task(_reader())
    writer_task = asyncio.create_task(_writer())

    try:
        done, pending = await asyncio.wait(
            [reader_task, writer_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
    finally:
        _hub.detach(client_id)
        logger.info("WS disconnected: %s", client_id)


async def _handle_ws_message(websocket: WebSocket, data: dict):
    if not isinstance(data, dict):
        return
    try:
        intent = parse_intent(data)
    except (KeyError, ValueError, TypeError) as e:
        await websocket.send_json({"type": "error", "data": {"message": f"bad arguments: {e}"}})
        return
    if intent is None:
        logger.warning("Unknown WS message: %s", data)
        await websocket.send_json({"type": "error", "data": {"message": "unknown intent"}})
        return
    await _engine.dispatch(intent)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(engine: PlaybackEngine, hub: SnapshotHub) -> Starlette:
    """Build the app around an engine the caller already ticks."""
    global _engine, _hub

    _engine = engine
    _hub = hub
    if engine.hub is None:
        engine.hub = hub

    routes = [
        Route("/api/health", health),
        Route("/api/snapshot", get_snapshot),
        Route("/api/intent", post_intent, methods=["POST"]),
        WebSocketRoute("/ws", websocket_endpoint),
    ]
    return Starlette(routes=routes)
