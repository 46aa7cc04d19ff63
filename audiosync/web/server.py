"""Starlette app — HTTP routes + WebSocket + optional static file serving."""
import contextlib
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route, WebSocketRoute
from starlette.staticfiles import StaticFiles
from starlette.websockets import WebSocket, WebSocketDisconnect

from ..commands import MISSING, Command, is_number, parse_command
from ..config import APP_VERSION, STATIC_DIR
from ..engine import PlayerEngine
from ..errors import MalformedRequest, record_error
from .state import Subscriber

logger = logging.getLogger(__name__)

# WebSocket close code for frames we cannot interpret
WS_UNSUPPORTED_DATA = 1003

# Shared engine
_engine: PlayerEngine | None = None


# ── Wire parsing ─────────────────────────────────────────────────────────────

def command_from_control(body: Any) -> Optional[Command]:
    """POST /api/control body → Command. None means unknown action."""
    if not isinstance(body, dict):
        raise MalformedRequest("Body must be a JSON object")
    action = body.get("action")
    if not isinstance(action, str):
        raise MalformedRequest("'action' must be a string")
    value = body.get("value", MISSING)
    if value is None:
        value = MISSING
    elif value is not MISSING and not is_number(value):
        raise MalformedRequest("'value' must be a number")
    return parse_command(action, value)


def command_from_frame(text: str) -> Optional[Command]:
    """WebSocket frame {"type", "data"?} → Command. None means unknown type."""
    try:
        msg = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedRequest(f"Invalid JSON frame: {e}") from e
    if not isinstance(msg, dict):
        raise MalformedRequest("Frame must be a JSON object")
    msg_type = msg.get("type")
    if not isinstance(msg_type, str):
        raise MalformedRequest("'type' must be a string")
    # A wrong-typed data field is left for the command processor to ignore
    return parse_command(msg_type, msg.get("data", MISSING))


# ── HTTP ─────────────────────────────────────────────────────────────────────

async def get_state(request: Request):
    return JSONResponse(_engine.get_snapshot().to_dict())


async def control(request: Request):
    try:
        body = await request.json()
        command = command_from_control(body)
    except ValueError as e:
        # json.JSONDecodeError and MalformedRequest are both ValueErrors
        logger.info("Rejected control request: %s", e)
        return JSONResponse({"error": str(e)}, status_code=400)

    if command is None:
        logger.debug("Ignoring unknown action %r", body.get("action"))
    snapshot = _engine.dispatch(command)
    return JSONResponse(snapshot.to_dict())


async def health(request: Request):
    return JSONResponse({
        "status": "ok",
        "version": APP_VERSION,
        "subscribers": _engine.registry.client_count,
        "uptime": round(_engine.uptime, 1),
    })


# ── WebSocket ────────────────────────────────────────────────────────────────

async def websocket_endpoint(websocket: WebSocket):
    client_id = str(uuid.uuid4())
    try:
        await websocket.accept()
    except Exception as e:
        record_error("ws_upgrade", str(e), peer=client_id)
        return

    sub = Subscriber(client_id, websocket)
    try:
        # Registration and the first frame happen under the subscriber's write
        # lock, so no broadcast can reach this client ahead of it.
        async with sub.write_lock:
            snapshot = _engine.connect(sub)
            await websocket.send_json(snapshot.to_dict())
        logger.info("WS connected: %s (%d clients)", client_id, _engine.registry.client_count)

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                text = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            try:
                command = command_from_frame(text)
            except MalformedRequest as e:
                logger.warning("WS %s sent a malformed frame, closing: %s", client_id, e)
                await websocket.close(code=WS_UNSUPPORTED_DATA)
                break
            _engine.dispatch(command)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        if sub in _engine.registry:
            record_error("ws_receive", str(e), peer=client_id)
        else:
            # Already evicted by the broadcaster, which closed the transport
            logger.debug("WS %s receive after eviction: %s", client_id, e)
    finally:
        _engine.disconnect(sub)
        logger.info("WS disconnected: %s", client_id)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(engine: Optional[PlayerEngine] = None, static_dir: Optional[Path] = STATIC_DIR) -> Starlette:
    global _engine

    _engine = engine or PlayerEngine()

    routes = [
        Route("/api/state", get_state, methods=["GET"]),
        Route("/api/control", control, methods=["POST"]),
        Route("/api/health", health, methods=["GET"]),
        WebSocketRoute("/ws", websocket_endpoint),
    ]

    # Serve a built front-end if there is one; must be last
    if static_dir is not None and static_dir.is_dir():
        routes.append(Mount("/", app=StaticFiles(directory=str(static_dir), html=True), name="static"))

    return Starlette(routes=routes, lifespan=_lifespan)


@contextlib.asynccontextmanager
async def _lifespan(app: Starlette):
    """Start the clock and broadcaster with the server, stop them on shutdown."""
    await _engine.run()
    logger.info("Player engine running")
    try:
        yield
    finally:
        await _engine.stop()
        logger.info("Player engine stopped")
