import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..events import EventType
from ..runtime import PaneRuntime

logger = logging.getLogger(__name__)

router = APIRouter()

_STREAMED = {EventType.PANE_OUTPUT, EventType.PANE_EXITED, EventType.PANE_SPAWNED}


async def _pump_events(websocket: WebSocket, runtime: PaneRuntime, q: asyncio.Queue) -> None:
    try:
        while True:
            event = await q.get()
            if event.type in _STREAMED:
                await websocket.send_json(event.to_dict())
    finally:
        runtime.event_bus.unsubscribe(q)


async def _handle_frame(runtime: PaneRuntime, frame: dict) -> None:
    kind = frame.get("type")
    try:
        pane_id = int(frame.get("pane_id"))
    except (TypeError, ValueError):
        return
    if kind == "input" and isinstance(frame.get("data"), str):
        await runtime.supervisor.write(pane_id, frame["data"])
    elif kind == "resize":
        try:
            await runtime.supervisor.resize(pane_id, int(frame.get("cols")), int(frame.get("rows")))
        except (TypeError, ValueError):
            return


@router.websocket("/ws/panes")
async def panes_ws(websocket: WebSocket):
    """Stream pane output/exit events; accept input and resize frames."""
    runtime = getattr(websocket.app.state, "pane_runtime", None)
    if runtime is None:
        await websocket.close(code=1011)
        return
    # Subscribe before accepting so no event after the handshake is missed.
    q = runtime.event_bus.subscribe()
    await websocket.accept()
    pump = asyncio.create_task(_pump_events(websocket, runtime, q))
    try:
        while True:
            frame = await websocket.receive_json()
            if isinstance(frame, dict):
                await _handle_frame(runtime, frame)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.debug("Pane websocket closed with error", exc_info=True)
    finally:
        pump.cancel()
        try:
            await pump
        except (asyncio.CancelledError, Exception):
            pass
