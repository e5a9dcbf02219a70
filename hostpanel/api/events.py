import asyncio
import threading
from typing import Any, Dict, Optional, Set

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = structlog.get_logger(__name__)

router = APIRouter()


class WebSocketHub:
    """
    Broadcast sink backed by the connected WebSocket clients.

    publish() may be called from any thread (scheduler jobs, request
    threads); delivery is scheduled on the event loop the hub is bound to.
    Clients connected after an event was published never see it.
    """

    def __init__(self):
        self._clients: Set[WebSocket] = set()
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        with self._lock:
            self._clients.add(websocket)
        logger.info("websocket_client_connected", clients=len(self._clients))

    def disconnect(self, websocket: WebSocket) -> None:
        with self._lock:
            self._clients.discard(websocket)
        logger.info("websocket_client_disconnected", clients=len(self._clients))

    def publish(self, event: Dict[str, Any]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        with self._lock:
            if not self._clients:
                return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            loop.create_task(self._send_all(event))
        else:
            asyncio.run_coroutine_threadsafe(self._send_all(event), loop)

    async def _send_all(self, event: Dict[str, Any]) -> None:
        with self._lock:
            clients = list(self._clients)
        for websocket in clients:
            try:
                await websocket.send_json(event)
            except Exception as exc:
                logger.info("websocket_send_failed", error=str(exc))
                self.disconnect(websocket)


@router.websocket("/events")
async def events(websocket: WebSocket) -> None:
    """
    Push channel: an initial snapshot of the system state, then stats,
    service_status and notification events as they happen.
    """
    panel = websocket.app.state.panel
    hub: WebSocketHub = websocket.app.state.hub

    await hub.connect(websocket)
    try:
        await websocket.send_json({"type": "initial", "data": panel.state.snapshot()})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
