import asyncio
import logging
from collections import deque

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from apiprobe.config import PROGRESS_REPLAY_SIZE
from apiprobe.models.report import LogEvent

log = logging.getLogger(__name__)
ws_router = APIRouter()


def log_message(event: LogEvent) -> dict:
    return {"type": "log", "data": event.model_dump()}


class ProgressBroadcaster:
    """Pushes pipeline progress events to every connected websocket client.

    The most recent events are kept and replayed to a client that attaches
    while a run is already under way.
    """

    def __init__(self, replay_size: int = PROGRESS_REPLAY_SIZE) -> None:
        self.clients: list[WebSocket] = []
        self.recent: deque[LogEvent] = deque(maxlen=replay_size)

    async def attach(self, websocket: WebSocket) -> None:
        await websocket.accept()
        # Registered before the replay: events emitted during it go out live
        backlog = list(self.recent)
        self.clients.append(websocket)
        for event in backlog:
            await websocket.send_json(log_message(event))
        log.info("progress client attached (%d open)", len(self.clients))

    def detach(self, websocket: WebSocket) -> None:
        if websocket in self.clients:
            self.clients.remove(websocket)
            log.info("progress client detached (%d open)", len(self.clients))

    async def send_event(self, event: LogEvent) -> None:
        """Progress sink. A client whose send fails is detached."""
        self.recent.append(event)
        message = log_message(event)
        clients = list(self.clients)
        results = await asyncio.gather(
            *(c.send_json(message) for c in clients), return_exceptions=True,
        )
        for client, result in zip(clients, results):
            if isinstance(result, Exception):
                log.debug("progress send failed, detaching client: %s", result)
                self.detach(client)


broadcaster = ProgressBroadcaster()


@ws_router.websocket("/ws")
async def progress_socket(websocket: WebSocket) -> None:
    try:
        await broadcaster.attach(websocket)
        while True:
            # Inbound frames are keep-alives only
            await websocket.receive_text()
    except WebSocketDisconnect:
        broadcaster.detach(websocket)
