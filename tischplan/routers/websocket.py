import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tischplan.services.event_bus import event_bus

logger = logging.getLogger("tischplan.routers.websocket")

websocket_router = APIRouter(tags=["websocket"])


async def _wait_for_disconnect(websocket: WebSocket):
    """Nachrichten vom Client werden ignoriert, wir warten nur auf das Trennen."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@websocket_router.websocket("/ws/events")
async def websocket_events(websocket: WebSocket):
    """
    Push-Kanal für alle Events ({id, event, data, created_at}).
    Die Queue wird vor dem Accept registriert, damit kein Event verloren geht.
    """
    queue = event_bus.connect(asyncio.get_running_loop())
    await websocket.accept()
    logger.info("WebSocket verbunden")

    receiver = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        while True:
            next_message = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait(
                {next_message, receiver},
                return_when=asyncio.FIRST_COMPLETED
            )
            if receiver in done:
                next_message.cancel()
                break
            await websocket.send_json(next_message.result())
    except WebSocketDisconnect:
        pass
    finally:
        event_bus.disconnect(queue)
        receiver.cancel()
        logger.info("WebSocket getrennt")
