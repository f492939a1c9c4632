"""WebSocket endpoint for real-time vehicle updates."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()

# Will be set by main.py on startup
broadcaster = None


@router.websocket("/ws/vehicles")
async def vehicle_ws(websocket: WebSocket) -> None:
    """Send the current vehicle snapshot, then stream incremental updates."""
    await websocket.accept()

    if broadcaster is None:
        await websocket.close(code=1011, reason="Service not ready")
        return

    snapshot = await broadcaster.get_current_state()
    if snapshot:
        await websocket.send_bytes(snapshot)

    queue = broadcaster.subscribe()
    try:
        while True:
            data = await queue.get()
            await websocket.send_bytes(data)
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("WebSocket error")
    finally:
        broadcaster.unsubscribe(queue)
