import asyncio
import contextlib

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ..config import settings
from ..services.collab_hub import CollaborationHub, get_hub


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/collab", tags=["collaboration"])
ws_router = APIRouter(tags=["collaboration"])


@router.get("/{entity}/{entity_id}")
def get_entity_channel(entity: str, entity_id: int, hub: CollaborationHub = Depends(get_hub)):
    """Chat history and who is currently on the entity's live channel."""
    return hub.snapshot(entity, entity_id)


@ws_router.websocket(settings.ws_path)
async def ws_collaborate(websocket: WebSocket, hub: CollaborationHub = Depends(get_hub)):
    await websocket.accept()
    conn = hub.connect(websocket)
    writer = asyncio.create_task(conn.pump())
    try:
        while True:
            text = await websocket.receive_text()
            hub.handle_text(conn, text)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("ws_connection_error", connection_id=conn.id, user_id=conn.user_id, error=str(e))
        with contextlib.suppress(Exception):
            await websocket.close()
    finally:
        hub.disconnect(conn)
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer
