"""Carrier media stream WebSocket endpoint."""
import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from app.core.dependencies import get_stream_manager
from app.services.call_session.manager import StreamSessionManager

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/media-stream")
async def media_stream(
    websocket: WebSocket,
    manager: StreamSessionManager = Depends(get_stream_manager),
):
    """
    Bidirectional audio stream for one call.

    The carrier connects here from a <Connect><Stream> instruction and
    passes patientId, followUpId or appointmentId as custom parameters.
    """
    await websocket.accept()
    session = manager.on_connection_open(websocket.send_text)
    logger.info(
        f"[MEDIA STREAM] WebSocket accepted - Client: "
        f"{websocket.client.host if websocket.client else 'unknown'}"
    )

    try:
        while not session.closed:
            message = await websocket.receive_text()
            await manager.handle_message(session, message)
    except WebSocketDisconnect:
        logger.info(f"[MEDIA STREAM] Carrier disconnected - Call: {session.label}")
    except Exception as e:
        logger.error(
            f"[MEDIA STREAM] Error on media stream - Call: {session.label}, "
            f"Error: {type(e).__name__}: {e}",
            exc_info=True,
        )
    finally:
        await manager.on_connection_close(session)

    if websocket.client_state == WebSocketState.CONNECTED:
        # Stream stopped by the carrier; close our side too
        await websocket.close()
