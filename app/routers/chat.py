"""WebSocket endpoint for the real-time chat relay."""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import async_session
from app.models import User
from app.services import auth_service
from app.services.chat_relay import relay

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def extract_token(websocket: WebSocket) -> str | None:
    """Handshake token: ``?token=`` first, then ``Authorization: Bearer``."""
    token = websocket.query_params.get("token")
    if token:
        return token
    scheme, _, credentials = websocket.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def authenticate_socket(websocket: WebSocket, db: AsyncSession) -> User | None:
    token = extract_token(websocket)
    if not token:
        return None
    return await auth_service.get_user_from_token(db, token)


@router.websocket("/ws/chat")
async def chat_endpoint(websocket: WebSocket):
    """
    Authenticate at handshake, then relay chat events until the client
    disconnects.  Bad or missing tokens are refused with close code 1008
    before the socket is accepted.
    """
    # The session only lives for the handshake, not the whole connection.
    async with async_session() as db:
        user = await authenticate_socket(websocket, db)

    if user is None:
        logger.warning("Chat handshake refused: missing or invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Unauthorized")
        return

    conn = await relay.connect(websocket, user)
    try:
        while True:
            await relay.handle(conn, await websocket.receive_text())
    except WebSocketDisconnect:
        pass
    finally:
        relay.disconnect(conn)
