"""
Chat relay: in-process fan-out of chat events to WebSocket connections.

Connections are grouped by room.  Everyone lands in the default room on
connect; ``sendMessage`` is broadcast to the default room, ``joinRoom`` only
adds membership.  Nothing is persisted and delivery is best-effort: a
connection whose send fails is dropped from every room.

Wire envelope, both directions::

    {"event": "<name>", "data": {...}}
"""
import enum
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.config import settings
from app.models import User

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"


@dataclass(eq=False)
class ChatConnection:
    """One accepted socket plus the identity resolved at handshake."""

    websocket: Any
    user_id: uuid.UUID
    display_name: str
    state: ConnectionState = ConnectionState.CONNECTING
    rooms: set[str] = field(default_factory=set)

    async def send(self, event: str, data: dict) -> None:
        await self.websocket.send_json({"event": event, "data": data})


class ChatRelay:
    """Manages chat connections and room membership."""

    def __init__(
        self,
        default_room: str = settings.CHAT_DEFAULT_ROOM,
        max_message_length: int = settings.CHAT_MAX_MESSAGE_LENGTH,
    ) -> None:
        self.default_room = default_room
        self.max_message_length = max_message_length
        # room name -> connections in it
        self.rooms: dict[str, set[ChatConnection]] = {}

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def connect(self, websocket, user: User) -> ChatConnection:
        """Accept *websocket* for an already authenticated *user*."""
        conn = ChatConnection(
            websocket=websocket,
            user_id=user.id,
            display_name=f"{user.first_name} {user.last_name}".strip(),
        )
        await websocket.accept()
        conn.state = ConnectionState.AUTHENTICATED
        self.join(conn, self.default_room)
        logger.info("Chat client connected: user %s", user.id)
        await conn.send(
            "connectionStatus",
            {"status": "connected", "userId": str(user.id), "room": self.default_room},
        )
        return conn

    def join(self, conn: ChatConnection, room: str) -> None:
        self.rooms.setdefault(room, set()).add(conn)
        conn.rooms.add(room)

    def disconnect(self, conn: ChatConnection) -> None:
        for room in conn.rooms:
            members = self.rooms.get(room)
            if members is None:
                continue
            members.discard(conn)
            if not members:
                del self.rooms[room]
        conn.rooms.clear()
        if conn.state is not ConnectionState.DISCONNECTED:
            conn.state = ConnectionState.DISCONNECTED
            logger.info("Chat client disconnected: user %s", conn.user_id)

    def members(self, room: str) -> set[ChatConnection]:
        return set(self.rooms.get(room, ()))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def broadcast(self, room: str, event: str, data: dict) -> int:
        """Send to every member of *room*; returns how many sends succeeded."""
        delivered = 0
        failed: list[ChatConnection] = []
        for conn in self.members(room):
            try:
                await conn.send(event, data)
                delivered += 1
            except Exception as exc:
                logger.debug("Dropping chat client %s after failed send: %s", conn.user_id, exc)
                failed.append(conn)
        for conn in failed:
            self.disconnect(conn)
        return delivered

    async def publish_message(self, sender: ChatConnection, message: str) -> int:
        payload = {
            "senderId": str(sender.user_id),
            "senderName": sender.display_name,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return await self.broadcast(self.default_room, "newMessage", payload)

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def handle(self, conn: ChatConnection, raw: str) -> None:
        """Dispatch one inbound text frame from *conn*."""
        try:
            envelope = json.loads(raw)
        except ValueError:
            await conn.send("error", {"detail": "Invalid JSON format"})
            return
        if not isinstance(envelope, dict) or not isinstance(envelope.get("event"), str):
            await conn.send("error", {"detail": "Expected an object with an 'event' field"})
            return

        event = envelope["event"]
        data = envelope.get("data")
        if not isinstance(data, dict):
            data = {}

        if event == "sendMessage":
            await self._on_send_message(conn, data)
        elif event == "joinRoom":
            await self._on_join_room(conn, data)
        elif event == "ping":
            await conn.send("pong", {})
        else:
            await conn.send("error", {"detail": f"Unknown event: {event}"})

    async def _on_send_message(self, conn: ChatConnection, data: dict) -> None:
        message = data.get("message")
        if not isinstance(message, str) or not message.strip():
            await conn.send("error", {"detail": "Message cannot be empty"})
            return
        if len(message) > self.max_message_length:
            await conn.send(
                "error",
                {"detail": f"Message exceeds {self.max_message_length} characters"},
            )
            return
        await self.publish_message(conn, message)

    async def _on_join_room(self, conn: ChatConnection, data: dict) -> None:
        room = data.get("room")
        if not isinstance(room, str) or not room.strip():
            await conn.send("error", {"detail": "Room name is required"})
            return
        room = room.strip()
        self.join(conn, room)
        logger.debug("User %s joined room %s", conn.user_id, room)
        await conn.send("joinedRoomAck", {"room": room})


# Global relay instance
relay = ChatRelay()
