"""
Notification Hub — per-user live updates over WebSocket.

Client → server messages (JSON text):
    {"type": "auth", "userId": "..."}       -> authenticated | error
    {"type": "subscribe", "userId": "..."}  -> subscribed | error
    {"type": "ping"}                         -> pong

Server → client pushes are wrapped as {type, data, timestamp} with type one of
agent_update, task_update, new_activity, system_status.

The hub only needs `send_text(str)` and `close()` coroutines on a connection,
so any WebSocket implementation (FastAPI/Starlette, test doubles) works.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


@dataclass
class ClientConnection:
    ws: Any
    user_id: str
    last_activity: float = field(default_factory=time.monotonic)


class NotificationHub:
    """
    Tracks one connection per user and pushes updates to it.

    Args:
        cleanup_interval: seconds between inactivity sweeps
        inactive_timeout: seconds without a client message before it is closed
        clock: monotonic clock, replaceable in tests
    """

    def __init__(
        self,
        cleanup_interval: float = 30.0,
        inactive_timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cleanup_interval = cleanup_interval
        self.inactive_timeout = inactive_timeout
        self._clock = clock
        self.clients: Dict[str, ClientConnection] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, ws) -> None:
        """Greet a freshly accepted connection."""
        logger.info("New WebSocket connection")
        await self._send(ws, {
            "type": "connection",
            "status": "connected",
            "timestamp": _timestamp(),
        })

    def disconnect(self, ws) -> Optional[str]:
        """Forget the user mapped to `ws`. Returns the user id, if any."""
        for user_id, client in list(self.clients.items()):
            if client.ws is ws:
                del self.clients[user_id]
                logger.info(f"Client disconnected: {user_id}")
                return user_id
        return None

    async def handle_message(self, ws, raw: str) -> None:
        """Dispatch one client message. Invalid JSON is logged and ignored."""
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"Invalid WebSocket message: {e}")
            return
        if not isinstance(message, dict):
            logger.error(f"Invalid WebSocket message: expected an object, got {type(message).__name__}")
            return

        self._touch(ws)
        message_type = message.get("type")

        if message_type == "auth":
            await self._authenticate(ws, message.get("userId"))
        elif message_type == "subscribe":
            await self._subscribe(ws, message.get("userId"))
        elif message_type == "ping":
            await self._send(ws, {"type": "pong", "timestamp": _timestamp()})
        else:
            logger.warning(f"Unknown message type: {message_type}")

    async def _authenticate(self, ws, user_id: Optional[str]) -> None:
        if not user_id:
            await self._send(ws, {"type": "error", "message": "User ID required"})
            return

        previous = self.clients.get(user_id)
        if previous is not None and previous.ws is not ws:
            logger.info(f"Replacing connection for {user_id}")

        self.clients[user_id] = ClientConnection(ws=ws, user_id=user_id, last_activity=self._clock())
        await self._send(ws, {
            "type": "authenticated",
            "userId": user_id,
            "timestamp": _timestamp(),
        })
        logger.info(f"Client authenticated: {user_id}")

    async def _subscribe(self, ws, user_id: Optional[str]) -> None:
        client = self.clients.get(user_id) if user_id else None
        if client is None:
            await self._send(ws, {"type": "error", "message": "Not authenticated"})
            return

        client.last_activity = self._clock()
        await self._send(ws, {
            "type": "subscribed",
            "message": "Subscribed to real-time updates",
            "timestamp": _timestamp(),
        })

    def _touch(self, ws) -> None:
        for client in self.clients.values():
            if client.ws is ws:
                client.last_activity = self._clock()

    # =========================================================================
    # Inactivity cleanup
    # =========================================================================

    async def cleanup(self) -> List[str]:
        """Close and forget clients idle longer than inactive_timeout."""
        now = self._clock()
        removed = []
        for user_id, client in list(self.clients.items()):
            if now - client.last_activity <= self.inactive_timeout:
                continue
            del self.clients[user_id]
            removed.append(user_id)
            try:
                await client.ws.close()
            except Exception as e:
                logger.debug(f"Closing idle connection for {user_id} failed: {e}")
            logger.info(f"Cleaned up inactive client: {user_id}")
        return removed

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                await self.cleanup()
            except Exception as e:
                logger.error(f"Connection cleanup failed: {e}")

    def start(self) -> None:
        """Start the periodic cleanup on the running loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())
            logger.info(f"WebSocket cleanup every {self.cleanup_interval}s")

    async def stop(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

    # =========================================================================
    # Broadcasting
    # =========================================================================

    async def _send(self, ws, data: dict) -> bool:
        try:
            await ws.send_text(json.dumps(data, default=str))
            return True
        except Exception as e:
            logger.warning(f"WebSocket send failed: {e}")
            self.disconnect(ws)
            return False

    async def broadcast_to_user(self, user_id: str, data: dict) -> bool:
        """Send to the user's connection. Users without one are skipped."""
        client = self.clients.get(user_id)
        if client is None:
            return False
        return await self._send(client.ws, data)

    async def _push(self, user_id: str, message_type: str, data: Any) -> bool:
        return await self.broadcast_to_user(user_id, {
            "type": message_type,
            "data": data,
            "timestamp": _timestamp(),
        })

    async def broadcast_agent_update(self, user_id: str, agent_data: Any) -> bool:
        return await self._push(user_id, "agent_update", agent_data)

    async def broadcast_task_update(self, user_id: str, task_data: Any) -> bool:
        return await self._push(user_id, "task_update", task_data)

    async def broadcast_activity(self, user_id: str, activity: Any) -> bool:
        return await self._push(user_id, "new_activity", activity)

    async def broadcast_system_status(self, user_id: str, status: Any) -> bool:
        return await self._push(user_id, "system_status", status)

    @property
    def connected_users(self) -> List[str]:
        return list(self.clients)
