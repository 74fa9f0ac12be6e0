import asyncio
import logging
import threading
from typing import Dict, Set

logger = logging.getLogger(__name__)


class Connection:
    """One open socket: the loop that owns it and the queue its sender drains."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue()


class WebSocketManager:
    """
    Keeps the open WebSocket connections per user.
    user_id -> set(Connection)

    Messages are handed to each connection's own event loop, so callers may
    publish from request threads as well as from async code.
    """
    def __init__(self):
        self.active_connections: Dict[int, Set[Connection]] = {}
        self._lock = threading.Lock()

    def connect(self, user_id: int) -> Connection:
        connection = Connection(asyncio.get_running_loop())
        with self._lock:
            self.active_connections.setdefault(user_id, set()).add(connection)
        return connection

    def disconnect(self, user_id: int, connection: Connection):
        with self._lock:
            connections = self.active_connections.get(user_id)
            if connections is None:
                return
            connections.discard(connection)
            if not connections:
                del self.active_connections[user_id]

    def connection_count(self, user_id: int) -> int:
        with self._lock:
            return len(self.active_connections.get(user_id, ()))

    def send_to_user(self, user_id: int, message: dict):
        """
        Queue a message on ALL connections of that user
        (different tabs, devices, etc.)
        """
        with self._lock:
            connections = list(self.active_connections.get(user_id, ()))

        dead = []
        for connection in connections:
            try:
                connection.loop.call_soon_threadsafe(connection.queue.put_nowait, message)
            except RuntimeError:
                # loop already closed
                dead.append(connection)

        for connection in dead:
            logger.info("Dropping closed sync connection for user %s", user_id)
            self.disconnect(user_id, connection)

    def broadcast(self, message: dict):
        with self._lock:
            user_ids = list(self.active_connections.keys())
        for user_id in user_ids:
            self.send_to_user(user_id, message)


# global instance
ws_manager = WebSocketManager()
