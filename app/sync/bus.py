"""
Sync bus: tells open clients that something changed so they refetch.

Signals are hints, not state. They carry `{topic, id, type, at}` and are
fire-and-forget: a transport that fails is logged and skipped, and a missed
signal is repaired by the clients' periodic polling of the sync cursors.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Literal, Optional
from pydantic import BaseModel

from app.sync.websocket_manager import WebSocketManager, ws_manager

logger = logging.getLogger(__name__)

TOPICS = ("listings", "claims", "notifications", "messages")

ChangeType = Literal["created", "updated", "deleted"]


def now_ms() -> int:
    return int(time.time() * 1000)


class SyncSignal(BaseModel):
    topic: str
    id: Optional[str] = None
    type: ChangeType = "updated"
    at: int
    # users whose clients should hear about it; None means everyone
    audience: Optional[List[int]] = None

    def payload(self) -> dict:
        return self.model_dump(exclude={"audience"})

    def merge(self, other: "SyncSignal"):
        """Fold a later change to the same (topic, id) into this signal."""
        if other.type == "deleted":
            self.type = "deleted"
        self.at = max(self.at, other.at)

        if other.audience is None:
            return
        if self.audience is None:
            self.audience = list(other.audience)
        else:
            self.audience = sorted(set(self.audience) | set(other.audience))


Listener = Callable[[SyncSignal], None]


class SyncTransport(ABC):
    @abstractmethod
    def send(self, signal: SyncSignal):
        ...


class LocalTransport(SyncTransport):
    """In-process listeners, called synchronously on publish."""

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def send(self, signal: SyncSignal):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(signal)


class WebSocketTransport(SyncTransport):
    """Pushes signals to the connected tabs and devices of the audience."""

    def __init__(self, manager: WebSocketManager):
        self.manager = manager

    def send(self, signal: SyncSignal):
        payload = signal.payload()

        if signal.audience is None:
            self.manager.broadcast(payload)
            return

        for user_id in set(signal.audience):
            self.manager.send_to_user(user_id, payload)


class SyncBus:
    def __init__(self, transports: Optional[List[SyncTransport]] = None):
        self._transports: List[SyncTransport] = list(transports or [])

    def add_transport(self, transport: SyncTransport):
        self._transports.append(transport)

    def remove_transport(self, transport: SyncTransport):
        if transport in self._transports:
            self._transports.remove(transport)

    def publish(self, signal: SyncSignal):
        for transport in list(self._transports):
            try:
                transport.send(signal)
            except Exception:
                logger.warning(
                    "Sync transport %s failed for %s/%s",
                    type(transport).__name__, signal.topic, signal.id,
                    exc_info=True,
                )


local_transport = LocalTransport()

sync_bus = SyncBus([local_transport, WebSocketTransport(ws_manager)])
