"""
In-memory fan-out event bus.

The bus owns the set of live observers. Publishing never blocks and
never raises: an observer whose send fails, or which reports itself
closed, is dropped from the set. There is no history and no replay; an
observer only sees events published while it is subscribed.

Envelope format (JSON):
    {"type": "<event type>", "payload": {...}, "timestamp": "<ISO-8601>"}
"""

import asyncio
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional


logger = logging.getLogger(__name__)

CONNECTED_EVENT = "connected"


def build_envelope(event_type: str, payload: Optional[dict] = None) -> dict[str, Any]:
    """Build the wire envelope for an event."""
    return {
        "type": event_type,
        "payload": payload if payload is not None else {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def encode_envelope(envelope: dict[str, Any]) -> str:
    return json.dumps(envelope, ensure_ascii=False, default=str)


class Observer(ABC):
    """
    A live subscriber connection.

    `send` must return promptly; slow transports buffer internally and
    report failure by raising or by flipping `alive` to False.
    """

    def __init__(self) -> None:
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def close(self) -> None:
        self._alive = False

    @abstractmethod
    def send(self, message: str) -> None:
        """Deliver one encoded envelope. Raise on failure."""
        ...


class MemoryObserver(Observer):
    """Observer that keeps every envelope it receives. Used for in-process consumers."""

    def __init__(self) -> None:
        super().__init__()
        self.messages: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def send(self, message: str) -> None:
        if not self.alive:
            raise ConnectionError("observer closed")
        with self._lock:
            self.messages.append(json.loads(message))

    def events(self, event_type: Optional[str] = None) -> list[dict[str, Any]]:
        with self._lock:
            snapshot = list(self.messages)
        if event_type is None:
            return snapshot
        return [m for m in snapshot if m["type"] == event_type]


class WebSocketObserver(Observer):
    """
    Observer backed by a FastAPI WebSocket.

    `send` may be called from any thread. Messages are handed to the
    websocket's event loop and buffered in a bounded queue; `pump()` runs
    on that loop and writes them out. A full buffer or a closed loop
    marks the observer dead so the bus drops it. Once the observer is
    closed the pump stops and closes the socket.
    """

    def __init__(
        self,
        websocket,
        loop: asyncio.AbstractEventLoop,
        max_pending: int = 100,
    ):
        super().__init__()
        self.websocket = websocket
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)

    def close(self) -> None:
        if not self.alive:
            return
        super().close()
        try:
            self._loop.call_soon_threadsafe(self._wake)
        except RuntimeError:
            # Loop already closed: no pump left to wake
            logger.debug("[EventBus] Observer closed after its event loop")

    def send(self, message: str) -> None:
        if not self.alive:
            raise ConnectionError("observer closed")
        try:
            self._loop.call_soon_threadsafe(self._enqueue, message)
        except RuntimeError as e:
            self.close()
            raise ConnectionError(f"event loop closed: {e}") from e

    def _enqueue(self, message: str) -> None:
        if not self.alive:
            return
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("[EventBus] Observer buffer full, disconnecting slow observer")
            self.close()

    def _wake(self) -> None:
        # None tells the pump to stop; make room if the buffer is full
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def pump(self) -> None:
        """Write buffered messages to the websocket until closed, then close it."""
        while self.alive:
            message = await self._queue.get()
            if message is None:
                break
            try:
                await self.websocket.send_text(message)
            except Exception as e:
                logger.info(f"[EventBus] Observer send failed, closing: {e}")
                self.close()

        try:
            await self.websocket.close()
        except Exception as e:
            logger.debug(f"[EventBus] Websocket already closed: {e}")


class EventBus:
    """
    Fan-out publisher to a dynamic set of observers.

    Owned by the service and passed to publishers explicitly.
    """

    def __init__(self) -> None:
        self._observers: set[Observer] = set()
        self._lock = threading.Lock()

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def subscribe(self, observer: Observer) -> Observer:
        """
        Send a connection acknowledgement, then add the observer.

        The acknowledgement is always the first envelope an observer
        sees. An observer that cannot take it is never added.

        Returns:
            The same observer, for chaining
        """
        ack = encode_envelope(build_envelope(CONNECTED_EVENT, {"message": "Connected to home server"}))
        if not self._deliver(observer, ack):
            logger.info("[EventBus] Observer failed the connection acknowledgement")
            return observer

        with self._lock:
            self._observers.add(observer)
            total = len(self._observers)
        logger.info(f"[EventBus] Observer connected ({total} total)")
        return observer

    def unsubscribe(self, observer: Observer) -> None:
        """Remove an observer. Unknown observers are ignored."""
        with self._lock:
            removed = observer in self._observers
            self._observers.discard(observer)
            total = len(self._observers)
        if removed:
            logger.info(f"[EventBus] Observer disconnected ({total} total)")

    def publish(self, event_type: str, payload: Optional[dict] = None) -> int:
        """
        Send an event to every current observer.

        Returns:
            Number of observers the event was delivered to
        """
        message = encode_envelope(build_envelope(event_type, payload))

        with self._lock:
            observers = list(self._observers)

        delivered = 0
        dead = []
        for observer in observers:
            if self._deliver(observer, message):
                delivered += 1
            else:
                dead.append(observer)

        for observer in dead:
            self.unsubscribe(observer)

        logger.debug(f"[EventBus] Published {event_type} to {delivered} observer(s)")
        return delivered

    def send_to(self, observer: Observer, event_type: str, payload: Optional[dict] = None) -> bool:
        """Send an event to a single observer (e.g. a pong)."""
        message = encode_envelope(build_envelope(event_type, payload))
        if self._deliver(observer, message):
            return True
        self.unsubscribe(observer)
        return False

    def close_all(self) -> None:
        with self._lock:
            observers = list(self._observers)
            self._observers.clear()
        for observer in observers:
            observer.close()

    @staticmethod
    def _deliver(observer: Observer, message: str) -> bool:
        if not observer.alive:
            return False
        try:
            observer.send(message)
        except Exception as e:
            logger.debug(f"[EventBus] Dropping observer after send failure: {e}")
            observer.close()
            return False
        return observer.alive
