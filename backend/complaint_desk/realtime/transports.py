from __future__ import annotations
import queue
import threading
from typing import Callable, Iterator, Optional

from .broadcaster import TransportClosed

_CLOSED = object()


class QueueTransport:
    """Buffers outgoing messages for a streaming HTTP response.

    ``send`` never blocks: a consumer that stops reading fills the buffer and the
    next send raises TransportClosed, which makes the broadcaster drop it.
    ``on_activity`` is invoked whenever the consumer takes a message, which is how
    a one-way stream proves liveness to the heartbeat sweep.
    """

    def __init__(self, maxsize: int = 100, on_activity: Optional[Callable[[], None]] = None):
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self.on_activity = on_activity

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, message: str) -> None:
        if self.closed:
            raise TransportClosed('transport closed')
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            raise TransportClosed('subscriber buffer full')

    def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            pass  # consumer checks the closed flag on its next timeout

    def receive(self, timeout: Optional[float] = None) -> Optional[str]:
        """Next message, or None on timeout. Raises TransportClosed once closed."""
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            if self.closed:
                raise TransportClosed('transport closed')
            return None
        if item is _CLOSED:
            raise TransportClosed('transport closed')
        if self.on_activity is not None:
            self.on_activity()
        return item

    def messages(self, timeout: float) -> Iterator[Optional[str]]:
        while True:
            try:
                yield self.receive(timeout=timeout)
            except TransportClosed:
                return
