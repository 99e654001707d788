"""
Inter-process channels — how worker reports reach the coordinator.

The monitor only needs send(message) and on_message(handler). Delivery is
fire-and-forget: no acknowledgment, no retry, no backpressure. A channel
that cannot deliver raises ChannelError and the sender drops the report.

  QueueChannel  in-process FIFO, drained explicitly (tests, threads)
  PipeChannel   one end of a multiprocessing Pipe, drained explicitly or
                from the event loop via attach()
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from multiprocessing.connection import Connection
from typing import Any, Callable, Deque, Dict, List, Optional

from utils.logger import get_logger

_log = get_logger(__name__)

Message = Dict[str, Any]
MessageHandler = Callable[[Message], None]


class ChannelError(RuntimeError):
    """The message could not be handed to the other side."""


class Channel(ABC):
    def __init__(self) -> None:
        self._handlers: List[MessageHandler] = []

    @abstractmethod
    def send(self, message: Message) -> None:
        """Hand a message to the other side. Raises ChannelError on failure."""

    def on_message(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    def _dispatch(self, message: Message) -> None:
        for handler in self._handlers:
            handler(message)

    def close(self) -> None:
        self._handlers.clear()


class QueueChannel(Channel):
    """Buffers sent messages until drain() delivers them to the handlers."""

    def __init__(self) -> None:
        super().__init__()
        self._queue: Deque[Message] = deque()
        self._closed = False

    def send(self, message: Message) -> None:
        if self._closed:
            raise ChannelError("channel closed")
        self._queue.append(message)

    def drain(self) -> int:
        delivered = 0
        while self._queue:
            self._dispatch(self._queue.popleft())
            delivered += 1
        return delivered

    @property
    def pending(self) -> int:
        return len(self._queue)

    def close(self) -> None:
        self._closed = True
        self._queue.clear()
        super().close()


class PipeChannel(Channel):
    """
    Wraps one end of multiprocessing.Pipe(). Messages are pickled by the
    connection, so plain dicts of primitives travel best.
    """

    def __init__(self, connection: Connection) -> None:
        super().__init__()
        self._conn = connection
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def send(self, message: Message) -> None:
        try:
            self._conn.send(message)
        except (OSError, EOFError, ValueError) as e:
            raise ChannelError(str(e)) from e

    def drain(self) -> int:
        """Deliver every message already waiting on the pipe."""
        delivered = 0
        try:
            while self._conn.poll():
                self._dispatch(self._conn.recv())
                delivered += 1
        except (EOFError, OSError) as e:
            _log.info("channel_peer_closed", error=str(e))
            self.detach()
        return delivered

    def attach(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Drain automatically whenever the pipe becomes readable."""
        self._loop = loop or asyncio.get_running_loop()
        self._loop.add_reader(self._conn.fileno(), self.drain)

    def detach(self) -> None:
        if self._loop is not None:
            self._loop.remove_reader(self._conn.fileno())
            self._loop = None

    def close(self) -> None:
        self.detach()
        self._conn.close()
        super().close()
