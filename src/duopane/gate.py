from __future__ import annotations

import threading
from typing import Protocol

from .logging import get_logger

logger = get_logger(__name__)


class Writer(Protocol):
    def write(self, data: bytes) -> int: ...


class NullSink:
    """Accepts and discards everything."""

    def write(self, data: bytes) -> int:
        return len(data)


NULL_SINK = NullSink()


class WriterGate:
    """Single destination for every byte headed to the shell.

    Holds either the null sink or the live session's writer. Swaps and writes
    share one lock, so a write lands entirely on whichever destination was
    bound when it started.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._writer: Writer = NULL_SINK

    @property
    def is_bound(self) -> bool:
        with self._lock:
            return self._writer is not NULL_SINK

    def bind(self, writer: Writer) -> None:
        with self._lock:
            self._writer = writer
        logger.debug("gate.bound", writer=type(writer).__name__)

    def unbind(self) -> None:
        with self._lock:
            if self._writer is NULL_SINK:
                return
            self._writer = NULL_SINK
        logger.debug("gate.unbound")

    def write(self, data: bytes) -> int:
        if not data:
            return 0
        with self._lock:
            return self._writer.write(data)
