"""Blocking PTY output pump.

``OutputRelay.run`` is meant for a dedicated worker thread. It feeds every
chunk into the shared terminal state and returns on EOF or on any read error;
the caller learns the session is gone when ``run`` returns.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from ..logging import get_logger
from ..terminal import VirtualTerminal

logger = get_logger(__name__)

DEFAULT_CHUNK_BYTES = 8192

# Returns b"" at EOF. May return None when nothing arrived within its own poll
# window, which gives the loop a chance to notice ``detach``.
ChunkReader = Callable[[int], bytes | None]


class OutputRelay:
    def __init__(
        self,
        read: ChunkReader,
        terminal: VirtualTerminal,
        *,
        chunk_size: int = DEFAULT_CHUNK_BYTES,
        pid: int | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._read = read
        self._terminal = terminal
        self._chunk_size = chunk_size
        self._pid = pid
        self._detached = threading.Event()
        self._stopped = threading.Event()
        self.chunks = 0
        self.bytes = 0

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    @property
    def detached(self) -> bool:
        return self._detached.is_set()

    def detach(self) -> None:
        """Stop feeding the terminal. No chunk read after this call is ingested."""
        self._detached.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._stopped.wait(timeout)

    def run(self) -> None:
        logger.debug("relay.started", pid=self._pid, chunk_size=self._chunk_size)
        try:
            while not self._detached.is_set():
                try:
                    chunk = self._read(self._chunk_size)
                except Exception as exc:  # noqa: BLE001
                    logger.debug("relay.read_error", pid=self._pid, error=str(exc))
                    break
                if chunk is None:
                    continue
                if not chunk or self._detached.is_set():
                    break
                self._terminal.ingest(chunk)
                self.chunks += 1
                self.bytes += len(chunk)
            if not self._detached.is_set():
                self._terminal.flush()
        finally:
            self._stopped.set()
            logger.info(
                "relay.stopped", pid=self._pid, chunks=self.chunks, bytes=self.bytes
            )
