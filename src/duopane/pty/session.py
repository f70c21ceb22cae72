"""One child process attached to a pseudo-terminal.

``read`` blocks and belongs to the output relay thread. ``write`` is called
through the writer gate only.
"""

from __future__ import annotations

import errno
import os
import select
import signal
import termios
import time
from collections.abc import Mapping, Sequence
from pathlib import Path

from ptyprocess import PtyProcess

from ..errors import ResizePropagationFailed, SpawnFailed
from ..logging import get_logger

logger = get_logger(__name__)

TERM = "xterm-256color"
_POLL_INTERVAL_S = 0.02


class SessionHandle:
    def __init__(
        self, process: PtyProcess, *, command: Sequence[str], rows: int, cols: int
    ) -> None:
        self._process = process
        self.command = tuple(command)
        self.rows = rows
        self.cols = cols
        self._closed = False

    @classmethod
    def spawn(
        cls,
        command: Sequence[str],
        working_dir: str | Path | None,
        rows: int,
        cols: int,
        *,
        env: Mapping[str, str] | None = None,
    ) -> SessionHandle:
        argv = list(command)
        if not argv:
            raise SpawnFailed(argv, "empty command")
        cwd = Path(working_dir).expanduser() if working_dir else Path.cwd()
        if not cwd.is_dir():
            raise SpawnFailed(argv, f"working directory does not exist: {cwd}")
        child_env = dict(os.environ)
        if env:
            child_env.update(env)
        child_env["TERM"] = TERM
        try:
            process = PtyProcess.spawn(
                argv, cwd=str(cwd), env=child_env, dimensions=(rows, cols)
            )
        except OSError as exc:
            raise SpawnFailed(argv, str(exc)) from exc
        logger.info(
            "session.spawned",
            pid=process.pid,
            command=argv,
            cwd=str(cwd),
            rows=rows,
            cols=cols,
        )
        return cls(process, command=argv, rows=rows, cols=cols)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def fd(self) -> int:
        return self._process.fd

    @property
    def exit_status(self) -> int | None:
        """Exit code, or the negated signal number when killed by a signal."""
        if self._process.signalstatus is not None:
            return -self._process.signalstatus
        return self._process.exitstatus

    def is_alive(self) -> bool:
        if self._closed:
            return False
        return self._process.isalive()

    def read(self, size: int, timeout: float | None = None) -> bytes | None:
        """Blocking read. ``b""`` on EOF or error, None if ``timeout`` elapsed first."""
        fd = self._process.fd
        try:
            if timeout is not None:
                ready, _, _ = select.select([fd], [], [], timeout)
                if not ready:
                    return None
            return os.read(fd, size)
        except (OSError, ValueError) as exc:
            # Linux reports a hung-up PTY as EIO rather than a zero-length read.
            if getattr(exc, "errno", None) != errno.EIO:
                logger.debug("session.read_error", pid=self.pid, error=str(exc))
            return b""

    def write(self, data: bytes) -> int:
        view = memoryview(data)
        written = 0
        try:
            while written < len(view):
                written += os.write(self._process.fd, view[written:])
        except OSError as exc:
            logger.error(
                "session.write_failed",
                pid=self.pid,
                size=len(data),
                written=written,
                error=str(exc),
            )
        return written

    def resize(self, rows: int, cols: int) -> None:
        if not self.is_alive():
            return
        try:
            self._process.setwinsize(rows, cols)
        except OSError as exc:
            raise ResizePropagationFailed(
                f"Failed to resize pid {self.pid} to {cols}x{rows}: {exc}"
            ) from exc
        self.rows, self.cols = rows, cols

    def input_flags(self) -> tuple[bool, bool]:
        """``(echo, canonical)`` as currently set by the program on the slave side."""
        lflag = termios.tcgetattr(self._process.fd)[3]
        return bool(lflag & termios.ECHO), bool(lflag & termios.ICANON)

    def is_password_mode(self) -> bool:
        try:
            echo, canonical = self.input_flags()
        except (termios.error, OSError) as exc:
            # Unknown input state: treat it as a password prompt.
            logger.warning("session.input_flags_unavailable", pid=self.pid, error=str(exc))
            return True
        return not echo and canonical

    def terminate(self, grace: float = 0.5) -> bool:
        """SIGHUP the process group, then SIGKILL after ``grace`` seconds.

        Returns True once the child is gone. Safe to call on a dead session.
        """
        if not self.is_alive():
            return True
        self._signal_group(signal.SIGHUP)
        if self._wait_dead(grace):
            logger.info("session.terminated", pid=self.pid, signal="SIGHUP")
            return True
        self._signal_group(signal.SIGKILL)
        dead = self._wait_dead(max(grace, 1.0))
        logger.info("session.terminated", pid=self.pid, signal="SIGKILL", dead=dead)
        return dead

    def close(self) -> None:
        """Release the master fd. Only call once the relay has stopped reading."""
        if self._closed:
            return
        self._closed = True
        self._process.close(force=True)

    def _wait_dead(self, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while self._process.isalive():
            if time.monotonic() >= deadline:
                return False
            time.sleep(_POLL_INTERVAL_S)
        return True

    def _signal_group(self, sig: signal.Signals) -> None:
        try:
            os.killpg(self.pid, sig)
        except ProcessLookupError:
            return
        except PermissionError:
            os.kill(self.pid, sig)

    def __repr__(self) -> str:
        return f"SessionHandle(pid={self.pid}, command={list(self.command)!r})"
