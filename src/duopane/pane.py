"""The pane: one shell, one screen, two drivers.

``TerminalPane`` is an async context manager. It owns the task group running
the output relay, the shared terminal state, the writer gate, the mode
controller, the permission gateway and at most one live session.

Keystrokes are dispatched on the event loop with no await between reading the
current mode and delivering the byte, so a keystroke is never routed by a
stale mode. Agent writes pass through the permission gateway and re-check the
mode right before they reach the gate.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Sequence
from contextlib import AsyncExitStack
from functools import partial
from pathlib import Path
from types import TracebackType

import anyio
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream

from .editor import InputBuffer
from .errors import ModeTransitionRefused, ResizePropagationFailed, SpawnFailed
from .gate import WriterGate
from .keys import normalize_modifiers, parse_chord
from .logging import get_logger
from .model import (
    ApprovalRequested,
    ApprovalResolved,
    InputSubmitted,
    Mode,
    ModeChanged,
    PaneEvent,
    PendingWrite,
    Route,
    ScreenSnapshot,
    SessionDied,
    SessionStarted,
    SpawnError,
    SpawnOutcome,
    TrustLevel,
    WriteOutcome,
    WriteStatus,
)
from .modes import ModeController, toggle_transition
from .permissions import PermissionGateway, PermissionPolicy
from .pty import OutputRelay, SessionHandle
from .redaction import Redactor
from .settings import DuopaneSettings
from .terminal import VirtualTerminal

logger = get_logger(__name__)

RELAY_POLL_S = 0.1
EVENT_BUFFER = 256


def _exit_message(status: int | None) -> str:
    if status is None:
        return "Shell exited"
    if status < 0:
        return f"Shell exited (signal {-status})"
    return f"Shell exited (status {status})"


class TerminalPane:
    def __init__(
        self,
        settings: DuopaneSettings | None = None,
        *,
        redactor: Redactor | None = None,
    ) -> None:
        self.settings = settings if settings is not None else DuopaneSettings()
        term = self.settings.terminal
        perms = self.settings.permissions
        self._rows, self._cols = term.rows, term.cols
        self._gate = WriterGate()
        self.terminal = VirtualTerminal(
            term.rows, term.cols, history=term.history, writer=self._gate
        )
        self.input = InputBuffer()
        self._toggle_chord = parse_chord(term.toggle_key)
        self._modes = ModeController()
        self._modes.on_change(self._on_mode_changed)
        self._gateway = PermissionGateway(
            PermissionPolicy(trust_level=perms.trust_level),
            approval_timeout_s=perms.approval_timeout_s,
            on_request=self._on_approval_requested,
            on_resolved=self._on_approval_resolved,
        )
        self._redactor = (
            redactor
            if redactor is not None
            else Redactor.from_mapping(perms.redaction_patterns)
        )
        self._send_events, self._receive_events = anyio.create_memory_object_stream[
            PaneEvent
        ](max_buffer_size=EVENT_BUFFER)

        self._session: SessionHandle | None = None
        self._relay: OutputRelay | None = None
        self._relay_done: anyio.Event | None = None
        self._lifecycle: anyio.Lock | None = None
        self._tg: TaskGroup | None = None
        self._exit_stack: AsyncExitStack | None = None
        self._closed = False

    # -- context management ----------------------------------------------

    async def __aenter__(self) -> TerminalPane:
        async with AsyncExitStack() as stack:
            self._tg = await stack.enter_async_context(anyio.create_task_group())
            self._lifecycle = anyio.Lock()
            self._exit_stack = stack.pop_all()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None:
        if self._exit_stack is None:
            raise RuntimeError("TerminalPane was not entered with 'async with'")
        with anyio.CancelScope(shield=True):
            await self.aclose()
        return await self._exit_stack.__aexit__(exc_type, exc, tb)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._gateway.deny_all("pane closed")
        if self._tg is not None:
            await self.kill_session()
        self._send_events.close()
        logger.info("pane.closed")

    # -- state -----------------------------------------------------------

    @property
    def mode(self) -> Mode:
        return self._modes.mode

    @property
    def session(self) -> SessionHandle | None:
        return self._session

    @property
    def session_alive(self) -> bool:
        return self._session is not None and self._session.is_alive()

    @property
    def gate(self) -> WriterGate:
        return self._gate

    @property
    def trust_level(self) -> TrustLevel:
        return self._gateway.policy.trust_level

    def events(self) -> MemoryObjectReceiveStream[PaneEvent]:
        return self._receive_events

    def pending_writes(self) -> list[PendingWrite]:
        return self._gateway.pending()

    # -- session lifecycle -----------------------------------------------

    async def spawn_session(
        self,
        command: Sequence[str] | None = None,
        working_dir: str | Path | None = None,
    ) -> SessionHandle:
        tg, lock = self._require_running()
        async with lock:
            if self._session is not None:
                if self._session.is_alive():
                    return self._session
                await self._stop_session_locked(self._session, reason="exited")

            argv = list(command) if command else self.settings.shell.argv()
            cwd = working_dir if working_dir is not None else self.settings.shell.working_dir
            try:
                session = SessionHandle.spawn(
                    argv, cwd, self._rows, self._cols, env=self.settings.shell.env
                )
            except SpawnFailed as exc:
                logger.error("pane.spawn_failed", command=argv, error=exc.reason)
                self._modes.force_agent()
                self._emit(SpawnError(message=str(exc), command=tuple(argv)))
                raise

            relay = OutputRelay(
                partial(session.read, timeout=RELAY_POLL_S),
                self.terminal,
                chunk_size=self.settings.terminal.read_chunk_bytes,
                pid=session.pid,
            )
            done = anyio.Event()
            self._session, self._relay, self._relay_done = session, relay, done
            self._gate.bind(session)
            tg.start_soon(self._run_relay, session, relay, done)
        self._emit(SessionStarted(pid=session.pid, command=session.command))
        return session

    async def kill_session(self) -> bool:
        """Terminate the live session and wait for its relay to stop."""
        _, lock = self._require_running()
        async with lock:
            session = self._session
            if session is None:
                return False
            await self._stop_session_locked(session, reason="killed")
            return True

    async def _run_relay(
        self, session: SessionHandle, relay: OutputRelay, done: anyio.Event
    ) -> None:
        try:
            await anyio.to_thread.run_sync(
                relay.run, limiter=anyio.CapacityLimiter(1)
            )
        finally:
            done.set()
        if relay.detached:
            return
        _, lock = self._require_running()
        async with lock:
            if self._session is session:
                await self._stop_session_locked(session, reason="exited")

    async def _stop_session_locked(self, session: SessionHandle, *, reason: str) -> None:
        relay, done = self._relay, self._relay_done
        self._gate.unbind()
        if relay is not None:
            relay.detach()
        if reason == "killed":
            await anyio.to_thread.run_sync(
                partial(session.terminate, self.settings.lifecycle.terminate_grace_s)
            )
        if done is not None:
            await done.wait()
        self._session = self._relay = self._relay_done = None
        self._modes.force_agent()
        await anyio.to_thread.run_sync(session.close)
        status = session.exit_status
        logger.info("pane.session_ended", pid=session.pid, reason=reason, status=status)
        self._emit(SessionDied(exit_status=status, message=_exit_message(status)))

    # -- human side ------------------------------------------------------

    async def toggle_mode(self) -> Mode:
        current = self._modes.mode
        if toggle_transition(current) is Mode.TERMINAL and not self.session_alive:
            try:
                await self.spawn_session()
            except SpawnFailed:
                return self._modes.mode
        if self._modes.mode is not current:
            return self._modes.mode
        return self._modes.toggle()

    def force_agent_mode(self) -> Mode:
        return self._modes.force_agent()

    async def dispatch_key(
        self, key: str, modifiers: Iterable[str] = ()
    ) -> Route | None:
        """Deliver one keystroke. Returns where it went, or None if consumed."""
        mods = normalize_modifiers(modifiers)
        name = key if len(key) == 1 else key.lower()
        if (name, mods) == self._toggle_chord:
            await self.toggle_mode()
            return None

        route = self._modes.route()
        if route is Route.PTY:
            self.terminal.key_down(key, mods)
            return route

        if self._modes.mode is Mode.AGENT_TERMINAL and not mods and name in ("y", "n"):
            pending = self._gateway.pending()
            if pending:
                self._gateway.resolve(pending[0].request_id, approved=name == "y")
                return None

        submitted = self.input.feed(key, mods)
        if submitted is not None:
            logger.info("pane.input_submitted", length=len(submitted))
            self._emit(InputSubmitted(text=submitted))
        return Route.INPUT_BUFFER

    def send_paste(self, text: str) -> Route:
        route = self._modes.route()
        if route is Route.PTY:
            self._gate.write(self.terminal.paste_bytes(text))
        else:
            self.input.insert_text(text)
        return route

    def resize(self, rows: int, cols: int) -> None:
        if rows < 1 or cols < 1:
            raise ValueError(f"invalid pane size {cols}x{rows}")
        self._rows, self._cols = rows, cols
        self.terminal.resize(rows, cols)
        session = self._session
        if session is None:
            return
        try:
            session.resize(rows, cols)
        except ResizePropagationFailed as exc:
            logger.warning("pane.resize_failed", rows=rows, cols=cols, error=str(exc))

    def approve(self, request_id: str) -> bool:
        return self._gateway.resolve(request_id, approved=True)

    def deny(self, request_id: str, reason: str | None = None) -> bool:
        return self._gateway.resolve(request_id, approved=False, reason=reason)

    def set_trust_level(self, level: TrustLevel | str) -> None:
        self._gateway.policy.set_trust_level(TrustLevel(level))
        logger.info("pane.trust_level_changed", trust_level=str(level))

    # -- reads -----------------------------------------------------------

    def snapshot(self) -> ScreenSnapshot:
        return self.terminal.snapshot()

    def agent_snapshot(self, max_lines: int | None = None) -> ScreenSnapshot:
        snap = self.terminal.snapshot()
        lines = list(snap.lines)
        while lines and not lines[-1]:
            lines.pop()
        if max_lines is not None and max_lines > 0:
            lines = lines[-max_lines:]
        redactions = 0
        if self.settings.permissions.redact_snapshots:
            lines, redactions = self._redactor.redact_lines(lines)
            if redactions:
                logger.info("pane.snapshot_redacted", count=redactions)
        return dataclasses.replace(snap, lines=tuple(lines), redactions=redactions)

    # -- agent side ------------------------------------------------------

    async def spawn_interactive(
        self,
        command: Sequence[str] | None = None,
        working_dir: str | Path | None = None,
    ) -> SpawnOutcome:
        """Give the agent control of the shell, spawning one if needed."""
        if self._modes.mode is Mode.TERMINAL:
            return SpawnOutcome(
                ok=False,
                message="The user is driving the shell; agent control was refused.",
                mode=Mode.TERMINAL,
            )
        session = self._session
        if session is not None and session.is_alive():
            if command:
                return SpawnOutcome(
                    ok=False,
                    message=(
                        f"A session is already running (pid {session.pid}); call "
                        "spawn_interactive without a command to take control of it."
                    ),
                    pid=session.pid,
                    mode=self._modes.mode,
                )
        else:
            try:
                session = await self.spawn_session(command, working_dir)
            except SpawnFailed as exc:
                return SpawnOutcome(ok=False, message=str(exc), mode=self._modes.mode)
        try:
            mode = self._modes.enter_agent_terminal()
        except ModeTransitionRefused as exc:
            return SpawnOutcome(
                ok=False, message=str(exc), pid=session.pid, mode=self._modes.mode
            )
        return SpawnOutcome(
            ok=True,
            message=f"Agent controls session pid {session.pid}.",
            pid=session.pid,
            mode=mode,
        )

    async def propose_write(self, data: bytes, description: str) -> WriteOutcome:
        session = self._session
        if session is None or not session.is_alive():
            return WriteOutcome(
                status=WriteStatus.SESSION_NOT_RUNNING,
                message="No interactive session is running.",
            )
        if self._modes.mode is not Mode.AGENT_TERMINAL:
            return WriteOutcome(
                status=WriteStatus.DENIED,
                message="The agent does not control the shell; call spawn_interactive first.",
            )
        return await self._gateway.submit(
            data,
            description,
            password_mode=session.is_password_mode(),
            execute=partial(self._execute_write, session),
        )

    async def _execute_write(
        self, session: SessionHandle, data: bytes, request_id: str | None
    ) -> WriteOutcome:
        if self._modes.mode is not Mode.AGENT_TERMINAL:
            return WriteOutcome(
                status=WriteStatus.DENIED,
                message="Control returned to the user before the write was applied.",
                request_id=request_id,
            )
        if self._session is not session or not session.is_alive():
            return WriteOutcome(
                status=WriteStatus.SESSION_NOT_RUNNING,
                message="The session ended before the write was applied.",
                request_id=request_id,
            )
        written = self._gate.write(data)
        logger.info(
            "pane.agent_write", request_id=request_id, size=len(data), written=written
        )
        return WriteOutcome(
            status=WriteStatus.EXECUTED,
            message=f"Wrote {written} bytes to the shell.",
            request_id=request_id,
            bytes_written=written,
        )

    # -- internals -------------------------------------------------------

    def _require_running(self) -> tuple[TaskGroup, anyio.Lock]:
        if self._tg is None or self._lifecycle is None:
            raise RuntimeError("TerminalPane must be entered with 'async with'")
        return self._tg, self._lifecycle

    def _emit(self, event: PaneEvent) -> None:
        try:
            self._send_events.send_nowait(event)
        except anyio.WouldBlock:
            logger.warning("pane.event_dropped", kind=event.kind)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.debug("pane.event_after_close", kind=event.kind)

    def _on_mode_changed(self, old: Mode, new: Mode) -> None:
        if old is Mode.AGENT_TERMINAL:
            self._gateway.deny_all("control returned to the user")
        self._emit(ModeChanged(old=old, new=new))

    def _on_approval_requested(self, request: PendingWrite) -> None:
        self._emit(ApprovalRequested(request=request))

    def _on_approval_resolved(
        self, request_id: str, approved: bool, reason: str | None
    ) -> None:
        self._emit(ApprovalResolved(request_id=request_id, approved=approved, reason=reason))
