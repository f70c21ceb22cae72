"""Value types shared by the pane, the gateway and the agent tool surface."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal, TypeAlias


class Mode(StrEnum):
    AGENT = "agent"
    TERMINAL = "terminal"
    AGENT_TERMINAL = "agent-terminal"


class Route(StrEnum):
    INPUT_BUFFER = "input-buffer"
    PTY = "pty"


class TrustLevel(StrEnum):
    ASK_FIRST = "ask-first"
    ALWAYS_ASK = "always-ask"
    ALWAYS_ALLOW = "always-allow"


class WriteStatus(StrEnum):
    EXECUTED = "executed"
    DENIED = "denied"
    TIMEOUT = "timeout"
    SESSION_NOT_RUNNING = "session_not_running"


@dataclass(frozen=True, slots=True)
class WriteOutcome:
    status: WriteStatus
    message: str
    request_id: str | None = None
    bytes_written: int = 0

    @property
    def ok(self) -> bool:
        return self.status is WriteStatus.EXECUTED


@dataclass(frozen=True, slots=True)
class SpawnOutcome:
    ok: bool
    message: str
    pid: int | None = None
    mode: Mode = Mode.AGENT


@dataclass(frozen=True, slots=True)
class PendingWrite:
    """An agent write waiting for the user's decision.

    ``data`` never leaves the process through logs; only its length does.
    """

    request_id: str
    data: bytes
    description: str
    trust_level: TrustLevel
    password_mode: bool
    created_at: float

    @property
    def size(self) -> int:
        return len(self.data)


ZoneKind = Literal["prompt", "input", "output"]


@dataclass(frozen=True, slots=True)
class SemanticZone:
    kind: ZoneKind
    start_row: int
    start_col: int
    end_row: int | None = None
    end_col: int | None = None
    exit_code: int | None = None


@dataclass(frozen=True, slots=True)
class ScreenSnapshot:
    lines: tuple[str, ...]
    cursor: tuple[int, int]
    rows: int
    cols: int
    alternate_screen: bool
    change_counter: int
    zones: tuple[SemanticZone, ...] = ()
    redactions: int = 0

    def text(self) -> str:
        return "\n".join(self.lines).rstrip()


# Notifications emitted on TerminalPane.events()


@dataclass(frozen=True, slots=True)
class ModeChanged:
    old: Mode
    new: Mode
    kind: Literal["mode_changed"] = "mode_changed"


@dataclass(frozen=True, slots=True)
class SessionStarted:
    pid: int
    command: tuple[str, ...]
    kind: Literal["session_started"] = "session_started"


@dataclass(frozen=True, slots=True)
class SessionDied:
    exit_status: int | None
    message: str
    kind: Literal["session_died"] = "session_died"


@dataclass(frozen=True, slots=True)
class ApprovalRequested:
    request: PendingWrite
    kind: Literal["approval_requested"] = "approval_requested"


@dataclass(frozen=True, slots=True)
class ApprovalResolved:
    request_id: str
    approved: bool
    reason: str | None = None
    kind: Literal["approval_resolved"] = "approval_resolved"


@dataclass(frozen=True, slots=True)
class InputSubmitted:
    text: str
    kind: Literal["input_submitted"] = "input_submitted"


@dataclass(frozen=True, slots=True)
class SpawnError:
    message: str
    command: tuple[str, ...] = field(default_factory=tuple)
    kind: Literal["spawn_error"] = "spawn_error"


PaneEvent: TypeAlias = (
    ModeChanged
    | SessionStarted
    | SessionDied
    | ApprovalRequested
    | ApprovalResolved
    | InputSubmitted
    | SpawnError
)
