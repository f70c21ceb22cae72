"""JSON tool surface the agent runtime calls into.

Inputs are decoded with msgspec; anything malformed becomes an ``ok: false``
result instead of an exception so the agent can read the error and retry.
"""

from __future__ import annotations

import shlex
from typing import Annotated, Any

import msgspec

from .keys import parse_chord
from .logging import get_logger
from .model import ScreenSnapshot, SpawnOutcome, WriteOutcome
from .pane import TerminalPane

logger = get_logger(__name__)

WRITE_TO_PANE = "write_to_pane"
READ_PANE = "read_pane"
SPAWN_INTERACTIVE = "spawn_interactive"


class WriteToPaneInput(msgspec.Struct, forbid_unknown_fields=True):
    text: str = ""
    description: str = ""
    press_enter: bool = True
    keys: list[str] = []


class ReadPaneInput(msgspec.Struct, forbid_unknown_fields=True):
    max_lines: Annotated[int, msgspec.Meta(ge=1, le=10_000)] | None = None


class SpawnInteractiveInput(msgspec.Struct, forbid_unknown_fields=True):
    command: str | list[str] | None = None
    working_dir: str | None = None


class ToolResult(msgspec.Struct, omit_defaults=True):
    ok: bool
    status: str
    message: str
    request_id: str | None = None
    bytes_written: int | None = None
    pid: int | None = None
    mode: str | None = None
    lines: list[str] | None = None
    cursor: tuple[int, int] | None = None
    rows: int | None = None
    cols: int | None = None
    alternate_screen: bool | None = None
    redactions: int | None = None


_INPUTS: dict[str, type[msgspec.Struct]] = {
    WRITE_TO_PANE: WriteToPaneInput,
    READ_PANE: ReadPaneInput,
    SPAWN_INTERACTIVE: SpawnInteractiveInput,
}

_DESCRIPTIONS = {
    WRITE_TO_PANE: (
        "Send text to the interactive shell exactly as given, followed by "
        "Enter unless press_enter is false. Use keys for control keys, e.g. "
        '["ctrl+c"] or ["up", "enter"]. Writes may wait for the user\'s approval.'
    ),
    READ_PANE: "Read the visible screen of the interactive shell.",
    SPAWN_INTERACTIVE: (
        "Start an interactive session (or take control of the running one) "
        "so that write_to_pane can drive it."
    ),
}


def tool_definitions() -> list[dict[str, Any]]:
    return [
        {
            "name": name,
            "description": _DESCRIPTIONS[name],
            "input_schema": msgspec.json.schema(struct),
        }
        for name, struct in _INPUTS.items()
    ]


def _error(status: str, message: str) -> ToolResult:
    return ToolResult(ok=False, status=status, message=message)


def _from_write(outcome: WriteOutcome) -> ToolResult:
    return ToolResult(
        ok=outcome.ok,
        status=outcome.status.value,
        message=outcome.message,
        request_id=outcome.request_id,
        bytes_written=outcome.bytes_written if outcome.ok else None,
    )


def _from_spawn(outcome: SpawnOutcome) -> ToolResult:
    return ToolResult(
        ok=outcome.ok,
        status="ok" if outcome.ok else "refused",
        message=outcome.message,
        pid=outcome.pid,
        mode=outcome.mode.value,
    )


def _from_snapshot(snap: ScreenSnapshot, *, alive: bool) -> ToolResult:
    return ToolResult(
        ok=True,
        status="ok",
        message="Session is running." if alive else "No interactive session is running.",
        lines=list(snap.lines),
        cursor=snap.cursor,
        rows=snap.rows,
        cols=snap.cols,
        alternate_screen=snap.alternate_screen,
        redactions=snap.redactions,
    )


class PaneTools:
    def __init__(self, pane: TerminalPane) -> None:
        self.pane = pane

    async def call(self, name: str, payload: bytes | str) -> bytes:
        return msgspec.json.encode(await self.dispatch(name, payload))

    async def dispatch(self, name: str, payload: bytes | str) -> ToolResult:
        struct = _INPUTS.get(name)
        if struct is None:
            logger.warning("tools.unknown", tool=name)
            return _error("unknown_tool", f"Unknown tool {name!r}.")
        try:
            args = msgspec.json.decode(payload or b"{}", type=struct)
        except msgspec.DecodeError as exc:
            logger.info("tools.invalid_input", tool=name, error=str(exc))
            return _error("invalid_input", str(exc))

        match args:
            case WriteToPaneInput():
                return await self._write(args)
            case ReadPaneInput(max_lines=max_lines):
                snap = self.pane.agent_snapshot(max_lines)
                return _from_snapshot(snap, alive=self.pane.session_alive)
            case SpawnInteractiveInput():
                return await self._spawn(args)
        raise AssertionError(f"unhandled tool input {args!r}")

    async def _write(self, args: WriteToPaneInput) -> ToolResult:
        data = args.text.encode()
        if args.text and args.press_enter:
            data += b"\r"
        for chord in args.keys:
            try:
                key, mods = parse_chord(chord)
                data += self.pane.terminal.key_event_to_bytes(key, mods)
            except ValueError as exc:
                return _error("invalid_input", f"Invalid key {chord!r}: {exc}")
        if not data:
            return _error("invalid_input", "Nothing to write.")
        outcome = await self.pane.propose_write(data, args.description or "agent input")
        return _from_write(outcome)

    async def _spawn(self, args: SpawnInteractiveInput) -> ToolResult:
        command = args.command
        if isinstance(command, str):
            try:
                command = shlex.split(command)
            except ValueError as exc:
                return _error("invalid_input", f"Could not parse command: {exc}")
        outcome = await self.pane.spawn_interactive(command or None, args.working_dir)
        return _from_spawn(outcome)
