"""Shared terminal state on top of pyte.

One ``VirtualTerminal`` exists per pane. The output relay thread is the only
caller of ``ingest``; every other method is a short read under the same lock.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

import pyte

from .gate import NULL_SINK, Writer
from .keys import encode_key
from .logging import get_logger
from .model import ScreenSnapshot, SemanticZone, ZoneKind

logger = get_logger(__name__)

# pyte stores private (DEC) modes shifted left by five bits.
_PRIVATE = 5
APPLICATION_CURSOR = 1 << _PRIVATE
ALTERNATE_SCREEN_MODES = frozenset(
    {47 << _PRIVATE, 1047 << _PRIVATE, 1049 << _PRIVATE}
)
BRACKETED_PASTE = 2004 << _PRIVATE

PASTE_START = b"\x1b[200~"
PASTE_END = b"\x1b[201~"

_MARK_PREFIX = b"\x1b]133;"
_MAX_MARK_BYTES = 256
_MAX_ZONES = 256


@dataclass(frozen=True, slots=True)
class _PromptMark:
    body: str


def _find_terminator(data: bytes, start: int) -> tuple[int, int]:
    bel = data.find(b"\x07", start)
    st = data.find(b"\x1b\\", start)
    if bel == -1 and st == -1:
        return -1, 0
    if st == -1 or (bel != -1 and bel < st):
        return bel, 1
    return st, 2


def _held_prefix_len(data: bytes, floor: int) -> int:
    for size in range(min(len(_MARK_PREFIX) - 1, len(data) - floor), 0, -1):
        if data.endswith(_MARK_PREFIX[:size]):
            return size
    return 0


class _PromptMarkScanner:
    """Splits output around OSC 133 marks, holding back a mark cut by a chunk edge."""

    def __init__(self) -> None:
        self._held = b""

    def split(self, chunk: bytes) -> list[bytes | _PromptMark]:
        data = self._held + chunk
        self._held = b""
        parts: list[bytes | _PromptMark] = []
        pos = 0
        while True:
            start = data.find(_MARK_PREFIX, pos)
            if start == -1:
                end = len(data) - _held_prefix_len(data, pos)
                if end > pos:
                    parts.append(data[pos:end])
                self._held = data[end:]
                return parts
            body = start + len(_MARK_PREFIX)
            term, term_len = _find_terminator(data, body)
            if term == -1:
                if len(data) - start > _MAX_MARK_BYTES:
                    parts.append(data[pos:])
                    return parts
                if start > pos:
                    parts.append(data[pos:start])
                self._held = data[start:]
                return parts
            end = term + term_len
            parts.append(data[pos:end])
            parts.append(_PromptMark(data[body:term].decode("ascii", "replace")))
            pos = end

    def flush(self) -> bytes:
        held, self._held = self._held, b""
        return held


class _ReplyingScreen(pyte.HistoryScreen):
    """HistoryScreen that collects device reports instead of dropping them."""

    def __init__(self, columns: int, lines: int, *, history: int, replies: list[bytes]):
        self._replies = replies
        super().__init__(columns, lines, history=history)

    def write_process_input(self, data: str) -> None:
        self._replies.append(data.encode())


class VirtualTerminal:
    def __init__(
        self,
        rows: int = 24,
        cols: int = 80,
        *,
        history: int = 1000,
        writer: Writer | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._writer: Writer = writer if writer is not None else NULL_SINK
        self._replies: list[bytes] = []
        self._screen = _ReplyingScreen(
            cols, rows, history=history, replies=self._replies
        )
        self._stream = pyte.ByteStream(self._screen)
        self._marks = _PromptMarkScanner()
        self._zones: deque[SemanticZone] = deque(maxlen=_MAX_ZONES)
        self._open_zone: SemanticZone | None = None
        self._changes = 0

    # -- writes ----------------------------------------------------------

    def ingest(self, data: bytes) -> None:
        if not data:
            return
        with self._lock:
            for part in self._marks.split(data):
                if isinstance(part, _PromptMark):
                    self._apply_mark(part.body)
                else:
                    self._stream.feed(part)
            self._changes += 1
            replies = self._drain_replies()
        self._send_replies(replies)

    def flush(self) -> None:
        """Feed bytes held back while waiting for the end of a prompt mark."""
        with self._lock:
            held = self._marks.flush()
            if not held:
                return
            self._stream.feed(held)
            self._changes += 1
            replies = self._drain_replies()
        self._send_replies(replies)

    def resize(self, rows: int, cols: int) -> None:
        with self._lock:
            if (self._screen.lines, self._screen.columns) == (rows, cols):
                return
            self._screen.resize(lines=rows, columns=cols)
            self._changes += 1

    def key_event_to_bytes(self, key: str, modifiers: Iterable[str] = ()) -> bytes:
        with self._lock:
            application_cursor = APPLICATION_CURSOR in self._screen.mode
        return encode_key(key, modifiers, application_cursor=application_cursor)

    def key_down(self, key: str, modifiers: Iterable[str] = ()) -> int:
        return self._writer.write(self.key_event_to_bytes(key, modifiers))

    def paste_bytes(self, text: str) -> bytes:
        data = text.encode()
        if self.bracketed_paste:
            return PASTE_START + data + PASTE_END
        return data

    # -- reads -----------------------------------------------------------

    def read_lines(self, start: int = 0, stop: int | None = None) -> list[str]:
        with self._lock:
            return [line.rstrip() for line in self._screen.display[start:stop]]

    def read_cursor(self) -> tuple[int, int]:
        """(row, col), zero based."""
        with self._lock:
            return self._screen.cursor.y, self._screen.cursor.x

    def is_alternate_screen(self) -> bool:
        with self._lock:
            return not ALTERNATE_SCREEN_MODES.isdisjoint(self._screen.mode)

    @property
    def bracketed_paste(self) -> bool:
        with self._lock:
            return BRACKETED_PASTE in self._screen.mode

    def change_counter(self) -> int:
        with self._lock:
            return self._changes

    def dimensions(self) -> tuple[int, int]:
        with self._lock:
            return self._screen.lines, self._screen.columns

    def read_zones(self) -> list[SemanticZone]:
        with self._lock:
            zones = list(self._zones)
            if self._open_zone is not None:
                zones.append(self._open_zone)
            return zones

    def snapshot(self) -> ScreenSnapshot:
        with self._lock:
            screen = self._screen
            zones = list(self._zones)
            if self._open_zone is not None:
                zones.append(self._open_zone)
            return ScreenSnapshot(
                lines=tuple(line.rstrip() for line in screen.display),
                cursor=(screen.cursor.y, screen.cursor.x),
                rows=screen.lines,
                cols=screen.columns,
                alternate_screen=not ALTERNATE_SCREEN_MODES.isdisjoint(screen.mode),
                change_counter=self._changes,
                zones=tuple(zones),
            )

    # -- internals -------------------------------------------------------

    def _drain_replies(self) -> list[bytes]:
        replies = list(self._replies)
        self._replies.clear()
        return replies

    def _send_replies(self, replies: list[bytes]) -> None:
        for reply in replies:
            self._writer.write(reply)

    def _position(self) -> tuple[int, int]:
        # Rows are absolute: lines already scrolled into history count too.
        screen = self._screen
        return len(screen.history.top) + screen.cursor.y, screen.cursor.x

    def _apply_mark(self, body: str) -> None:
        code, _, rest = body.partition(";")
        row, col = self._position()
        match code:
            case "A":
                self._close_zone(row, col)
                self._open("prompt", row, col)
            case "B":
                self._close_zone(row, col)
                self._open("input", row, col)
            case "C":
                self._close_zone(row, col)
                self._open("output", row, col)
            case "D":
                exit_code = int(rest) if rest.lstrip("-").isdigit() else None
                self._close_zone(row, col, exit_code=exit_code)
            case _:
                logger.debug("terminal.unknown_prompt_mark", mark=body)

    def _open(self, kind: ZoneKind, row: int, col: int) -> None:
        self._open_zone = SemanticZone(kind=kind, start_row=row, start_col=col)

    def _close_zone(self, row: int, col: int, *, exit_code: int | None = None) -> None:
        zone = self._open_zone
        if zone is None:
            return
        self._zones.append(
            SemanticZone(
                kind=zone.kind,
                start_row=zone.start_row,
                start_col=zone.start_col,
                end_row=row,
                end_col=col,
                exit_code=exit_code if zone.kind == "output" else None,
            )
        )
        self._open_zone = None
