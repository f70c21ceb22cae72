"""Single-line input buffer fed by keystrokes routed away from the shell."""

from __future__ import annotations

from collections.abc import Iterable

from .keys import normalize_modifiers


class InputBuffer:
    def __init__(self) -> None:
        self._chars: list[str] = []
        self._cursor = 0

    @property
    def text(self) -> str:
        return "".join(self._chars)

    @property
    def cursor(self) -> int:
        return self._cursor

    def clear(self) -> None:
        self._chars.clear()
        self._cursor = 0

    def insert_text(self, text: str) -> None:
        self._chars[self._cursor : self._cursor] = list(text)
        self._cursor += len(text)

    def feed(self, key: str, modifiers: Iterable[str] = ()) -> str | None:
        """Apply one keystroke. Returns the submitted text on Enter."""
        mods = normalize_modifiers(modifiers)
        if len(key) == 1:
            if "ctrl" in mods:
                self._control(key.lower())
                return None
            self.insert_text(key.upper() if "shift" in mods else key)
            return None

        match key.lower():
            case "enter" | "return":
                if "shift" in mods:
                    self.insert_text("\n")
                    return None
                submitted = self.text
                self.clear()
                return submitted
            case "space":
                self.insert_text(" ")
            case "tab":
                self.insert_text("\t")
            case "backspace":
                if self._cursor > 0:
                    del self._chars[self._cursor - 1]
                    self._cursor -= 1
            case "delete":
                if self._cursor < len(self._chars):
                    del self._chars[self._cursor]
            case "left":
                self._cursor = max(0, self._cursor - 1)
            case "right":
                self._cursor = min(len(self._chars), self._cursor + 1)
            case "home":
                self._cursor = 0
            case "end":
                self._cursor = len(self._chars)
            case "escape" | "esc":
                self.clear()
        return None

    def _control(self, key: str) -> None:
        match key:
            case "a":
                self._cursor = 0
            case "e":
                self._cursor = len(self._chars)
            case "u":
                del self._chars[: self._cursor]
                self._cursor = 0
            case "k":
                del self._chars[self._cursor :]
            case "w":
                end = self._cursor
                start = end
                while start > 0 and self._chars[start - 1] == " ":
                    start -= 1
                while start > 0 and self._chars[start - 1] != " ":
                    start -= 1
                del self._chars[start:end]
                self._cursor = start
