"""xterm keystroke encoding.

Key names are lowercase (``"enter"``, ``"up"``, ``"f5"``) or a single
printable character. Modifiers are any of ``ctrl``, ``alt``, ``shift``.
"""

from __future__ import annotations

from collections.abc import Iterable

ESC = b"\x1b"
CSI = b"\x1b["
SS3 = b"\x1bO"

MODIFIERS = frozenset({"ctrl", "alt", "shift"})

_CURSOR_FINALS = {
    "up": b"A",
    "down": b"B",
    "right": b"C",
    "left": b"D",
    "home": b"H",
    "end": b"F",
}

_TILDE_CODES = {
    "insert": 2,
    "delete": 3,
    "page_up": 5,
    "page_down": 6,
    "f5": 15,
    "f6": 17,
    "f7": 18,
    "f8": 19,
    "f9": 20,
    "f10": 21,
    "f11": 23,
    "f12": 24,
}

_SS3_FUNCTION = {"f1": b"P", "f2": b"Q", "f3": b"R", "f4": b"S"}

_CTRL_SYMBOLS = {
    " ": 0x00,
    "@": 0x00,
    "[": 0x1B,
    "\\": 0x1C,
    "]": 0x1D,
    "^": 0x1E,
    "_": 0x1F,
    "?": 0x7F,
}

_ALIASES = {
    "return": "enter",
    "esc": "escape",
    "pageup": "page_up",
    "pagedown": "page_down",
    "pgup": "page_up",
    "pgdn": "page_down",
    "del": "delete",
    "ins": "insert",
    "arrowup": "up",
    "arrowdown": "down",
    "arrowleft": "left",
    "arrowright": "right",
}


def normalize_modifiers(modifiers: Iterable[str]) -> frozenset[str]:
    mods = frozenset(m.lower() for m in modifiers)
    unknown = mods - MODIFIERS
    if unknown:
        raise ValueError(f"unknown modifiers: {sorted(unknown)}")
    return mods


def parse_chord(chord: str) -> tuple[str, frozenset[str]]:
    """Split ``"ctrl+t"`` into ``("t", {"ctrl"})``."""
    parts = chord.split("+")
    if chord.endswith("+"):
        parts = [*chord[:-1].split("+")[:-1], "+"]
    *mods, key = parts
    return key if len(key) == 1 else key.lower(), normalize_modifiers(mods)


def _modifier_param(mods: frozenset[str]) -> int:
    value = 1
    if "shift" in mods:
        value += 1
    if "alt" in mods:
        value += 2
    if "ctrl" in mods:
        value += 4
    return value


def _encode_char(char: str, mods: frozenset[str]) -> bytes:
    if "shift" in mods and char.isalpha():
        char = char.upper()
    if "ctrl" in mods:
        lowered = char.lower()
        if "a" <= lowered <= "z":
            data = bytes([ord(lowered) & 0x1F])
        elif char in _CTRL_SYMBOLS:
            data = bytes([_CTRL_SYMBOLS[char]])
        else:
            data = char.encode()
    else:
        data = char.encode()
    if "alt" in mods:
        data = ESC + data
    return data


def encode_key(
    key: str,
    modifiers: Iterable[str] = (),
    *,
    application_cursor: bool = False,
) -> bytes:
    mods = normalize_modifiers(modifiers)
    if len(key) == 1:
        return _encode_char(key, mods)

    name = key.lower()
    name = _ALIASES.get(name, name)
    alt_prefix = ESC if "alt" in mods else b""

    match name:
        case "space":
            return _encode_char(" ", mods)
        case "enter":
            return alt_prefix + b"\r"
        case "tab":
            if "shift" in mods:
                return CSI + b"Z"
            return alt_prefix + b"\t"
        case "backspace":
            return alt_prefix + (b"\x08" if "ctrl" in mods else b"\x7f")
        case "escape":
            return alt_prefix + ESC

    if name in _CURSOR_FINALS:
        final = _CURSOR_FINALS[name]
        if mods:
            return CSI + b"1;" + str(_modifier_param(mods)).encode() + final
        return (SS3 if application_cursor else CSI) + final

    if name in _SS3_FUNCTION:
        final = _SS3_FUNCTION[name]
        if mods:
            return CSI + b"1;" + str(_modifier_param(mods)).encode() + final
        return SS3 + final

    if name in _TILDE_CODES:
        code = str(_TILDE_CODES[name]).encode()
        if mods:
            return CSI + code + b";" + str(_modifier_param(mods)).encode() + b"~"
        return CSI + code + b"~"

    raise ValueError(f"unknown key {key!r}")
