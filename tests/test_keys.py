from __future__ import annotations

import pytest

from duopane.keys import encode_key, parse_chord


@pytest.mark.parametrize(
    ("key", "modifiers", "expected"),
    [
        ("a", (), b"a"),
        ("a", ("shift",), b"A"),
        ("é", (), "é".encode()),
        ("c", ("ctrl",), b"\x03"),
        ("C", ("ctrl",), b"\x03"),
        ("d", ("ctrl",), b"\x04"),
        ("[", ("ctrl",), b"\x1b"),
        ("x", ("alt",), b"\x1bx"),
        ("space", ("ctrl",), b"\x00"),
        ("enter", (), b"\r"),
        ("tab", (), b"\t"),
        ("tab", ("shift",), b"\x1b[Z"),
        ("backspace", (), b"\x7f"),
        ("backspace", ("ctrl",), b"\x08"),
        ("escape", (), b"\x1b"),
        ("up", (), b"\x1b[A"),
        ("left", ("ctrl",), b"\x1b[1;5D"),
        ("right", ("shift", "alt"), b"\x1b[1;4C"),
        ("home", (), b"\x1b[H"),
        ("end", (), b"\x1b[F"),
        ("page_up", (), b"\x1b[5~"),
        ("PageDown", (), b"\x1b[6~"),
        ("delete", ("ctrl",), b"\x1b[3;5~"),
        ("insert", (), b"\x1b[2~"),
        ("f1", (), b"\x1bOP"),
        ("f4", ("shift",), b"\x1b[1;2S"),
        ("f5", (), b"\x1b[15~"),
        ("f12", (), b"\x1b[24~"),
    ],
)
def test_encode_key(key: str, modifiers: tuple[str, ...], expected: bytes) -> None:
    assert encode_key(key, modifiers) == expected


def test_application_cursor_uses_ss3() -> None:
    assert encode_key("up", application_cursor=True) == b"\x1bOA"
    assert encode_key("home", application_cursor=True) == b"\x1bOH"
    # modified arrows keep the CSI form
    assert encode_key("up", ("ctrl",), application_cursor=True) == b"\x1b[1;5A"


def test_unknown_key_raises() -> None:
    with pytest.raises(ValueError, match="unknown key"):
        encode_key("hyper")


def test_unknown_modifier_raises() -> None:
    with pytest.raises(ValueError, match="unknown modifiers"):
        encode_key("a", ("super",))


@pytest.mark.parametrize(
    ("chord", "expected"),
    [
        ("ctrl+t", ("t", frozenset({"ctrl"}))),
        ("Ctrl+Shift+F5", ("f5", frozenset({"ctrl", "shift"}))),
        ("ctrl++", ("+", frozenset({"ctrl"}))),
        ("escape", ("escape", frozenset())),
    ],
)
def test_parse_chord(chord: str, expected: tuple[str, frozenset[str]]) -> None:
    assert parse_chord(chord) == expected
