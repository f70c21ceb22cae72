from __future__ import annotations

from duopane.editor import InputBuffer


def type_text(buffer: InputBuffer, text: str) -> None:
    for char in text:
        assert buffer.feed(char) is None


def test_enter_submits_and_clears() -> None:
    buffer = InputBuffer()
    type_text(buffer, "hello")

    assert buffer.feed("enter") == "hello"
    assert buffer.text == ""


def test_editing_keys() -> None:
    buffer = InputBuffer()
    type_text(buffer, "helo")
    buffer.feed("left")
    buffer.feed("l")
    buffer.feed("end")
    buffer.feed("backspace")
    buffer.feed("space")
    buffer.feed("x", ("shift",))

    assert buffer.text == "hell X"
    assert buffer.cursor == len("hell X")


def test_shift_enter_inserts_newline() -> None:
    buffer = InputBuffer()
    type_text(buffer, "a")
    buffer.feed("enter", ("shift",))
    type_text(buffer, "b")

    assert buffer.feed("enter") == "a\nb"


def test_escape_and_ctrl_u_clear() -> None:
    buffer = InputBuffer()
    type_text(buffer, "abc")
    buffer.feed("escape")
    assert buffer.text == ""

    type_text(buffer, "abc")
    buffer.feed("u", ("ctrl",))
    assert buffer.text == ""


def test_ctrl_w_deletes_previous_word() -> None:
    buffer = InputBuffer()
    type_text(buffer, "git commit ")
    buffer.feed("w", ("ctrl",))

    assert buffer.text == "git "


def test_insert_text_at_cursor() -> None:
    buffer = InputBuffer()
    type_text(buffer, "ad")
    buffer.feed("left")
    buffer.insert_text("bc")

    assert buffer.text == "abcd"
    assert buffer.cursor == 3
