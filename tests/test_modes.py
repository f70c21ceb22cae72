from __future__ import annotations

import pytest

from duopane.errors import ModeTransitionRefused
from duopane.model import Mode, Route
from duopane.modes import ModeController, route_for, toggle_transition


@pytest.mark.parametrize(
    ("mode", "expected"),
    [
        (Mode.AGENT, Mode.TERMINAL),
        (Mode.TERMINAL, Mode.AGENT),
        (Mode.AGENT_TERMINAL, Mode.AGENT),
    ],
)
def test_toggle_transition(mode: Mode, expected: Mode) -> None:
    assert toggle_transition(mode) is expected


def test_route_for_each_mode() -> None:
    assert route_for(Mode.AGENT) is Route.INPUT_BUFFER
    assert route_for(Mode.TERMINAL) is Route.PTY
    assert route_for(Mode.AGENT_TERMINAL) is Route.INPUT_BUFFER


@pytest.mark.parametrize("count", [0, 1, 2, 3, 7, 10])
def test_n_toggles_match_pure_transition(count: int) -> None:
    controller = ModeController()
    expected = Mode.AGENT
    for _ in range(count):
        controller.toggle()
        expected = toggle_transition(expected)

    assert controller.mode is expected


def test_agent_terminal_agent_roundtrip_twice() -> None:
    controller = ModeController()
    for _ in range(2):
        assert controller.toggle() is Mode.TERMINAL
        assert controller.toggle() is Mode.AGENT


class TestEnterAgentTerminal:
    def test_from_agent(self) -> None:
        controller = ModeController()

        assert controller.enter_agent_terminal() is Mode.AGENT_TERMINAL
        assert controller.route() is Route.INPUT_BUFFER

    def test_idempotent(self) -> None:
        controller = ModeController(Mode.AGENT_TERMINAL)
        seen: list[tuple[Mode, Mode]] = []
        controller.on_change(lambda old, new: seen.append((old, new)))

        assert controller.enter_agent_terminal() is Mode.AGENT_TERMINAL
        assert seen == []

    def test_refused_while_user_drives_shell(self) -> None:
        controller = ModeController(Mode.TERMINAL)

        with pytest.raises(ModeTransitionRefused):
            controller.enter_agent_terminal()
        assert controller.mode is Mode.TERMINAL

    def test_toggle_from_agent_terminal_returns_to_agent(self) -> None:
        controller = ModeController(Mode.AGENT_TERMINAL)

        assert controller.toggle() is Mode.AGENT


@pytest.mark.parametrize("start", list(Mode))
def test_force_agent_from_any_state(start: Mode) -> None:
    controller = ModeController(start)

    assert controller.force_agent() is Mode.AGENT


def test_listeners_see_each_change_once() -> None:
    controller = ModeController()
    seen: list[tuple[Mode, Mode]] = []
    controller.on_change(lambda old, new: seen.append((old, new)))

    controller.toggle()
    controller.force_agent()
    controller.force_agent()
    controller.enter_agent_terminal()

    assert seen == [
        (Mode.AGENT, Mode.TERMINAL),
        (Mode.TERMINAL, Mode.AGENT),
        (Mode.AGENT, Mode.AGENT_TERMINAL),
    ]
