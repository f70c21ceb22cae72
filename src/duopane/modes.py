"""Three-state control machine deciding where keystrokes go."""

from __future__ import annotations

import threading
from collections.abc import Callable

from .errors import ModeTransitionRefused
from .logging import get_logger
from .model import Mode, Route

logger = get_logger(__name__)

ModeListener = Callable[[Mode, Mode], None]


def toggle_transition(mode: Mode) -> Mode:
    match mode:
        case Mode.AGENT:
            return Mode.TERMINAL
        case Mode.TERMINAL | Mode.AGENT_TERMINAL:
            return Mode.AGENT
    raise ValueError(f"unknown mode {mode!r}")


def route_for(mode: Mode) -> Route:
    if mode is Mode.TERMINAL:
        return Route.PTY
    return Route.INPUT_BUFFER


class ModeController:
    """Owns the current mode.

    Transitions are plain synchronous calls; the pane never awaits between
    reading ``route()`` and delivering a keystroke, so a keystroke is routed by
    exactly one mode.
    """

    def __init__(self, initial: Mode = Mode.AGENT) -> None:
        self._lock = threading.Lock()
        self._mode = initial
        self._listeners: list[ModeListener] = []

    @property
    def mode(self) -> Mode:
        return self._mode

    def on_change(self, listener: ModeListener) -> None:
        self._listeners.append(listener)

    def route(self) -> Route:
        return route_for(self._mode)

    def toggle(self) -> Mode:
        with self._lock:
            old = self._mode
            new = toggle_transition(old)
            self._apply(new)
        self._notify(old, new)
        return new

    def enter_agent_terminal(self) -> Mode:
        with self._lock:
            old = self._mode
            if old is Mode.AGENT_TERMINAL:
                return old
            if old is Mode.TERMINAL:
                raise ModeTransitionRefused(
                    "The user is driving the shell; agent control was refused."
                )
            self._apply(Mode.AGENT_TERMINAL)
        self._notify(old, Mode.AGENT_TERMINAL)
        return Mode.AGENT_TERMINAL

    def force_agent(self) -> Mode:
        with self._lock:
            old = self._mode
            if old is Mode.AGENT:
                return old
            self._apply(Mode.AGENT)
        self._notify(old, Mode.AGENT)
        return Mode.AGENT

    def _apply(self, new: Mode) -> None:
        self._mode = new

    def _notify(self, old: Mode, new: Mode) -> None:
        logger.info("mode.changed", old=old.value, new=new.value)
        for listener in list(self._listeners):
            listener(old, new)
