"""Exception taxonomy.

Only failures that abort an operation are exceptions. Session exit is a
lifecycle event (``SessionDied`` notification) and refused agent writes are
``WriteOutcome`` values.
"""

from __future__ import annotations

from collections.abc import Sequence


class DuopaneError(RuntimeError):
    pass


class ConfigError(DuopaneError):
    pass


class SpawnFailed(DuopaneError):
    """The OS could not allocate a PTY or execute the command."""

    def __init__(self, command: Sequence[str], reason: str) -> None:
        self.command = list(command)
        self.reason = reason
        shown = " ".join(self.command) or "<empty command>"
        super().__init__(f"Failed to spawn {shown!r}: {reason}")


class ResizePropagationFailed(DuopaneError):
    pass


class ModeTransitionRefused(DuopaneError):
    pass
