"""Shared agent/human PTY pane."""

from __future__ import annotations

__version__ = "0.1.0"

from .model import (
    Mode,
    Route,
    ScreenSnapshot,
    SpawnOutcome,
    TrustLevel,
    WriteOutcome,
    WriteStatus,
)
from .pane import TerminalPane

__all__ = [
    "Mode",
    "Route",
    "ScreenSnapshot",
    "SpawnOutcome",
    "TerminalPane",
    "TrustLevel",
    "WriteOutcome",
    "WriteStatus",
    "__version__",
]
