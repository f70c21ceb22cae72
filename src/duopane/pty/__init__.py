from __future__ import annotations

from .relay import OutputRelay
from .session import SessionHandle

__all__ = ["OutputRelay", "SessionHandle"]
