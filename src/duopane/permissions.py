"""Approval flow for agent writes into the shared shell."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum

import anyio

from .logging import get_logger
from .model import PendingWrite, TrustLevel, WriteOutcome, WriteStatus

logger = get_logger(__name__)

MAX_PENDING_WARN = 32

Executor = Callable[[bytes, str | None], Awaitable[WriteOutcome]]
RequestHook = Callable[[PendingWrite], None]
ResolvedHook = Callable[[str, bool, str | None], None]


class Decision(StrEnum):
    EXECUTE = "execute"
    ASK = "ask"


def is_password_mode(*, echo: bool, canonical: bool) -> bool:
    return not echo and canonical


@dataclass(slots=True)
class PermissionPolicy:
    trust_level: TrustLevel = TrustLevel.ASK_FIRST
    first_approval_granted: bool = False

    def set_trust_level(self, level: TrustLevel) -> None:
        # A new level starts over; ask-first must be earned again.
        self.trust_level = TrustLevel(level)
        self.first_approval_granted = False

    def record_approval(self) -> None:
        if self.trust_level is TrustLevel.ASK_FIRST:
            self.first_approval_granted = True


def decide(policy: PermissionPolicy, *, password_mode: bool) -> Decision:
    if password_mode:
        return Decision.ASK
    match policy.trust_level:
        case TrustLevel.ALWAYS_ALLOW:
            return Decision.EXECUTE
        case TrustLevel.ASK_FIRST if policy.first_approval_granted:
            return Decision.EXECUTE
        case _:
            return Decision.ASK


@dataclass(slots=True)
class _Slot:
    request: PendingWrite
    event: anyio.Event = field(default_factory=anyio.Event)
    approved: bool = False
    reason: str | None = None


class PermissionGateway:
    """Queues agent writes that need the user's say-so.

    ``submit`` either executes immediately or parks the request until
    ``resolve`` (or ``deny_all``) is called, then reports a ``WriteOutcome``.
    """

    def __init__(
        self,
        policy: PermissionPolicy | None = None,
        *,
        approval_timeout_s: float | None = None,
        on_request: RequestHook | None = None,
        on_resolved: ResolvedHook | None = None,
    ) -> None:
        self.policy = policy if policy is not None else PermissionPolicy()
        self.approval_timeout_s = approval_timeout_s
        self._on_request = on_request
        self._on_resolved = on_resolved
        self._pending: dict[str, _Slot] = {}

    def pending(self) -> list[PendingWrite]:
        return [slot.request for slot in self._pending.values()]

    async def submit(
        self,
        data: bytes,
        description: str,
        *,
        password_mode: bool,
        execute: Executor,
    ) -> WriteOutcome:
        decision = decide(self.policy, password_mode=password_mode)
        if decision is Decision.EXECUTE:
            logger.info(
                "permission.auto_approved",
                trust_level=self.policy.trust_level.value,
                size=len(data),
            )
            return await execute(data, None)

        request = PendingWrite(
            request_id=uuid.uuid4().hex,
            data=data,
            description=description,
            trust_level=self.policy.trust_level,
            password_mode=password_mode,
            created_at=time.time(),
        )
        slot = _Slot(request)
        self._pending[request.request_id] = slot
        logger.info(
            "permission.requested",
            request_id=request.request_id,
            trust_level=request.trust_level.value,
            password_mode=password_mode,
            size=request.size,
        )
        if len(self._pending) > MAX_PENDING_WARN:
            logger.warning("permission.max_pending", count=len(self._pending))
        if self._on_request is not None:
            self._on_request(request)

        try:
            if self.approval_timeout_s is None:
                await slot.event.wait()
            else:
                with anyio.move_on_after(self.approval_timeout_s):
                    await slot.event.wait()
        finally:
            self._pending.pop(request.request_id, None)

        if not slot.event.is_set():
            logger.warning("permission.timeout", request_id=request.request_id)
            if self._on_resolved is not None:
                self._on_resolved(request.request_id, False, "timeout")
            return WriteOutcome(
                status=WriteStatus.TIMEOUT,
                message="No decision from the user before the approval timeout.",
                request_id=request.request_id,
            )
        if not slot.approved:
            return WriteOutcome(
                status=WriteStatus.DENIED,
                message=slot.reason or "The user denied the write.",
                request_id=request.request_id,
            )
        self.policy.record_approval()
        return await execute(data, request.request_id)

    def resolve(self, request_id: str, *, approved: bool, reason: str | None = None) -> bool:
        slot = self._pending.get(request_id)
        if slot is None or slot.event.is_set():
            logger.warning("permission.unknown_request", request_id=request_id)
            return False
        slot.approved = approved
        slot.reason = reason
        slot.event.set()
        logger.info(
            "permission.resolved", request_id=request_id, approved=approved, reason=reason
        )
        if self._on_resolved is not None:
            self._on_resolved(request_id, approved, reason)
        return True

    def deny_all(self, reason: str) -> int:
        denied = 0
        for request_id, slot in list(self._pending.items()):
            if slot.event.is_set():
                continue
            self.resolve(request_id, approved=False, reason=reason)
            denied += 1
        if denied:
            logger.info("permission.denied_all", count=denied, reason=reason)
        return denied
