"""SessionFort event system — typed events, hook registry, and event collection.

Developers register hooks via @auth.on("event_name") to react to auth events
(audit logs, alerting on token theft, syncing external systems). Hooks run
after the transaction ends and are fail-open (errors logged, never break the
auth flow).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable

logger = logging.getLogger("sessionfort.events")


# ---------------------------------------------------------------------------
# Event dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Event:
    """Base event — all events carry a timestamp."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class UserCreated(Event):
    """Fired when a new user registers (or the super admin is bootstrapped)."""
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)
    email: str = ""
    role: str = ""


@dataclass(frozen=True, slots=True)
class LoginFailed(Event):
    """Fired when a password check fails or the account is locked."""
    email: str = ""
    reason: str = ""


@dataclass(frozen=True, slots=True)
class AccountLocked(Event):
    """Fired when repeated wrong passwords lock an account."""
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)
    email: str = ""
    lock_until: datetime | None = None


@dataclass(frozen=True, slots=True)
class OtpRequested(Event):
    """Fired after a one-time code was delivered. Carries no code."""
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)
    email: str = ""
    purpose: str = ""


@dataclass(frozen=True, slots=True)
class Login(Event):
    """Fired when the second factor is verified and tokens are issued."""
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)
    email: str = ""
    role: str = ""


@dataclass(frozen=True, slots=True)
class TokenRefreshed(Event):
    """Fired on successful refresh token rotation."""
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True, slots=True)
class RefreshTokenReused(Event):
    """Fired when a stale or forged refresh token triggers mass revocation."""
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)
    revoked: int = 0
    reason: str = ""


@dataclass(frozen=True, slots=True)
class Logout(Event):
    """Fired when a user logs out."""
    user_id: uuid.UUID | None = None
    revoked: int = 0


@dataclass(frozen=True, slots=True)
class PasswordResetRequested(Event):
    """Fired after a password reset code was delivered."""
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)
    email: str = ""


@dataclass(frozen=True, slots=True)
class PasswordResetOtpVerified(Event):
    """Fired when a password reset code is confirmed (reset not yet done)."""
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)
    email: str = ""


@dataclass(frozen=True, slots=True)
class PasswordReset(Event):
    """Fired when a password is successfully reset."""
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)


# ---------------------------------------------------------------------------
# Event name mapping
# ---------------------------------------------------------------------------

EVENT_MAP: dict[str, type[Event]] = {
    "user_created": UserCreated,
    "login_failed": LoginFailed,
    "account_locked": AccountLocked,
    "otp_requested": OtpRequested,
    "login": Login,
    "token_refreshed": TokenRefreshed,
    "refresh_token_reused": RefreshTokenReused,
    "logout": Logout,
    "password_reset_requested": PasswordResetRequested,
    "password_reset_otp_verified": PasswordResetOtpVerified,
    "password_reset": PasswordReset,
}


# ---------------------------------------------------------------------------
# Hook registry
# ---------------------------------------------------------------------------

HookCallback = Callable[..., Any]


class HookRegistry:
    """Registry for event hook callbacks. Supports multiple listeners per event."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[HookCallback]] = {}

    def register(self, event_name: str, callback: HookCallback) -> None:
        """Register a callback for an event name."""
        if event_name not in EVENT_MAP:
            raise ValueError(
                f"Unknown event '{event_name}'. "
                f"Valid events: {', '.join(sorted(EVENT_MAP))}"
            )
        self._hooks.setdefault(event_name, []).append(callback)

    def get_hooks(self, event_name: str) -> list[HookCallback]:
        """Get all registered callbacks for an event name."""
        return self._hooks.get(event_name, [])

    async def emit(self, event_name: str, event: Event) -> None:
        """Fire all registered callbacks for an event. Fail-open: errors are logged."""
        for callback in self.get_hooks(event_name):
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(event)
                else:
                    loop = asyncio.get_running_loop()
                    await loop.run_in_executor(None, callback, event)
            except Exception:
                logger.exception(
                    "Hook error in '%s' handler %s.%s",
                    event_name,
                    callback.__module__,
                    callback.__qualname__,
                )


# ---------------------------------------------------------------------------
# Event collector
# ---------------------------------------------------------------------------

class EventCollector:
    """Collects events during a transaction, emits them once it has ended.

    Events for committed security side effects (lockouts, mass revocation) are
    collected right before the failure is raised, so they are emitted even when
    the request itself fails.
    """

    def __init__(self, registry: HookRegistry) -> None:
        self._registry = registry
        self._pending: list[tuple[str, Event]] = []

    def collect(self, event_name: str, event: Event) -> None:
        """Add an event to the pending list (called inside transaction)."""
        self._pending.append((event_name, event))

    def discard(self) -> None:
        """Drop pending events whose transaction was rolled back."""
        self._pending.clear()

    async def flush(self) -> None:
        """Emit all pending events. Clears the list."""
        events = self._pending.copy()
        self._pending.clear()
        for event_name, event in events:
            await self._registry.emit(event_name, event)


# ---------------------------------------------------------------------------
# ContextVar for request-scoped collector (used by FastAPI integration)
# ---------------------------------------------------------------------------

_current_collector: ContextVar[EventCollector | None] = ContextVar(
    "_current_collector", default=None,
)


def get_collector() -> EventCollector | None:
    """Get the current request's event collector (if any)."""
    return _current_collector.get()
