"""Core auth service — register, login, OTP, refresh, logout, password reset.

Framework-agnostic business logic. All functions take an AsyncSession and the
AuthContext holding the configured hasher, token issuer, OTP manager and
ledger.

Login is two-step: a correct password only triggers an emailed code, and
tokens are issued by ``verify_otp``. Password reset is also two-step, and the
verified reset code stays on file until ``reset_password`` consumes it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from sessionfort.config import SessionFortConfig
from sessionfort.core.errors import (
    AccountLocked,
    AuthError,
    InvalidCredentials,
    InvalidRefreshToken,
    UserExists,
    UserNotFound,
    ValidationError,
)
from sessionfort.core.ledger import IssuedPair, RefreshTokenLedger
from sessionfort.core.otp import OtpManager
from sessionfort.core.schemas import (
    AuthResponse,
    AuthTokens,
    OtpDispatched,
    ResetOtpVerified,
    UserResponse,
)
from sessionfort.core.tokens import TokenIssuer, decode_unverified_subject
from sessionfort.models.otp_challenge import OtpPurpose
from sessionfort.models.user import SELF_ASSIGNABLE_ROLES, Role, User
from sessionfort.repositories import user as user_repo
from sessionfort.utils import utc_now
from sessionfort.utils.hashing import CostClass, SecretHasher

if TYPE_CHECKING:
    from sessionfort.email import EmailSender
    from sessionfort.events import EventCollector

__all__ = ["AuthContext", "AuthError"]

logger = logging.getLogger("sessionfort.auth")


@dataclass(frozen=True, slots=True)
class AuthContext:
    """The collaborators every auth operation needs, built once per SessionFort."""

    config: SessionFortConfig
    hasher: SecretHasher
    issuer: TokenIssuer
    otp: OtpManager
    ledger: RefreshTokenLedger

    @classmethod
    def build(cls, config: SessionFortConfig, *, email_sender: EmailSender) -> AuthContext:
        hasher = SecretHasher({
            CostClass.PASSWORD: config.password_cost,
            CostClass.OTP: config.otp_cost,
            CostClass.REFRESH: config.refresh_cost,
        })
        issuer = TokenIssuer.from_config(config)
        return cls(
            config=config,
            hasher=hasher,
            issuer=issuer,
            otp=OtpManager.from_config(config, hasher=hasher, sender=email_sender),
            ledger=RefreshTokenLedger(issuer=issuer, hasher=hasher),
        )


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _validate_email(email: str) -> str:
    """Basic email format validation — no dependencies, just a sanity check."""
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email address", code="invalid_email")
    return email


def _validate_password(password: str, min_length: int) -> None:
    if not password or len(password) < min_length:
        raise ValidationError(
            f"Password must be at least {min_length} characters",
            code="weak_password",
        )


def _validate_code(code: str, digits: int) -> str:
    code = (code or "").strip()
    if not re.fullmatch(rf"\d{{{digits}}}", code):
        raise ValidationError(f"A {digits}-digit code is required", code="invalid_code_format")
    return code


async def _get_user_or_404(session: AsyncSession, email: str) -> User:
    user = await user_repo.get_user_by_email(session, email, for_update=True)
    if user is None:
        raise UserNotFound()
    return user


def _user_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, email=user.email, role=user.role, created_at=user.created_at)


def _auth_response(ctx: AuthContext, pair: IssuedPair) -> AuthResponse:
    return AuthResponse(
        user=_user_response(pair.user),
        tokens=AuthTokens(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=ctx.config.access_token_expire_seconds,
        ),
    )


async def register(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    email: str,
    password: str,
    role: str | None = None,
    events: EventCollector | None = None,
) -> UserResponse:
    """Register a new user. No tokens are issued; the user logs in afterwards.

    Raises:
        ValidationError: Bad email, short password, or a role that cannot be
            self-assigned (only VENDOR and CUSTOMER can).
        UserExists: If email is already registered.
    """
    email = _validate_email(email)
    _validate_password(password, ctx.config.min_password_length)
    if role is None:
        role = Role.CUSTOMER.value
    elif role not in {r.value for r in SELF_ASSIGNABLE_ROLES}:
        raise ValidationError("Invalid role", code="invalid_role")

    existing = await user_repo.get_user_by_email(session, email)
    if existing is not None:
        raise UserExists()

    user = await user_repo.create_user(
        session,
        email=email,
        password_hash=ctx.hasher.hash(password, CostClass.PASSWORD),
        role=role,
    )
    logger.info("Registered user %s with role %s", user.id, role)

    if events is not None:
        from sessionfort.events import UserCreated

        events.collect("user_created", UserCreated(user_id=user.id, email=user.email, role=user.role))

    return _user_response(user)


async def login(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    email: str,
    password: str,
    events: EventCollector | None = None,
) -> OtpDispatched:
    """Check email and password, then email a login code. Never returns tokens.

    Unknown email and wrong password are indistinguishable. Five consecutive
    wrong passwords lock the account; the lock lifts by itself once it runs out.

    Raises:
        InvalidCredentials: Unknown email or wrong password.
        AccountLocked: The account is inside a lockout window.
        TooManyOtpRequests: Too many failed codes on file.
        DeliveryError: The code could not be emailed.
    """
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = await user_repo.get_user_by_email(session, email, for_update=True)
    if user is None:
        ctx.hasher.verify(password, ctx.hasher.absent_digest)
        _collect_login_failed(events, email, InvalidCredentials.default_code)
        raise InvalidCredentials()

    if user.is_locked():
        _collect_login_failed(events, email, AccountLocked.default_code)
        raise AccountLocked()

    if not ctx.hasher.verify(password, user.password_hash):
        lock_until = utc_now() + timedelta(seconds=ctx.config.lock_seconds)
        locked = await user_repo.register_failed_login(
            session, user,
            max_attempts=ctx.config.max_login_attempts,
            lock_until=lock_until,
        )
        await session.commit()
        _collect_login_failed(events, email, InvalidCredentials.default_code)
        if locked:
            logger.warning("Locked user %s until %s after repeated wrong passwords", user.id, lock_until)
            if events is not None:
                from sessionfort.events import AccountLocked as AccountLockedEvent

                events.collect("account_locked", AccountLockedEvent(
                    user_id=user.id, email=user.email, lock_until=lock_until,
                ))
        raise InvalidCredentials()

    await user_repo.reset_login_attempts(session, user)
    await ctx.otp.issue(session, user, OtpPurpose.LOGIN)
    _collect_otp_requested(events, user, OtpPurpose.LOGIN)

    return OtpDispatched(
        message="OTP sent to email for verification",
        expires_in=ctx.otp.policy(OtpPurpose.LOGIN).ttl_seconds,
    )


async def request_otp(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    email: str,
    events: EventCollector | None = None,
) -> OtpDispatched:
    """Email a fresh login code, replacing any code on file.

    Raises:
        UserNotFound: No account for this email.
        TooManyOtpRequests: Too many failed codes on file.
        DeliveryError: The code could not be emailed.
    """
    email = _validate_email(email)
    user = await _get_user_or_404(session, email)
    await ctx.otp.issue(session, user, OtpPurpose.LOGIN)
    _collect_otp_requested(events, user, OtpPurpose.LOGIN)

    return OtpDispatched(
        message="OTP sent to email",
        expires_in=ctx.otp.policy(OtpPurpose.LOGIN).ttl_seconds,
    )


async def verify_otp(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    email: str,
    code: str,
    events: EventCollector | None = None,
) -> AuthResponse:
    """Verify the login code and issue access + refresh tokens.

    Raises:
        UserNotFound: No account for this email.
        NoOtpRequested, OtpExpired, InvalidOtp, TooManyOtpAttempts: See OtpManager.verify.
    """
    email = (email or "").strip().lower()
    if not email or not code:
        raise ValidationError("Email and OTP are required")

    user = await _get_user_or_404(session, email)
    await ctx.otp.verify(session, user, OtpPurpose.LOGIN, code.strip())
    pair = await ctx.ledger.issue(session, user)
    logger.info("User %s passed OTP verification", user.id)

    if events is not None:
        from sessionfort.events import Login as LoginEvent

        events.collect("login", LoginEvent(user_id=user.id, email=user.email, role=user.role))

    return _auth_response(ctx, pair)


async def refresh(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    raw_refresh_token: str | None,
    events: EventCollector | None = None,
) -> AuthResponse:
    """Rotate a refresh token: the old one is revoked, a new pair is returned.

    The returned user fields are loaded fresh, so a role change shows up here.

    Raises:
        InvalidRefreshToken: Missing, malformed, expired or forged token.
        RefreshTokenReuseDetected: The token was already rotated; all of the
            user's sessions have been revoked.
    """
    if not raw_refresh_token:
        raise InvalidRefreshToken("No refresh token provided", code="refresh_token_missing")

    pair = await ctx.ledger.rotate(session, raw_refresh_token, events=events)

    if events is not None:
        from sessionfort.events import TokenRefreshed

        events.collect("token_refreshed", TokenRefreshed(user_id=pair.user.id))

    return _auth_response(ctx, pair)


async def logout(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    raw_refresh_token: str | None,
    events: EventCollector | None = None,
) -> int:
    """Logout — revoke every refresh token of the user the token names.

    Best effort: a missing or malformed token, or a storage failure, is logged
    and ignored. Returns the number of records revoked.
    """
    if not raw_refresh_token:
        return 0

    user_id = decode_unverified_subject(raw_refresh_token)
    if user_id is None:
        logger.debug("Logout with an undecodable refresh token")
        return 0

    try:
        revoked = await ctx.ledger.revoke_all(session, user_id)
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception("Logout could not revoke refresh tokens for user %s", user_id)
        return 0

    if events is not None:
        from sessionfort.events import Logout as LogoutEvent

        events.collect("logout", LogoutEvent(user_id=user_id, revoked=revoked))

    return revoked


async def forgot_password(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    email: str,
    events: EventCollector | None = None,
) -> OtpDispatched:
    """Email a password reset code.

    Raises:
        ValidationError: Malformed email.
        UserNotFound: No account for this email.
        TooManyOtpRequests: Too many failed reset codes on file.
        DeliveryError: The code could not be emailed.
    """
    email = _validate_email(email)
    user = await _get_user_or_404(session, email)
    await ctx.otp.issue(session, user, OtpPurpose.PASSWORD_RESET)

    if events is not None:
        from sessionfort.events import PasswordResetRequested

        events.collect("password_reset_requested", PasswordResetRequested(
            user_id=user.id, email=user.email,
        ))

    return OtpDispatched(
        message="Password reset OTP sent to email",
        expires_in=ctx.otp.policy(OtpPurpose.PASSWORD_RESET).ttl_seconds,
    )


async def verify_reset_otp(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    email: str,
    code: str,
    events: EventCollector | None = None,
) -> ResetOtpVerified:
    """Confirm the password reset code. The code stays on file for reset_password.

    Raises:
        ValidationError: Malformed email or code.
        UserNotFound: No account for this email.
        NoOtpRequested, OtpExpired, InvalidOtp, TooManyOtpAttempts: See OtpManager.verify.
    """
    email = _validate_email(email)
    code = _validate_code(code, ctx.config.otp_digits)
    user = await _get_user_or_404(session, email)
    await ctx.otp.verify(session, user, OtpPurpose.PASSWORD_RESET, code)

    if events is not None:
        from sessionfort.events import PasswordResetOtpVerified

        events.collect("password_reset_otp_verified", PasswordResetOtpVerified(
            user_id=user.id, email=user.email,
        ))

    return ResetOtpVerified(user_id=user.id, email=user.email)


async def reset_password(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    email: str,
    new_password: str,
    events: EventCollector | None = None,
) -> UserResponse:
    """Set a new password after the reset code was verified.

    Retires the reset code and deletes every refresh token of the user, so
    all devices must log in again.

    Raises:
        ValidationError: Malformed email or short password.
        UserNotFound: No account for this email.
        NoOtpRequested: No verified reset code on file.
        OtpExpired: The verified code ran out before the reset.
    """
    email = _validate_email(email)
    _validate_password(new_password, ctx.config.min_reset_password_length)
    user = await _get_user_or_404(session, email)
    challenge = await ctx.otp.require_verified(session, user, OtpPurpose.PASSWORD_RESET)

    await user_repo.update_user(
        session, user, password_hash=ctx.hasher.hash(new_password, CostClass.PASSWORD),
    )
    await ctx.otp.consume(session, challenge)
    deleted = await ctx.ledger.delete_all(session, user.id)
    logger.info("Password reset for user %s; dropped %d refresh records", user.id, deleted)

    if events is not None:
        from sessionfort.events import PasswordReset as PasswordResetEvent

        events.collect("password_reset", PasswordResetEvent(user_id=user.id))

    return _user_response(user)


async def bootstrap_super_admin(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    email: str,
    password: str,
    events: EventCollector | None = None,
) -> UserResponse | None:
    """Create the SUPER_ADMIN account unless one already exists.

    Returns the new admin, or None when there already is one.
    """
    existing = await user_repo.get_user_by_role(session, Role.SUPER_ADMIN.value)
    if existing is not None:
        return None

    email = _validate_email(email)
    _validate_password(password, ctx.config.min_password_length)
    if await user_repo.get_user_by_email(session, email) is not None:
        raise UserExists()

    user = await user_repo.create_user(
        session,
        email=email,
        password_hash=ctx.hasher.hash(password, CostClass.PASSWORD),
        role=Role.SUPER_ADMIN.value,
    )
    logger.info("Created SUPER_ADMIN %s", user.id)

    if events is not None:
        from sessionfort.events import UserCreated

        events.collect("user_created", UserCreated(user_id=user.id, email=user.email, role=user.role))

    return _user_response(user)


async def reset_otp_attempts(
    session: AsyncSession,
    *,
    ctx: AuthContext,
    email: str,
    purpose: OtpPurpose,
) -> bool:
    """Lift the OTP attempt cap for a user. Returns False if nothing was on file.

    Raises:
        UserNotFound: No account for this email.
    """
    user = await _get_user_or_404(session, email.strip().lower())
    return await ctx.otp.reset_attempts(session, user, purpose)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _collect_login_failed(events: EventCollector | None, email: str, reason: str) -> None:
    if events is not None:
        from sessionfort.events import LoginFailed

        events.collect("login_failed", LoginFailed(email=email, reason=reason))


def _collect_otp_requested(events: EventCollector | None, user: User, purpose: OtpPurpose) -> None:
    if events is not None:
        from sessionfort.events import OtpRequested

        events.collect("otp_requested", OtpRequested(
            user_id=user.id, email=user.email, purpose=purpose.value,
        ))
