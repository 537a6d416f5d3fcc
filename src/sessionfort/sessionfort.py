"""SessionFort — instance-based auth configuration and entry point."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from sessionfort.config import CookieConfig, HashCost, OtpPolicy, SessionFortConfig
from sessionfort.core.auth import AuthContext
from sessionfort.core.errors import AuthError
from sessionfort.db import create_engine, create_session_factory, get_session
from sessionfort.email import ConsoleEmailSender, EmailSender
from sessionfort.events import EventCollector, HookRegistry, _current_collector
from sessionfort.models.otp_challenge import OtpPurpose

if TYPE_CHECKING:
    from fastapi import APIRouter

    from sessionfort.core.schemas import (
        AuthResponse,
        OtpDispatched,
        ResetOtpVerified,
        UserResponse,
    )

logger = logging.getLogger("sessionfort")


class SessionFort:
    """Main SessionFort instance — holds all config and database connection state.

    Args:
        database_url: Required async database URL (e.g. postgresql+asyncpg://...).
        access_token_secret: HMAC secret for access tokens.
        refresh_token_secret: HMAC secret for refresh tokens. Must differ from
            the access secret.
        email_sender: Delivers OTP emails. Defaults to ConsoleEmailSender,
            which only logs them (development use).
        access_token_ttl: Access token lifetime in seconds (default 900 = 15 min).
        refresh_token_ttl: Refresh token lifetime in seconds (default 604800 = 7 days).
        jwt_issuer: JWT issuer claim (default "sessionfort").
        cookie: CookieConfig or None. None = bearer-only, no cookies set.
        login_otp_ttl: Login code lifetime in seconds (default 300).
        reset_otp_ttl: Password reset code lifetime in seconds (default 600).
        max_otp_attempts: Failed code checks before a purpose is capped (default 5).
        max_login_attempts: Wrong passwords before the account locks (default 5).
        lock_seconds: Lockout length in seconds (default 3600).
        email_timeout: Seconds to wait for email delivery (default 10).
        db_timeout: Seconds to wait for a database connection (default 30).
        password_hash_cost: argon2 parameters for passwords and OTP codes.
    """

    def __init__(
        self,
        database_url: str,
        *,
        access_token_secret: str,
        refresh_token_secret: str,
        email_sender: EmailSender | None = None,
        access_token_ttl: int = 900,
        refresh_token_ttl: int = 60 * 60 * 24 * 7,
        jwt_issuer: str = "sessionfort",
        cookie: CookieConfig | None = None,
        login_otp_ttl: int = 300,
        reset_otp_ttl: int = 600,
        max_otp_attempts: int = 5,
        max_login_attempts: int = 5,
        lock_seconds: int = 3600,
        email_timeout: float = 10.0,
        db_timeout: float = 30.0,
        password_hash_cost: HashCost | None = None,
    ) -> None:
        cost = password_hash_cost or HashCost()
        config = SessionFortConfig(
            database_url=database_url,
            access_token_secret=access_token_secret,
            refresh_token_secret=refresh_token_secret,
            access_token_expire_seconds=access_token_ttl,
            refresh_token_expire_seconds=refresh_token_ttl,
            jwt_issuer=jwt_issuer,
            cookie=cookie,
            login_otp=OtpPolicy(ttl_seconds=login_otp_ttl, max_attempts=max_otp_attempts),
            reset_otp=OtpPolicy(ttl_seconds=reset_otp_ttl, max_attempts=max_otp_attempts),
            max_login_attempts=max_login_attempts,
            lock_seconds=lock_seconds,
            email_timeout_seconds=email_timeout,
            db_timeout_seconds=db_timeout,
            password_cost=cost,
            otp_cost=cost,
        )
        self._setup(config, email_sender)

    @classmethod
    def from_config(
        cls, config: SessionFortConfig, *, email_sender: EmailSender | None = None,
    ) -> SessionFort:
        """Build an instance from a ready config (e.g. SessionFortConfig.from_env())."""
        instance = cls.__new__(cls)
        instance._setup(config, email_sender)
        return instance

    def _setup(self, config: SessionFortConfig, email_sender: EmailSender | None) -> None:
        self._config = config
        self._ctx = AuthContext.build(config, email_sender=email_sender or ConsoleEmailSender())
        self._engine = create_engine(config.database_url, timeout=config.db_timeout_seconds)
        self._session_factory = create_session_factory(self._engine)
        self._current_user_dep = None
        self._hooks = HookRegistry()

    @property
    def config(self) -> SessionFortConfig:
        """Read-only access to the internal config."""
        return self._config

    @property
    def context(self) -> AuthContext:
        """The hasher, token issuer, OTP manager and ledger in use."""
        return self._ctx

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Access the async session factory (e.g., for testing)."""
        return self._session_factory

    @property
    def hooks(self) -> HookRegistry:
        """Access the hook registry."""
        return self._hooks

    # ------ Event hooks ------

    def on(self, event_name: str):
        """Decorator to register an event hook.

        Usage:
            @auth.on("refresh_token_reused")
            async def handle(event):
                alert(event.user_id)
        """
        def decorator(fn):
            self._hooks.register(event_name, fn)
            return fn
        return decorator

    def add_hook(self, event_name: str, callback) -> None:
        """Register an event hook callback programmatically."""
        self._hooks.register(event_name, callback)

    # ------ Database session helpers ------

    def get_session(self) -> AsyncGenerator[AsyncSession]:
        """Context manager for service-level code (non-FastAPI)."""
        return get_session(self._session_factory)

    async def _get_db(self) -> AsyncGenerator[AsyncSession]:
        """FastAPI dependency: yields a request-scoped session with event flushing.

        Endpoints turn an AuthError into an HTTPException, so both count as a
        domain failure whose committed side effects still emit events.
        """
        from fastapi import HTTPException

        collector = EventCollector(self._hooks)
        token = _current_collector.set(collector)
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except (AuthError, HTTPException):
                await session.rollback()
                await collector.flush()
                raise
            except Exception:
                await session.rollback()
                collector.discard()
                raise
            finally:
                _current_collector.reset(token)
        # Post-commit: flush collected events
        await collector.flush()

    async def _run(self, operation, **kwargs):
        """Run a core operation in its own transaction and emit its events.

        On an AuthError, events for side effects the operation committed
        before raising (lockouts, mass revocation) are still emitted.
        """
        collector = EventCollector(self._hooks)
        try:
            async with get_session(self._session_factory) as session:
                result = await operation(session, ctx=self._ctx, events=collector, **kwargs)
        except AuthError:
            await collector.flush()
            raise
        except Exception:
            collector.discard()
            raise
        await collector.flush()
        return result

    # ------ Core auth operations ------

    async def register(self, email: str, password: str, role: str | None = None) -> UserResponse:
        """Register a user. Only VENDOR and CUSTOMER can be self-assigned.

        Raises:
            ValidationError: Bad email, short password or disallowed role.
            UserExists: If email is already registered.
        """
        from sessionfort.core.auth import register

        return await self._run(register, email=email, password=password, role=role)

    async def login(self, email: str, password: str) -> OtpDispatched:
        """Check credentials and email a login code. No tokens are returned.

        Raises:
            InvalidCredentials: Unknown email or wrong password.
            AccountLocked: Too many wrong passwords recently.
            TooManyOtpRequests, DeliveryError: The code could not be issued.
        """
        from sessionfort.core.auth import login

        return await self._run(login, email=email, password=password)

    async def request_otp(self, email: str) -> OtpDispatched:
        """Email a fresh login code, replacing any previous one."""
        from sessionfort.core.auth import request_otp

        return await self._run(request_otp, email=email)

    async def verify_otp(self, email: str, code: str) -> AuthResponse:
        """Verify the login code and issue an access/refresh pair."""
        from sessionfort.core.auth import verify_otp

        return await self._run(verify_otp, email=email, code=code)

    async def refresh(self, raw_refresh_token: str) -> AuthResponse:
        """Exchange a refresh token for a new pair (the old one is revoked).

        Raises:
            InvalidRefreshToken: Missing, malformed, expired or forged.
            RefreshTokenReuseDetected: Replay of a rotated token; every
                session of the user has been revoked.
        """
        from sessionfort.core.auth import refresh

        return await self._run(refresh, raw_refresh_token=raw_refresh_token)

    async def logout(self, raw_refresh_token: str | None) -> None:
        """Logout — revoke every refresh token of the token's user.

        Silently succeeds even if the token is invalid or the database fails.
        """
        from sessionfort.core.auth import logout

        try:
            await self._run(logout, raw_refresh_token=raw_refresh_token)
        except Exception:
            logger.exception("Logout failed")

    async def forgot_password(self, email: str) -> OtpDispatched:
        """Email a password reset code."""
        from sessionfort.core.auth import forgot_password

        return await self._run(forgot_password, email=email)

    async def verify_reset_otp(self, email: str, code: str) -> ResetOtpVerified:
        """Confirm the password reset code; follow up with reset_password."""
        from sessionfort.core.auth import verify_reset_otp

        return await self._run(verify_reset_otp, email=email, code=code)

    async def reset_password(self, email: str, new_password: str) -> UserResponse:
        """Set a new password once the reset code was verified.

        Every refresh token of the user is deleted, ending all sessions.
        """
        from sessionfort.core.auth import reset_password

        return await self._run(reset_password, email=email, new_password=new_password)

    # ------ Operator actions ------

    async def bootstrap_super_admin(self, email: str, password: str) -> UserResponse | None:
        """Create the SUPER_ADMIN account if none exists yet.

        Returns the new admin, or None when one already exists.
        """
        from sessionfort.core.auth import bootstrap_super_admin

        return await self._run(bootstrap_super_admin, email=email, password=password)

    async def reset_otp_attempts(self, email: str, purpose: OtpPurpose | str) -> bool:
        """Lift the OTP attempt cap for a user after a cooldown decided by the caller."""
        from sessionfort.core.auth import reset_otp_attempts

        async with get_session(self._session_factory) as session:
            return await reset_otp_attempts(
                session, ctx=self._ctx, email=email, purpose=OtpPurpose(purpose),
            )

    async def cleanup_expired_tokens(self) -> int:
        """Delete expired and revoked refresh token records.

        Returns:
            Number of records deleted.
        """
        async with get_session(self._session_factory) as session:
            return await self._ctx.ledger.purge_expired(session)

    # ------ FastAPI integration ------

    def fastapi_router(self) -> APIRouter:
        """Create a FastAPI router with all auth endpoints, bound to this instance.

        Includes: register, login, otp, otp/verify, refresh, logout,
        forgot-password, verify-reset-otp, reset-password, me.

        Note: Mount this under a prefix (e.g. /auth).
        """
        from sessionfort.integrations.fastapi.router import create_auth_router

        return create_auth_router(self._ctx, self._get_db, self.current_user)

    @property
    def current_user(self):
        """FastAPI dependency: get the current authenticated user.

        Usage:
            @app.get("/profile")
            async def profile(user=Depends(auth.current_user)):
                ...
        """
        if self._current_user_dep is None:
            from sessionfort.integrations.fastapi.deps import create_current_user_dep

            self._current_user_dep = create_current_user_dep(self._ctx, self._get_db)
        return self._current_user_dep

    def require_role(self, role: str | list[str]):
        """FastAPI dependency factory: require one of the given roles.

        Usage:
            @app.get("/admin")
            async def admin(user=Depends(auth.require_role("SUPER_ADMIN"))):
                ...
        """
        from sessionfort.integrations.fastapi.deps import create_require_role_dep

        return create_require_role_dep(self.current_user, role)

    # ------ Migrations ------

    async def migrate(self) -> None:
        """Run pending database migrations. Safe to call on every startup.

        Uses bundled Alembic migrations to create or update the schema.
        Tracks state in the ``sessionfort_alembic_version`` table (separate
        from any developer Alembic setup).
        """
        from pathlib import Path

        from alembic.config import Config

        config = Config()
        config.set_main_option(
            "script_location",
            str(Path(__file__).parent / "migrations"),
        )

        async with self._engine.begin() as conn:
            await conn.run_sync(self._run_upgrade, config)

    @staticmethod
    def _run_upgrade(connection, config) -> None:
        from alembic import command

        config.attributes["connection"] = connection
        command.upgrade(config, "head")

    # ------ Lifecycle ------

    async def dispose(self) -> None:
        """Dispose the database engine (for clean shutdown)."""
        await self._engine.dispose()
