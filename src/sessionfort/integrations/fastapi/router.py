"""FastAPI auth router — factory that creates auth endpoints bound to a SessionFort context."""

import logging
from collections.abc import Callable
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from sessionfort.core.auth import (
    AuthContext,
    AuthError,
    forgot_password,
    login,
    logout,
    refresh,
    register,
    request_otp,
    reset_password,
    verify_otp,
    verify_reset_otp,
)
from sessionfort.core.schemas import (
    AuthResponse,
    EmailRequest,
    LoginRequest,
    OtpDispatched,
    OtpVerifyRequest,
    RefreshRequest,
    RegisterRequest,
    ResetOtpVerified,
    ResetPasswordRequest,
    UserResponse,
)
from sessionfort.events import get_collector
from sessionfort.integrations.fastapi.cookies import (
    clear_auth_cookies,
    read_refresh_token,
    set_auth_cookies,
)

logger = logging.getLogger("sessionfort.integrations.fastapi")


def _auth_error_detail(e: AuthError) -> dict:
    """Build HTTPException detail dict from an AuthError."""
    detail = {"error": e.code, "message": e.message}
    if e.extra:
        detail.update(e.extra)
    return detail


def _http_error(e: AuthError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=_auth_error_detail(e))


def create_auth_router(ctx: AuthContext, get_db: Callable, current_user_dep: Callable) -> APIRouter:
    """Create a FastAPI router with all auth endpoints.

    Args:
        ctx: The AuthContext of the owning SessionFort instance.
        get_db: An async generator dependency that yields AsyncSession.
        current_user_dep: Dependency resolving the bearer/cookie user.
    """
    router = APIRouter(tags=["auth"])
    config = ctx.config

    @router.post("/register", response_model=UserResponse, status_code=201)
    async def register_endpoint(
        data: RegisterRequest,
        session: Annotated[AsyncSession, Depends(get_db)],
    ):
        """Register a new user with email, password and an optional role."""
        try:
            return await register(
                session, ctx=ctx, email=data.email, password=data.password,
                role=data.role, events=get_collector(),
            )
        except AuthError as e:
            raise _http_error(e)

    @router.post("/login", response_model=OtpDispatched)
    async def login_endpoint(
        data: LoginRequest,
        session: Annotated[AsyncSession, Depends(get_db)],
    ):
        """Check email and password; a login code is emailed on success."""
        try:
            return await login(
                session, ctx=ctx, email=data.email, password=data.password,
                events=get_collector(),
            )
        except AuthError as e:
            raise _http_error(e)

    @router.post("/otp", response_model=OtpDispatched)
    async def otp_endpoint(
        data: EmailRequest,
        session: Annotated[AsyncSession, Depends(get_db)],
    ):
        """Request a fresh login code."""
        try:
            return await request_otp(session, ctx=ctx, email=data.email, events=get_collector())
        except AuthError as e:
            raise _http_error(e)

    @router.post("/otp/verify", response_model=AuthResponse)
    async def otp_verify_endpoint(
        data: OtpVerifyRequest,
        response: Response,
        session: Annotated[AsyncSession, Depends(get_db)],
    ):
        """Verify the login code and receive tokens."""
        try:
            result = await verify_otp(
                session, ctx=ctx, email=data.email, code=data.code, events=get_collector(),
            )
        except AuthError as e:
            raise _http_error(e)

        set_auth_cookies(config, response, result)
        return result

    @router.post("/refresh", response_model=AuthResponse)
    async def refresh_endpoint(
        request: Request,
        response: Response,
        session: Annotated[AsyncSession, Depends(get_db)],
        data: RefreshRequest | None = None,
    ):
        """Rotate the refresh token and get a new pair."""
        raw_refresh_token = read_refresh_token(
            config, data.refresh_token if data else None, request.cookies,
        )
        try:
            result = await refresh(
                session, ctx=ctx, raw_refresh_token=raw_refresh_token, events=get_collector(),
            )
        except AuthError as e:
            clear_auth_cookies(config, response)
            raise _http_error(e)

        set_auth_cookies(config, response, result)
        return result

    @router.post("/logout", status_code=204)
    async def logout_endpoint(
        request: Request,
        response: Response,
        session: Annotated[AsyncSession, Depends(get_db)],
        data: RefreshRequest | None = None,
    ):
        """Logout — revoke the user's refresh tokens and clear cookies."""
        raw_refresh_token = read_refresh_token(
            config, data.refresh_token if data else None, request.cookies,
        )
        try:
            await logout(
                session, ctx=ctx, raw_refresh_token=raw_refresh_token, events=get_collector(),
            )
        except Exception:
            logger.exception("Logout failed")
        clear_auth_cookies(config, response)

    @router.post("/forgot-password", response_model=OtpDispatched)
    async def forgot_password_endpoint(
        data: EmailRequest,
        session: Annotated[AsyncSession, Depends(get_db)],
    ):
        """Email a password reset code."""
        try:
            return await forgot_password(session, ctx=ctx, email=data.email, events=get_collector())
        except AuthError as e:
            raise _http_error(e)

    @router.post("/verify-reset-otp", response_model=ResetOtpVerified)
    async def verify_reset_otp_endpoint(
        data: OtpVerifyRequest,
        session: Annotated[AsyncSession, Depends(get_db)],
    ):
        """Confirm the password reset code."""
        try:
            return await verify_reset_otp(
                session, ctx=ctx, email=data.email, code=data.code, events=get_collector(),
            )
        except AuthError as e:
            raise _http_error(e)

    @router.post("/reset-password", response_model=UserResponse)
    async def reset_password_endpoint(
        data: ResetPasswordRequest,
        session: Annotated[AsyncSession, Depends(get_db)],
    ):
        """Set a new password after the reset code was confirmed."""
        try:
            return await reset_password(
                session, ctx=ctx, email=data.email, new_password=data.new_password,
                events=get_collector(),
            )
        except AuthError as e:
            raise _http_error(e)

    @router.get("/me", response_model=UserResponse)
    async def me_endpoint(
        user: Annotated[UserResponse, Depends(current_user_dep)],
    ):
        """Get the current authenticated user's profile."""
        return user

    return router
