"""FastAPI dependencies — factory functions that produce dependencies bound to a SessionFort context."""

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sessionfort.core.auth import AuthContext
from sessionfort.core.schemas import UserResponse
from sessionfort.core.tokens import TokenExpiredError, TokenInvalidError, TokenKind
from sessionfort.repositories import user as user_repo


def create_current_user_dep(ctx: AuthContext, get_db: Callable):
    """Factory: create a FastAPI dependency that extracts and verifies the current user.

    The role is read from the user record, not the token, so a demoted user
    loses access as soon as the record changes.
    """
    cookie = ctx.config.cookie

    async def _extract_token(request: Request) -> str:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            return auth_header[7:]

        if cookie is not None:
            token = request.cookies.get(cookie.access_cookie_name)
            if token:
                return token

        raise HTTPException(
            status_code=401,
            detail={"error": "token_missing", "message": "No access token provided"},
        )

    async def current_user(
        request: Request,
        session: AsyncSession = Depends(get_db),
    ) -> UserResponse:
        token = await _extract_token(request)

        try:
            payload = ctx.issuer.verify(token, TokenKind.ACCESS)
        except TokenExpiredError:
            raise HTTPException(status_code=401, detail={"error": "token_expired", "message": "Access token has expired"})
        except TokenInvalidError:
            raise HTTPException(status_code=401, detail={"error": "token_invalid", "message": "Invalid access token"})

        user = await user_repo.get_user_by_id(session, payload.user_id)
        if user is None:
            raise HTTPException(status_code=401, detail={"error": "user_not_found", "message": "User no longer exists"})

        return UserResponse(
            id=user.id,
            email=user.email,
            role=user.role,
            created_at=user.created_at,
        )

    return current_user


def create_require_role_dep(current_user_dep: Callable, role: str | list[str]):
    """Factory: create a FastAPI dependency that requires one of the given roles."""
    allowed_roles = [role] if isinstance(role, str) else role

    async def check_role(
        user: UserResponse = Depends(current_user_dep),
    ) -> UserResponse:
        if user.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail={
                    "error": "insufficient_role",
                    "message": f"Requires one of: {', '.join(allowed_roles)}",
                },
            )
        return user

    return check_role
