"""Shared cookie helpers for FastAPI auth endpoints."""

from __future__ import annotations

from fastapi import Response

from sessionfort.config import SessionFortConfig
from sessionfort.core.schemas import AuthResponse


def set_auth_cookies(config: SessionFortConfig, response: Response, auth_response: AuthResponse) -> None:
    """Set the access and refresh cookies if cookie mode is enabled."""
    if config.cookie is None:
        return
    c = config.cookie
    for name, value, max_age in (
        (c.access_cookie_name, auth_response.tokens.access_token, config.access_token_expire_seconds),
        (c.refresh_cookie_name, auth_response.tokens.refresh_token, config.refresh_token_expire_seconds),
    ):
        response.set_cookie(
            key=name,
            value=value,
            max_age=max_age,
            secure=c.secure,
            httponly=c.httponly,
            samesite=c.samesite,
            path=c.path,
            domain=c.domain,
        )


def clear_auth_cookies(config: SessionFortConfig, response: Response) -> None:
    """Clear auth cookies on the response if cookie mode is enabled."""
    if config.cookie is None:
        return
    c = config.cookie
    response.delete_cookie(key=c.access_cookie_name, path=c.path, domain=c.domain)
    response.delete_cookie(key=c.refresh_cookie_name, path=c.path, domain=c.domain)


def read_refresh_token(config: SessionFortConfig, body_token: str | None, cookies: dict) -> str | None:
    """Prefer the token in the JSON body, fall back to the refresh cookie."""
    if body_token:
        return body_token
    if config.cookie is not None:
        return cookies.get(config.cookie.refresh_cookie_name)
    return None
