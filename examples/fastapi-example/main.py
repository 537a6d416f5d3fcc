"""Example app using SessionFort.

Password login is followed by an emailed one-time code; only the code step
hands out tokens. Refresh tokens rotate on every use, and replaying an old
one logs the user out everywhere.

Environment:
  SESSIONFORT_DATABASE_URL          e.g. sqlite+aiosqlite:///./sessionfort.db
  SESSIONFORT_ACCESS_TOKEN_SECRET   any long random string
  SESSIONFORT_REFRESH_TOKEN_SECRET  a different long random string
  SENDGRID_API_KEY / SENDGRID_FROM  optional; without them codes are logged
  SESSIONFORT_SUPER_ADMIN_EMAIL / SESSIONFORT_SUPER_ADMIN_PASSWORD  optional

Run:  uvicorn main:app --reload --port 8000
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from sessionfort import (
    ConsoleEmailSender,
    CookieConfig,
    SendGridEmailSender,
    SessionFort,
    SessionFortConfig,
)
from sessionfort.core.schemas import UserResponse

logging.basicConfig(level=logging.INFO)

if os.environ.get("SENDGRID_API_KEY"):
    sender = SendGridEmailSender(os.environ["SENDGRID_API_KEY"], os.environ["SENDGRID_FROM"])
else:
    sender = ConsoleEmailSender()  # prints codes to the log, dev only

auth = SessionFort.from_config(
    SessionFortConfig.from_env(cookie=CookieConfig(secure=False)),  # secure=False for localhost dev
    email_sender=sender,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await auth.migrate()
    admin_email = os.environ.get("SESSIONFORT_SUPER_ADMIN_EMAIL")
    admin_password = os.environ.get("SESSIONFORT_SUPER_ADMIN_PASSWORD")
    if admin_email and admin_password:
        await auth.bootstrap_super_admin(admin_email, admin_password)
    yield
    await auth.dispose()


app = FastAPI(title="SessionFort Example", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Event hooks — audit logs, alerting, analytics.
# Hooks fire after the DB transaction ends. Errors are logged, never propagate.
# ---------------------------------------------------------------------------


@auth.on("account_locked")
async def on_account_locked(event):
    """Tell the owner someone is guessing their password."""
    print(f"[hook] Account locked: {event.email} until {event.lock_until}")


@auth.on("refresh_token_reused")
async def on_reuse(event):
    """A stolen refresh token was probably replayed."""
    print(f"[hook] Refresh token reuse for {event.user_id}: {event.revoked} sessions revoked")


@auth.on("password_reset")
async def on_password_reset(event):
    print(f"[hook] Password reset for {event.user_id}")


# Auth router — /auth/register, /auth/login, /auth/otp, /auth/otp/verify,
#               /auth/refresh, /auth/logout, /auth/forgot-password,
#               /auth/verify-reset-otp, /auth/reset-password, /auth/me
app.include_router(auth.fastapi_router(), prefix="/auth")


@app.get("/profile")
async def profile(user: UserResponse = Depends(auth.current_user)):
    """Protected route — requires a valid access token."""
    return {"message": f"Hello, {user.email}!", "user": user.model_dump(mode="json")}


@app.get("/vendor/dashboard")
async def vendor_dashboard(user: UserResponse = Depends(auth.require_role(["VENDOR", "SUPER_ADMIN"]))):
    return {"message": "Vendor area", "role": user.role}


@app.get("/admin")
async def admin_only(user: UserResponse = Depends(auth.require_role("SUPER_ADMIN"))):
    return {"message": "Welcome, admin!"}
