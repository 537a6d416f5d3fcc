"""Auth service schemas — request/response models for the core auth logic."""

import uuid
from datetime import datetime

from pydantic import BaseModel


class AuthTokens(BaseModel):
    """Token pair returned after OTP verification or refresh."""
    access_token: str
    refresh_token: str
    expires_in: int


class AuthResponse(BaseModel):
    """Full auth response with user data and tokens."""
    user: "UserResponse"
    tokens: AuthTokens


class UserResponse(BaseModel):
    """Public user fields (no hashes, counters or lock state)."""
    id: uuid.UUID
    email: str
    role: str
    created_at: datetime


class OtpDispatched(BaseModel):
    """Returned by operations that email a one-time code instead of tokens."""
    message: str
    expires_in: int


class ResetOtpVerified(BaseModel):
    """Proof that the password reset code was confirmed."""
    user_id: uuid.UUID
    email: str
    message: str = "OTP verified successfully"


class RegisterRequest(BaseModel):
    """Email/password registration input."""
    email: str
    password: str
    role: str | None = None


class LoginRequest(BaseModel):
    """Email/password login input."""
    email: str
    password: str


class EmailRequest(BaseModel):
    """Input for endpoints that only need an address (request OTP, forgot password)."""
    email: str


class OtpVerifyRequest(BaseModel):
    """OTP verification input."""
    email: str
    code: str


class ResetPasswordRequest(BaseModel):
    """New password for an account whose reset code was verified."""
    email: str
    new_password: str


class RefreshRequest(BaseModel):
    """Refresh token input."""
    refresh_token: str | None = None


# Rebuild forward refs
AuthResponse.model_rebuild()
