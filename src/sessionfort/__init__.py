"""SessionFort — password + email OTP authentication with rotating refresh tokens."""

__version__ = "0.1.0"

from sessionfort.config import CookieConfig, HashCost, OtpPolicy, SessionFortConfig
from sessionfort.core.errors import (
    AccountLocked,
    AuthError,
    DeliveryError,
    InvalidCredentials,
    InvalidOtp,
    InvalidRefreshToken,
    NoOtpRequested,
    OtpExpired,
    RefreshTokenReuseDetected,
    TooManyOtpAttempts,
    TooManyOtpRequests,
    UserExists,
    UserNotFound,
    ValidationError,
)
from sessionfort.core.schemas import (
    AuthResponse,
    AuthTokens,
    OtpDispatched,
    ResetOtpVerified,
    UserResponse,
)
from sessionfort.email import ConsoleEmailSender, EmailSender, SendGridEmailSender
from sessionfort.events import (
    AccountLocked as AccountLockedEvent,
    Login,
    LoginFailed,
    Logout,
    OtpRequested,
    PasswordReset,
    PasswordResetOtpVerified,
    PasswordResetRequested,
    RefreshTokenReused,
    TokenRefreshed,
    UserCreated,
)
from sessionfort.models.otp_challenge import OtpPurpose
from sessionfort.models.user import Role
from sessionfort.models.user import User as AuthUser
from sessionfort.sessionfort import SessionFort

__all__ = [
    "AccountLocked",
    "AccountLockedEvent",
    "AuthError",
    "AuthResponse",
    "AuthTokens",
    "AuthUser",
    "ConsoleEmailSender",
    "CookieConfig",
    "DeliveryError",
    "EmailSender",
    "HashCost",
    "InvalidCredentials",
    "InvalidOtp",
    "InvalidRefreshToken",
    "Login",
    "LoginFailed",
    "Logout",
    "NoOtpRequested",
    "OtpDispatched",
    "OtpExpired",
    "OtpPolicy",
    "OtpPurpose",
    "OtpRequested",
    "PasswordReset",
    "PasswordResetOtpVerified",
    "PasswordResetRequested",
    "RefreshTokenReuseDetected",
    "RefreshTokenReused",
    "ResetOtpVerified",
    "Role",
    "SendGridEmailSender",
    "SessionFort",
    "SessionFortConfig",
    "TokenRefreshed",
    "TooManyOtpAttempts",
    "TooManyOtpRequests",
    "UserCreated",
    "UserExists",
    "UserNotFound",
    "UserResponse",
    "ValidationError",
]
