"""Auth error taxonomy.

Every domain failure is an ``AuthError`` carrying a stable machine code and the
HTTP status a binding should answer with. Subclasses exist so callers can catch
one failure kind without comparing codes.
"""


class AuthError(Exception):
    """Base auth error with an error code and HTTP status."""

    default_message = "Authentication failed"
    default_code = "auth_error"
    default_status = 400

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        status_code: int | None = None,
        **extra,
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status
        self.extra = extra
        super().__init__(self.message)


class ValidationError(AuthError):
    default_message = "Invalid input"
    default_code = "validation_error"
    default_status = 400


class UserExists(AuthError):
    default_message = "Email already registered"
    default_code = "user_exists"
    default_status = 409


class UserNotFound(AuthError):
    default_message = "User not found"
    default_code = "user_not_found"
    default_status = 404


class InvalidCredentials(AuthError):
    default_message = "Invalid email or password"
    default_code = "invalid_credentials"
    default_status = 401


class AccountLocked(AuthError):
    default_message = "Account locked. Try again later."
    default_code = "account_locked"
    default_status = 423


class TooManyOtpRequests(AuthError):
    default_message = "Too many OTP attempts. Try later."
    default_code = "otp_rate_limited"
    default_status = 429


class NoOtpRequested(AuthError):
    default_message = "No OTP requested"
    default_code = "no_otp_requested"
    default_status = 400


class OtpExpired(AuthError):
    default_message = "OTP expired"
    default_code = "otp_expired"
    default_status = 410


class InvalidOtp(AuthError):
    default_message = "Invalid OTP"
    default_code = "invalid_otp"
    default_status = 401


class TooManyOtpAttempts(AuthError):
    default_message = "Too many OTP attempts"
    default_code = "too_many_otp_attempts"
    default_status = 429


class InvalidRefreshToken(AuthError):
    default_message = "Invalid refresh token"
    default_code = "refresh_token_invalid"
    default_status = 401


class RefreshTokenReuseDetected(AuthError):
    default_message = "Refresh token reuse detected; all sessions revoked"
    default_code = "refresh_token_reused"
    default_status = 401


class DeliveryError(AuthError):
    default_message = "Failed to send email"
    default_code = "email_delivery_failed"
    default_status = 502
