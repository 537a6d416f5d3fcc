"""SessionFort configuration — dataclasses for cookie, OTP, hashing, and auth settings."""

import os
from dataclasses import dataclass, field
from typing import Literal

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True, slots=True)
class CookieConfig:
    """Configuration for auth cookies. Pass to SessionFort to enable cookie delivery."""

    secure: bool = True
    httponly: bool = True
    samesite: Literal["lax", "strict", "none"] = "lax"
    path: str = "/"
    domain: str | None = None
    access_cookie_name: str = "access_token"
    refresh_cookie_name: str = "refresh_token"


@dataclass(frozen=True, slots=True)
class OtpPolicy:
    """Lifetime and retry cap for one OTP purpose."""

    ttl_seconds: int
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise ValueError(f"OTP ttl_seconds must be positive, got {self.ttl_seconds}")
        if self.max_attempts <= 0:
            raise ValueError(f"OTP max_attempts must be positive, got {self.max_attempts}")


@dataclass(frozen=True, slots=True)
class HashCost:
    """argon2id work parameters for one class of secret."""

    time_cost: int = 3
    memory_cost: int = 65536  # KiB
    parallelism: int = 4


# Refresh token digests are checked on every rotation.
REFRESH_HASH_COST = HashCost(time_cost=1, memory_cost=8192, parallelism=1)


@dataclass(frozen=True, slots=True)
class SessionFortConfig:
    """Internal config built by the SessionFort constructor.

    Secrets are required and must differ: a leaked access secret must not be
    enough to forge refresh tokens.
    """

    database_url: str
    access_token_secret: str
    refresh_token_secret: str
    access_token_expire_seconds: int = 900  # 15 minutes
    refresh_token_expire_seconds: int = 60 * 60 * 24 * 7  # 7 days
    jwt_issuer: str = "sessionfort"
    cookie: CookieConfig | None = None
    login_otp: OtpPolicy = field(default_factory=lambda: OtpPolicy(ttl_seconds=300))
    reset_otp: OtpPolicy = field(default_factory=lambda: OtpPolicy(ttl_seconds=600))
    otp_digits: int = 6
    max_login_attempts: int = 5
    lock_seconds: int = 3600  # 1 hour
    email_timeout_seconds: float = 10.0
    db_timeout_seconds: float = 30.0
    password_cost: HashCost = field(default_factory=HashCost)
    otp_cost: HashCost = field(default_factory=HashCost)
    refresh_cost: HashCost = REFRESH_HASH_COST
    min_password_length: int = 6
    min_reset_password_length: int = 8

    def __post_init__(self) -> None:
        if not self.access_token_secret or not self.refresh_token_secret:
            raise ValueError("access_token_secret and refresh_token_secret are required")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("access_token_secret and refresh_token_secret must differ")
        if not 4 <= self.otp_digits <= 10:
            raise ValueError(f"otp_digits must be between 4 and 10, got {self.otp_digits}")

    @classmethod
    def from_env(cls, environ=None, **overrides) -> "SessionFortConfig":
        """Build a config from SESSIONFORT_* environment variables.

        Raises:
            ValueError: Listing every required variable that is missing.
        """
        env = os.environ if environ is None else environ
        required = {
            "database_url": "SESSIONFORT_DATABASE_URL",
            "access_token_secret": "SESSIONFORT_ACCESS_TOKEN_SECRET",
            "refresh_token_secret": "SESSIONFORT_REFRESH_TOKEN_SECRET",
        }
        missing = [
            name for key, name in required.items()
            if key not in overrides and not env.get(name)
        ]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")

        values = {key: env[name] for key, name in required.items() if env.get(name)}
        if env.get("SESSIONFORT_JWT_ISSUER"):
            values["jwt_issuer"] = env["SESSIONFORT_JWT_ISSUER"]
        if env.get("SESSIONFORT_EMAIL_TIMEOUT"):
            values["email_timeout_seconds"] = float(env["SESSIONFORT_EMAIL_TIMEOUT"])
        values.update(overrides)
        return cls(**values)
