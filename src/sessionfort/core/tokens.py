"""JWT access and refresh token creation and verification."""

import enum
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from sessionfort.config import JWT_ALGORITHM, SessionFortConfig


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpiredError(TokenError):
    """The token's signature is good but its ``exp`` has passed."""


class TokenInvalidError(TokenError):
    """Bad signature, wrong token kind, or missing claims."""


@dataclass(frozen=True, slots=True)
class TokenPayload:
    """Verified claims. ``role`` is only present on access tokens."""

    user_id: uuid.UUID
    kind: TokenKind
    expires_at: datetime
    role: str | None = None
    jti: str | None = None


class TokenIssuer:
    """Mints and verifies signed tokens.

    Access and refresh tokens are signed with different secrets, so a leaked
    access secret cannot be used to forge refresh tokens and vice versa.

    Args:
        access_secret: HMAC secret for access tokens.
        refresh_secret: HMAC secret for refresh tokens.
        access_ttl: Access token lifetime in seconds.
        refresh_ttl: Refresh token lifetime in seconds.
        issuer: Value of the ``iss`` claim, checked on verify.
    """

    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        access_ttl: int,
        refresh_ttl: int,
        issuer: str,
        algorithm: str = JWT_ALGORITHM,
    ) -> None:
        self._secrets = {TokenKind.ACCESS: access_secret, TokenKind.REFRESH: refresh_secret}
        self._ttls = {TokenKind.ACCESS: access_ttl, TokenKind.REFRESH: refresh_ttl}
        self._issuer = issuer
        self._algorithm = algorithm

    @classmethod
    def from_config(cls, config: SessionFortConfig) -> "TokenIssuer":
        return cls(
            access_secret=config.access_token_secret,
            refresh_secret=config.refresh_token_secret,
            access_ttl=config.access_token_expire_seconds,
            refresh_ttl=config.refresh_token_expire_seconds,
            issuer=config.jwt_issuer,
        )

    def ttl(self, kind: TokenKind) -> int:
        return self._ttls[kind]

    def issue_access_token(self, user_id: uuid.UUID, role: str) -> str:
        """Create a signed access token carrying the user's id and role."""
        return self._encode(TokenKind.ACCESS, user_id, {"role": role})

    def issue_refresh_token(self, user_id: uuid.UUID) -> str:
        """Create a signed refresh token.

        The role is left out on purpose: it is read from the user record on
        every rotation, so a role change applies at the next refresh. The
        random ``jti`` keeps two tokens minted in the same second distinct.
        """
        return self._encode(TokenKind.REFRESH, user_id, {"jti": uuid.uuid4().hex})

    def _encode(self, kind: TokenKind, user_id: uuid.UUID, extra: dict) -> str:
        now = datetime.now(UTC)
        payload = {
            "sub": str(user_id),
            "id": str(user_id),
            "type": kind.value,
            "iat": now,
            "exp": now + timedelta(seconds=self._ttls[kind]),
            "iss": self._issuer,
            **extra,
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=self._algorithm)

    def verify(self, token: str, kind: TokenKind) -> TokenPayload:
        """Verify and decode a token of the given kind.

        Raises:
            TokenExpiredError: If the token has expired.
            TokenInvalidError: If the token is invalid for this kind.
        """
        try:
            claims = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self._algorithm],
                issuer=self._issuer,
                options={"require": ["sub", "type", "exp", "iat", "iss"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError(str(e)) from e
        except jwt.InvalidTokenError as e:
            raise TokenInvalidError(str(e)) from e

        if claims.get("type") != kind.value:
            raise TokenInvalidError(f"Expected a {kind.value} token")
        if kind is TokenKind.ACCESS and not claims.get("role"):
            raise TokenInvalidError("Access token has no role")

        try:
            user_id = uuid.UUID(claims["sub"])
        except (TypeError, ValueError) as e:
            raise TokenInvalidError("Malformed subject") from e

        return TokenPayload(
            user_id=user_id,
            kind=kind,
            expires_at=datetime.fromtimestamp(claims["exp"], UTC),
            role=claims.get("role"),
            jti=claims.get("jti"),
        )


def decode_unverified_subject(token: str) -> uuid.UUID | None:
    """Read the claimed subject of a token WITHOUT checking its signature.

    For diagnostics only: it tells a failed refresh or a logout whose records
    to revoke. Never use the result to grant anything.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    subject = claims.get("sub") or claims.get("id")
    if not isinstance(subject, str):
        return None
    try:
        return uuid.UUID(subject)
    except ValueError:
        return None
