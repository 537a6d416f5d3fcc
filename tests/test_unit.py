"""Unit tests for pure functions — no database needed."""

import uuid

import jwt
import pytest

from sessionfort.config import HashCost, OtpPolicy, SessionFortConfig
from sessionfort.core.otp import _validity, generate_otp
from sessionfort.core.tokens import (
    TokenExpiredError,
    TokenInvalidError,
    TokenIssuer,
    TokenKind,
    decode_unverified_subject,
)
from sessionfort.utils import redact_email
from sessionfort.utils.hashing import CostClass, SecretHasher

_cheap = HashCost(time_cost=1, memory_cost=1024, parallelism=1)
_hasher = SecretHasher({
    CostClass.PASSWORD: _cheap,
    CostClass.OTP: _cheap,
    CostClass.REFRESH: HashCost(time_cost=1, memory_cost=512, parallelism=1),
})


def _issuer(**overrides) -> TokenIssuer:
    kwargs = dict(
        access_secret="access-secret",
        refresh_secret="refresh-secret",
        access_ttl=900,
        refresh_ttl=3600,
        issuer="sessionfort",
    )
    kwargs.update(overrides)
    return TokenIssuer(**kwargs)


# ---------------------------------------------------------------------------
# Secret hashing
# ---------------------------------------------------------------------------


class TestSecretHasher:
    def test_hash_produces_argon2_string(self):
        assert _hasher.hash("mysecretpassword", CostClass.PASSWORD).startswith("$argon2")

    def test_verify_correct_secret(self):
        hashed = _hasher.hash("correcthorse", CostClass.PASSWORD)
        assert _hasher.verify("correcthorse", hashed) is True

    def test_verify_wrong_secret(self):
        hashed = _hasher.hash("correcthorse", CostClass.PASSWORD)
        assert _hasher.verify("wronghorse", hashed) is False

    def test_same_secret_produces_different_hashes(self):
        """Argon2 uses random salt, so same input -> different hash."""
        assert _hasher.hash("same", CostClass.OTP) != _hasher.hash("same", CostClass.OTP)

    def test_cost_class_is_encoded_in_hash(self):
        assert "m=512" in _hasher.hash("token", CostClass.REFRESH)
        assert "m=1024" in _hasher.hash("password", CostClass.PASSWORD)

    def test_verify_across_cost_classes(self):
        hashed = _hasher.hash("refresh-token-value", CostClass.REFRESH)
        assert _hasher.verify("refresh-token-value", hashed) is True

    def test_garbage_digest_is_a_mismatch(self):
        assert _hasher.verify("anything", "not-a-hash") is False

    def test_long_secrets_are_not_truncated(self):
        base = "x" * 100
        hashed = _hasher.hash(base + "a", CostClass.PASSWORD)
        assert _hasher.verify(base + "b", hashed) is False

    def test_absent_digest_is_stable_and_matches_nothing(self):
        digest = _hasher.absent_digest
        assert digest is _hasher.absent_digest
        assert "m=1024" in digest
        assert _hasher.verify("", digest) is False


# ---------------------------------------------------------------------------
# OTP generation
# ---------------------------------------------------------------------------


class TestGenerateOtp:
    def test_six_digits_without_leading_zero(self):
        for _ in range(200):
            code = generate_otp()
            assert len(code) == 6
            assert code.isdigit()
            assert code[0] != "0"

    def test_custom_length(self):
        assert len(generate_otp(8)) == 8

    def test_codes_vary(self):
        assert len({generate_otp() for _ in range(50)}) > 1

    def test_validity_wording(self):
        assert _validity(300) == "5 minutes"
        assert _validity(60) == "1 minute"
        assert _validity(90) == "90 seconds"


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TestTokenIssuer:
    def test_access_token_roundtrip(self):
        issuer = _issuer()
        user_id = uuid.uuid4()
        payload = issuer.verify(issuer.issue_access_token(user_id, "VENDOR"), TokenKind.ACCESS)
        assert payload.user_id == user_id
        assert payload.role == "VENDOR"
        assert payload.kind is TokenKind.ACCESS

    def test_claims(self):
        issuer = _issuer()
        user_id = uuid.uuid4()
        claims = jwt.decode(
            issuer.issue_access_token(user_id, "CUSTOMER"),
            "access-secret", algorithms=["HS256"], issuer="sessionfort",
        )
        assert claims["sub"] == str(user_id)
        assert claims["id"] == str(user_id)
        assert claims["type"] == "access"
        assert claims["exp"] - claims["iat"] == 900

    def test_refresh_token_has_no_role(self):
        issuer = _issuer()
        payload = issuer.verify(issuer.issue_refresh_token(uuid.uuid4()), TokenKind.REFRESH)
        assert payload.role is None
        assert payload.jti

    def test_refresh_tokens_minted_together_differ(self):
        issuer = _issuer()
        user_id = uuid.uuid4()
        assert issuer.issue_refresh_token(user_id) != issuer.issue_refresh_token(user_id)

    def test_access_token_rejected_as_refresh(self):
        issuer = _issuer()
        token = issuer.issue_access_token(uuid.uuid4(), "CUSTOMER")
        with pytest.raises(TokenInvalidError):
            issuer.verify(token, TokenKind.REFRESH)

    def test_refresh_token_rejected_as_access(self):
        issuer = _issuer()
        token = issuer.issue_refresh_token(uuid.uuid4())
        with pytest.raises(TokenInvalidError):
            issuer.verify(token, TokenKind.ACCESS)

    def test_secrets_are_not_interchangeable(self):
        """A refresh token signed with the access secret is forged."""
        forged = jwt.encode(
            {"sub": str(uuid.uuid4()), "type": "refresh", "iat": 0, "exp": 4102444800, "iss": "sessionfort"},
            "access-secret", algorithm="HS256",
        )
        with pytest.raises(TokenInvalidError):
            _issuer().verify(forged, TokenKind.REFRESH)

    def test_expired_token(self):
        issuer = _issuer(access_ttl=-10)
        token = issuer.issue_access_token(uuid.uuid4(), "CUSTOMER")
        with pytest.raises(TokenExpiredError):
            issuer.verify(token, TokenKind.ACCESS)

    def test_wrong_issuer(self):
        token = _issuer(issuer="someone-else").issue_access_token(uuid.uuid4(), "CUSTOMER")
        with pytest.raises(TokenInvalidError):
            _issuer().verify(token, TokenKind.ACCESS)

    def test_garbage(self):
        with pytest.raises(TokenInvalidError):
            _issuer().verify("not.a.jwt", TokenKind.ACCESS)


class TestDecodeUnverifiedSubject:
    def test_reads_subject_without_secret(self):
        user_id = uuid.uuid4()
        token = _issuer(refresh_secret="unknown").issue_refresh_token(user_id)
        assert decode_unverified_subject(token) == user_id

    def test_garbage_returns_none(self):
        assert decode_unverified_subject("garbage") is None

    def test_non_uuid_subject_returns_none(self):
        token = jwt.encode({"sub": "not-a-uuid"}, "k", algorithm="HS256")
        assert decode_unverified_subject(token) is None


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class TestConfig:
    def test_secrets_required(self):
        with pytest.raises(ValueError, match="required"):
            SessionFortConfig(database_url="sqlite+aiosqlite://", access_token_secret="", refresh_token_secret="r")

    def test_secrets_must_differ(self):
        with pytest.raises(ValueError, match="differ"):
            SessionFortConfig(database_url="sqlite+aiosqlite://", access_token_secret="s", refresh_token_secret="s")

    def test_defaults(self):
        config = SessionFortConfig(
            database_url="sqlite+aiosqlite://", access_token_secret="a", refresh_token_secret="r",
        )
        assert config.access_token_expire_seconds == 900
        assert config.refresh_token_expire_seconds == 7 * 24 * 3600
        assert config.login_otp == OtpPolicy(ttl_seconds=300, max_attempts=5)
        assert config.reset_otp.ttl_seconds == 600
        assert config.lock_seconds == 3600

    def test_invalid_otp_policy(self):
        with pytest.raises(ValueError):
            OtpPolicy(ttl_seconds=0)

    def test_from_env_lists_missing(self):
        with pytest.raises(ValueError) as exc:
            SessionFortConfig.from_env({"SESSIONFORT_DATABASE_URL": "sqlite+aiosqlite://"})
        assert "SESSIONFORT_ACCESS_TOKEN_SECRET" in str(exc.value)
        assert "SESSIONFORT_REFRESH_TOKEN_SECRET" in str(exc.value)

    def test_from_env(self):
        config = SessionFortConfig.from_env({
            "SESSIONFORT_DATABASE_URL": "sqlite+aiosqlite://",
            "SESSIONFORT_ACCESS_TOKEN_SECRET": "a",
            "SESSIONFORT_REFRESH_TOKEN_SECRET": "r",
            "SESSIONFORT_EMAIL_TIMEOUT": "2.5",
        }, lock_seconds=60)
        assert config.email_timeout_seconds == 2.5
        assert config.lock_seconds == 60


def test_redact_email():
    assert redact_email("jonathan@example.com") == "jo***@example.com"
    assert redact_email("nonsense") == "redacted"
