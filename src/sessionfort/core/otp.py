"""One-time passcode lifecycle — generation, hashing, expiry, bounded retry.

One manager serves every purpose; the purpose only selects the policy (TTL,
attempt cap) and whether a correct code is consumed at once (login) or kept
as proof of possession for a follow-up step (password reset).

Every failure that changes stored state (expired code cleared, attempt
counted) commits before raising, so the caller's rollback cannot undo it.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from sessionfort.config import OtpPolicy, SessionFortConfig
from sessionfort.core.errors import (
    InvalidOtp,
    NoOtpRequested,
    OtpExpired,
    TooManyOtpAttempts,
    TooManyOtpRequests,
)
from sessionfort.email import EmailSender, dispatch
from sessionfort.models.otp_challenge import OtpChallenge, OtpPurpose
from sessionfort.models.user import User
from sessionfort.repositories import otp_challenge as otp_repo
from sessionfort.utils import utc_now
from sessionfort.utils.hashing import CostClass, SecretHasher

logger = logging.getLogger("sessionfort.otp")

_MESSAGES = {
    OtpPurpose.LOGIN: (
        "Your login OTP",
        "Your OTP is {code}. It is valid for {validity}. If you did not request this, ignore.",
    ),
    OtpPurpose.PASSWORD_RESET: (
        "Password Reset Request",
        "Your password reset OTP is {code}. It is valid for {validity}. "
        "If you did not request this, please ignore.",
    ),
}

# Purposes whose code stays on file after a correct verify, until consumed.
_TWO_PHASE = frozenset({OtpPurpose.PASSWORD_RESET})


def generate_otp(digits: int = 6) -> str:
    """Generate a random numeric code of exactly ``digits`` digits.

    Drawn uniformly from [10^(digits-1), 10^digits - 1], so there is never a
    leading zero and no padding is needed.
    """
    low = 10 ** (digits - 1)
    return str(low + secrets.randbelow(9 * low))


def _validity(seconds: int) -> str:
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} seconds"


class OtpManager:
    """Issues and checks one-time codes for every OTP purpose."""

    def __init__(
        self,
        *,
        hasher: SecretHasher,
        sender: EmailSender,
        policies: dict[OtpPurpose, OtpPolicy],
        digits: int = 6,
        email_timeout: float = 10.0,
    ) -> None:
        self._hasher = hasher
        self._sender = sender
        self._policies = policies
        self._digits = digits
        self._email_timeout = email_timeout

    @classmethod
    def from_config(
        cls, config: SessionFortConfig, *, hasher: SecretHasher, sender: EmailSender,
    ) -> OtpManager:
        return cls(
            hasher=hasher,
            sender=sender,
            policies={
                OtpPurpose.LOGIN: config.login_otp,
                OtpPurpose.PASSWORD_RESET: config.reset_otp,
            },
            digits=config.otp_digits,
            email_timeout=config.email_timeout_seconds,
        )

    def policy(self, purpose: OtpPurpose) -> OtpPolicy:
        return self._policies[purpose]

    async def issue(self, session: AsyncSession, user: User, purpose: OtpPurpose) -> None:
        """Store a fresh code for ``user`` and email it.

        The new code is only flushed, not committed. If delivery fails the
        DeliveryError propagates, the caller's transaction rolls back, and the
        user is left without a code they never received.

        Raises:
            TooManyOtpRequests: The attempt counter for this purpose is at the cap.
            DeliveryError: The email could not be sent in time.
        """
        policy = self._policies[purpose]
        challenge = await otp_repo.get_challenge(session, user.id, purpose.value)
        if challenge is not None and challenge.attempts >= policy.max_attempts:
            logger.warning(
                "Refusing %s OTP for user %s: %d failed attempts on file",
                purpose.value, user.id, challenge.attempts,
            )
            raise TooManyOtpRequests()

        code = generate_otp(self._digits)
        await otp_repo.store_code(
            session,
            user_id=user.id,
            purpose=purpose.value,
            code_hash=self._hasher.hash(code, CostClass.OTP),
            expires_at=utc_now() + timedelta(seconds=policy.ttl_seconds),
        )

        subject, template = _MESSAGES[purpose]
        body = template.format(code=code, validity=_validity(policy.ttl_seconds))
        await dispatch(self._sender, user.email, subject, body, timeout=self._email_timeout)
        logger.info("Issued %s OTP for user %s", purpose.value, user.id)

    async def verify(
        self, session: AsyncSession, user: User, purpose: OtpPurpose, code: str,
    ) -> OtpChallenge:
        """Check ``code`` against the code on file.

        A login code is cleared on success. A password reset code is only
        marked verified and stays on file until ``consume`` is called.

        Raises:
            NoOtpRequested: No code on file.
            OtpExpired: The code ran out; it is cleared.
            TooManyOtpAttempts: The attempt cap is reached. Once there, even a
                correct code is refused until a new one is issued.
            InvalidOtp: Wrong code; one attempt consumed.
        """
        policy = self._policies[purpose]
        challenge = await otp_repo.get_challenge(session, user.id, purpose.value)
        if challenge is None or not challenge.has_code:
            raise NoOtpRequested()

        if challenge.expires_at <= utc_now():
            await otp_repo.clear_code(session, challenge)
            await session.commit()
            raise OtpExpired()

        if challenge.attempts >= policy.max_attempts:
            await otp_repo.increment_attempts(session, challenge)
            await session.commit()
            raise TooManyOtpAttempts()

        if not self._hasher.verify(code, challenge.code_hash):
            attempts = await otp_repo.increment_attempts(session, challenge)
            await session.commit()
            logger.info(
                "Wrong %s OTP for user %s (%d/%d)",
                purpose.value, user.id, attempts, policy.max_attempts,
            )
            if attempts >= policy.max_attempts:
                logger.warning("User %s exhausted %s OTP attempts", user.id, purpose.value)
                raise TooManyOtpAttempts()
            raise InvalidOtp(remaining_attempts=policy.max_attempts - attempts)

        if purpose in _TWO_PHASE:
            await otp_repo.mark_verified(session, challenge)
        else:
            await otp_repo.clear_code(session, challenge, reset_attempts=True)
        return challenge

    async def require_verified(
        self, session: AsyncSession, user: User, purpose: OtpPurpose,
    ) -> OtpChallenge:
        """Make sure a verified, unexpired code is on file for a two-phase purpose.

        Raises:
            NoOtpRequested: No code on file, or it was never verified.
            OtpExpired: The verified code ran out; it is cleared.
        """
        challenge = await otp_repo.get_challenge(session, user.id, purpose.value)
        if challenge is None or not challenge.has_code or challenge.verified_at is None:
            raise NoOtpRequested("No verified OTP on file")

        if challenge.expires_at <= utc_now():
            await otp_repo.clear_code(session, challenge)
            await session.commit()
            raise OtpExpired()
        return challenge

    async def consume(self, session: AsyncSession, challenge: OtpChallenge) -> None:
        """Retire a verified code and zero its attempt counter."""
        await otp_repo.clear_code(session, challenge, reset_attempts=True)

    async def reset_attempts(self, session: AsyncSession, user: User, purpose: OtpPurpose) -> bool:
        """Lift the attempt cap for a user (operator action)."""
        return await otp_repo.reset_attempts(session, user.id, purpose.value)
