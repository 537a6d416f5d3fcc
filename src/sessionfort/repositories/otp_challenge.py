"""OTP challenge repository — per-user, per-purpose one-time passcode state."""

import uuid
from datetime import datetime

from sqlalchemy import update as sa_update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sessionfort.models.otp_challenge import OtpChallenge
from sessionfort.utils import utc_now


async def get_challenge(
    session: AsyncSession,
    user_id: uuid.UUID,
    purpose: str,
) -> OtpChallenge | None:
    """Look up the challenge row for a user and purpose."""
    statement = select(OtpChallenge).where(
        OtpChallenge.user_id == user_id,
        OtpChallenge.purpose == purpose,
    )
    result = await session.exec(statement)
    return result.first()


async def store_code(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    purpose: str,
    code_hash: str,
    expires_at: datetime,
) -> OtpChallenge:
    """Replace any code on file with a fresh one and reset the attempt counter."""
    challenge = await get_challenge(session, user_id, purpose)
    if challenge is None:
        challenge = OtpChallenge(user_id=user_id, purpose=purpose)
    challenge.code_hash = code_hash
    challenge.expires_at = expires_at
    challenge.attempts = 0
    challenge.verified_at = None
    session.add(challenge)
    await session.flush()
    return challenge


async def increment_attempts(session: AsyncSession, challenge: OtpChallenge) -> int:
    """Atomically add one failed attempt. Returns the new count."""
    stmt = sa_update(OtpChallenge).where(
        OtpChallenge.id == challenge.id,
    ).values(
        attempts=OtpChallenge.attempts + 1,
        updated_at=utc_now(),
    ).execution_options(synchronize_session=False)
    await session.execute(stmt)
    await session.flush()
    await session.refresh(challenge)
    return challenge.attempts


async def mark_verified(session: AsyncSession, challenge: OtpChallenge) -> None:
    """Record that the code on file was presented correctly."""
    challenge.verified_at = utc_now()
    session.add(challenge)
    await session.flush()


async def clear_code(
    session: AsyncSession,
    challenge: OtpChallenge,
    *,
    reset_attempts: bool = False,
) -> None:
    """Forget the code on file. The attempt counter survives unless asked otherwise."""
    challenge.code_hash = None
    challenge.expires_at = None
    challenge.verified_at = None
    if reset_attempts:
        challenge.attempts = 0
    session.add(challenge)
    await session.flush()


async def reset_attempts(
    session: AsyncSession,
    user_id: uuid.UUID,
    purpose: str,
) -> bool:
    """Zero the attempt counter. Returns False if there is no challenge row."""
    stmt = sa_update(OtpChallenge).where(
        OtpChallenge.user_id == user_id,
        OtpChallenge.purpose == purpose,
    ).values(attempts=0, updated_at=utc_now()).execution_options(synchronize_session=False)
    result = await session.execute(stmt)
    await session.flush()
    return result.rowcount > 0
