"""Refresh token repository — database operations for the refresh token ledger."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import delete as sa_delete, select, update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession

from sessionfort.models.refresh_token import RefreshToken


async def create_refresh_token(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    token_hash: str,
    expires_at: datetime,
) -> RefreshToken:
    """Create a new refresh token record (store the hash, not the raw token)."""
    token = RefreshToken(
        id=uuid.uuid4(),
        user_id=user_id,
        token_hash=token_hash,
        expires_at=expires_at,
    )
    session.add(token)
    await session.flush()
    return token


async def get_live_refresh_tokens(
    session: AsyncSession,
    user_id: uuid.UUID,
) -> list[RefreshToken]:
    """All non-revoked, non-expired refresh tokens for a user, newest first.

    The newest record is the likeliest match on rotation, so it is hashed first.
    """
    statement = (
        select(RefreshToken)
        .where(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked == False,
            RefreshToken.expires_at > datetime.now(UTC),
        )
        .order_by(RefreshToken.created_at.desc())
    )
    result = (await session.execute(statement)).scalars()
    return list(result.all())


async def revoke_refresh_token_if_active(
    session: AsyncSession,
    token_id: uuid.UUID,
) -> bool:
    """Revoke a refresh token only if nobody revoked it first.

    Single conditional UPDATE, so of two transactions racing on the same record
    exactly one sees a changed row. Returns True if this call revoked it.
    """
    stmt = sa_update(RefreshToken).where(
        RefreshToken.id == token_id,
        RefreshToken.revoked == False,
    ).values(revoked=True).execution_options(synchronize_session=False)
    result = await session.execute(stmt)
    await session.flush()
    return result.rowcount == 1


async def set_replaced_by(
    session: AsyncSession,
    token_id: uuid.UUID,
    replaced_by: uuid.UUID,
) -> None:
    """Link a rotated record to the record that superseded it."""
    stmt = sa_update(RefreshToken).where(
        RefreshToken.id == token_id,
    ).values(replaced_by=replaced_by).execution_options(synchronize_session=False)
    await session.execute(stmt)
    await session.flush()


async def revoke_all_user_refresh_tokens(
    session: AsyncSession,
    user_id: uuid.UUID,
) -> int:
    """Revoke ALL refresh tokens for a user (nuclear option — used for theft detection).

    Uses atomic SQL UPDATE to avoid race conditions with concurrent token creation.
    Returns the number of records revoked.
    """
    stmt = sa_update(RefreshToken).where(
        RefreshToken.user_id == user_id,
        RefreshToken.revoked == False,
    ).values(revoked=True).execution_options(synchronize_session=False)
    result = await session.execute(stmt)
    await session.flush()
    return result.rowcount


async def delete_all_user_refresh_tokens(
    session: AsyncSession,
    user_id: uuid.UUID,
) -> int:
    """Delete every refresh token record for a user. Returns the number deleted."""
    # Drop self-references first so the delete does not trip the replaced_by FK.
    await session.execute(
        sa_update(RefreshToken)
        .where(RefreshToken.user_id == user_id)
        .values(replaced_by=None)
        .execution_options(synchronize_session=False)
    )
    stmt = sa_delete(RefreshToken).where(
        RefreshToken.user_id == user_id,
    ).execution_options(synchronize_session=False)
    result = await session.execute(stmt)
    await session.flush()
    return result.rowcount


async def delete_expired_refresh_tokens(
    session: AsyncSession,
) -> int:
    """Delete refresh tokens that are expired or revoked.

    Returns the number of deleted rows.
    """
    dead = (RefreshToken.revoked == True) | (RefreshToken.expires_at < datetime.now(UTC))
    # Only revoked records carry replaced_by, so clearing it on the dead set
    # removes every reference into the rows about to go.
    await session.execute(
        sa_update(RefreshToken)
        .where(dead, RefreshToken.replaced_by.is_not(None))
        .values(replaced_by=None)
        .execution_options(synchronize_session=False)
    )
    stmt = sa_delete(RefreshToken).where(dead).execution_options(synchronize_session=False)
    result = await session.execute(stmt)
    await session.flush()
    return result.rowcount
