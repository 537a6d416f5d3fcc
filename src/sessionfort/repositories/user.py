"""User repository — database operations for users."""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sessionfort.models.user import User
from sessionfort.utils import utc_now


async def get_user_by_id(session: AsyncSession, user_id: uuid.UUID) -> User | None:
    """Get a user by their ID."""
    return await session.get(User, user_id)


async def get_user_by_email(
    session: AsyncSession,
    email: str,
    *,
    for_update: bool = False,
) -> User | None:
    """Get a user by their email address.

    Args:
        for_update: Lock the row until the transaction ends (``SELECT ... FOR UPDATE``)
            so concurrent requests for the same user are serialized. Ignored by SQLite,
            which serializes writers on its own.
    """
    statement = select(User).where(User.email == email)
    if for_update:
        statement = statement.with_for_update()
    result = (await session.execute(statement)).scalars()
    return result.first()


async def get_user_by_role(session: AsyncSession, role: str) -> User | None:
    """Get the first user holding a role."""
    statement = select(User).where(User.role == role).limit(1)
    result = (await session.execute(statement)).scalars()
    return result.first()


async def create_user(
    session: AsyncSession,
    *,
    email: str,
    password_hash: str,
    role: str,
) -> User:
    """Create a new user."""
    user = User(email=email, password_hash=password_hash, role=role)
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


async def update_user(
    session: AsyncSession,
    user: User,
    **kwargs,
) -> User:
    """Update user fields."""
    for key, value in kwargs.items():
        if hasattr(user, key):
            setattr(user, key, value)
    user.updated_at = utc_now()
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


async def register_failed_login(
    session: AsyncSession,
    user: User,
    *,
    max_attempts: int,
    lock_until: datetime,
    now: datetime | None = None,
) -> bool:
    """Count a wrong password. Returns True if this attempt locked the account.

    A lock that has already run out is cleared first and the count restarts at 1.
    Callers must hold the row lock (``get_user_by_email(for_update=True)``).
    """
    now = now or utc_now()
    previous = user.login_attempts
    current_lock = user.lock_until
    if current_lock is not None and current_lock <= now:
        previous, current_lock = 0, None

    attempts = previous + 1
    locked = attempts >= max_attempts
    await update_user(
        session, user,
        login_attempts=attempts,
        lock_until=lock_until if locked else current_lock,
    )
    return locked


async def reset_login_attempts(session: AsyncSession, user: User) -> None:
    """Clear the failed-login counter and any lock."""
    if user.login_attempts or user.lock_until is not None:
        await update_user(session, user, login_attempts=0, lock_until=None)
