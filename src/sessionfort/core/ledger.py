"""Refresh token ledger — issuance, rotation with reuse detection, revocation.

Record states: Active -> Revoked (terminal), or Expired (terminal, by time).

Rotation of a presented token T:

1. T fails signature/expiry checks -> revoke every record of the subject T
   claims (if it names one) and fail with InvalidRefreshToken.
2. T is valid -> compare it against the subject's live records.
3. No match -> T was already rotated away (or minted by someone holding the
   secret): revoke every record of the subject, fail with reuse detected.
4. Match -> revoke that record with a conditional UPDATE. Losing that race
   to a concurrent rotation counts as reuse. Otherwise mint a new pair,
   persist the new record, and hand the tokens back.

Mass revocations commit before the error is raised.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from sessionfort.core.errors import InvalidRefreshToken, RefreshTokenReuseDetected
from sessionfort.core.tokens import (
    TokenError,
    TokenIssuer,
    TokenKind,
    decode_unverified_subject,
)
from sessionfort.models.refresh_token import RefreshToken
from sessionfort.models.user import User
from sessionfort.repositories import refresh_token as refresh_token_repo
from sessionfort.repositories import user as user_repo
from sessionfort.utils import utc_now
from sessionfort.utils.hashing import CostClass, SecretHasher

if TYPE_CHECKING:
    from sessionfort.events import EventCollector

logger = logging.getLogger("sessionfort.ledger")


@dataclass(frozen=True, slots=True)
class IssuedPair:
    """A freshly minted access/refresh pair and the ledger record behind it."""

    user: User
    access_token: str
    refresh_token: str
    record: RefreshToken


class RefreshTokenLedger:
    """Keeps the hashed record of every refresh token and enforces rotation."""

    def __init__(self, *, issuer: TokenIssuer, hasher: SecretHasher) -> None:
        self._issuer = issuer
        self._hasher = hasher

    async def issue(self, session: AsyncSession, user: User) -> IssuedPair:
        """Mint an access/refresh pair for ``user`` and record the refresh token.

        The record is flushed before the tokens are returned, so a token is
        never handed out without its ledger entry.
        """
        access_token = self._issuer.issue_access_token(user.id, user.role)
        raw_refresh = self._issuer.issue_refresh_token(user.id)
        record = await refresh_token_repo.create_refresh_token(
            session,
            user_id=user.id,
            token_hash=self._hasher.hash(raw_refresh, CostClass.REFRESH),
            expires_at=utc_now() + timedelta(seconds=self._issuer.ttl(TokenKind.REFRESH)),
        )
        return IssuedPair(
            user=user, access_token=access_token, refresh_token=raw_refresh, record=record,
        )

    async def rotate(
        self,
        session: AsyncSession,
        presented: str,
        *,
        events: EventCollector | None = None,
    ) -> IssuedPair:
        """Exchange a refresh token for a new pair.

        Raises:
            InvalidRefreshToken: Bad signature, expired, or the user is gone.
            RefreshTokenReuseDetected: A valid but already-rotated token was
                replayed; every session of the user is revoked.
        """
        try:
            payload = self._issuer.verify(presented, TokenKind.REFRESH)
        except TokenError as e:
            subject = decode_unverified_subject(presented)
            if subject is not None:
                revoked = await refresh_token_repo.revoke_all_user_refresh_tokens(session, subject)
                await session.commit()
                logger.warning(
                    "Unverifiable refresh token for user %s (%s); revoked %d records",
                    subject, type(e).__name__, revoked,
                )
                _collect_reuse(events, subject, revoked, "invalid_token")
            raise InvalidRefreshToken() from e

        match = await self._find_live_record(session, payload.user_id, presented)
        if match is None or not await refresh_token_repo.revoke_refresh_token_if_active(session, match.id):
            revoked = await self.revoke_all(session, payload.user_id)
            await session.commit()
            logger.warning(
                "Refresh token reuse for user %s; revoked %d records", payload.user_id, revoked,
            )
            _collect_reuse(events, payload.user_id, revoked, "reuse")
            raise RefreshTokenReuseDetected()

        user = await user_repo.get_user_by_id(session, payload.user_id)
        if user is None:
            raise InvalidRefreshToken("User not found")

        pair = await self.issue(session, user)
        await refresh_token_repo.set_replaced_by(session, match.id, pair.record.id)
        logger.debug("Rotated refresh record %s -> %s", match.id, pair.record.id)
        return pair

    async def _find_live_record(
        self, session: AsyncSession, user_id: uuid.UUID, presented: str,
    ) -> RefreshToken | None:
        # Salted hashes cannot be looked up by value; check each live record.
        for record in await refresh_token_repo.get_live_refresh_tokens(session, user_id):
            if self._hasher.verify(presented, record.token_hash):
                return record
        return None

    async def revoke_all(self, session: AsyncSession, user_id: uuid.UUID) -> int:
        """Revoke every record of a user. Returns how many were live."""
        return await refresh_token_repo.revoke_all_user_refresh_tokens(session, user_id)

    async def delete_all(self, session: AsyncSession, user_id: uuid.UUID) -> int:
        """Remove every record of a user."""
        return await refresh_token_repo.delete_all_user_refresh_tokens(session, user_id)

    async def purge_expired(self, session: AsyncSession) -> int:
        """Delete expired and revoked records."""
        return await refresh_token_repo.delete_expired_refresh_tokens(session)


def _collect_reuse(
    events: EventCollector | None, user_id: uuid.UUID, revoked: int, reason: str,
) -> None:
    if events is not None:
        from sessionfort.events import RefreshTokenReused

        events.collect("refresh_token_reused", RefreshTokenReused(
            user_id=user_id, revoked=revoked, reason=reason,
        ))
