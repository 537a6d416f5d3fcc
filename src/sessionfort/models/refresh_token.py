import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sessionfort.models.base import Base
from sessionfort.utils import TZDateTime, utc_now


class RefreshToken(Base):
    __tablename__ = "sessionfort_refresh_tokens"
    __table_args__ = (
        Index("ix_sessionfort_refresh_tokens_user_id_revoked", "user_id", "revoked"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("sessionfort_users.id", ondelete="CASCADE"), index=True)
    # Salted argon2 digest of the raw token; the token itself is never stored.
    token_hash: Mapped[str] = mapped_column(String(255), unique=True)
    expires_at: Mapped[datetime] = mapped_column(TZDateTime(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(TZDateTime(), nullable=False, default=utc_now)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False)
    replaced_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("sessionfort_refresh_tokens.id", ondelete="SET NULL"), nullable=True, default=None)
