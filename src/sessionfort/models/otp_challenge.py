import enum
import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sessionfort.models.base import Base
from sessionfort.utils import TZDateTime, utc_now


class OtpPurpose(str, enum.Enum):
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"


class OtpChallenge(Base):
    """OTP state for one (user, purpose) pair.

    The row outlives individual codes so the attempt counter survives a
    cleared or expired code.
    """

    __tablename__ = "sessionfort_otp_challenges"
    __table_args__ = (UniqueConstraint("user_id", "purpose"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("sessionfort_users.id", ondelete="CASCADE"), index=True)
    purpose: Mapped[str] = mapped_column(String(20))
    code_hash: Mapped[str | None] = mapped_column(String(255), nullable=True, default=None)
    expires_at: Mapped[datetime | None] = mapped_column(TZDateTime(), nullable=True, default=None)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    verified_at: Mapped[datetime | None] = mapped_column(TZDateTime(), nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(TZDateTime(), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(TZDateTime(), nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def has_code(self) -> bool:
        return self.code_hash is not None and self.expires_at is not None
