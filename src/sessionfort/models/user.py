import enum
import uuid
from datetime import datetime

from sqlmodel import Column, Field, SQLModel

from sessionfort.utils import TZDateTime, utc_now


class Role(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    VENDOR = "VENDOR"
    CUSTOMER = "CUSTOMER"


# Roles a user may pick for themselves at registration.
SELF_ASSIGNABLE_ROLES = frozenset({Role.VENDOR, Role.CUSTOMER})


class User(SQLModel, table=True):
    __tablename__ = "sessionfort_users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(max_length=255, unique=True, index=True)
    password_hash: str = Field(max_length=255)
    role: str = Field(default=Role.CUSTOMER.value, max_length=20)
    login_attempts: int = Field(default=0)
    lock_until: datetime | None = Field(
        default=None,
        sa_column=Column(TZDateTime(), nullable=True),
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(TZDateTime(), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(TZDateTime(), nullable=False),
    )

    def is_locked(self, now: datetime | None = None) -> bool:
        """True while a lockout window is in force."""
        return self.lock_until is not None and self.lock_until > (now or utc_now())
