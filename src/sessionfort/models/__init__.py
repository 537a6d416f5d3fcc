"""SessionFort SQLAlchemy models — central registry.

Import all models here so the shared MetaData is populated.
"""

from sessionfort.models.base import Base
from sessionfort.models.otp_challenge import OtpChallenge, OtpPurpose
from sessionfort.models.refresh_token import RefreshToken
from sessionfort.models.user import Role, User

__all__ = [
    "Base",
    "User",
    "Role",
    "RefreshToken",
    "OtpChallenge",
    "OtpPurpose",
]
