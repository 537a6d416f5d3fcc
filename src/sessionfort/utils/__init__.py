from datetime import UTC, datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


def utc_now() -> datetime:
    return datetime.now(UTC)


def redact_email(email: str) -> str:
    """Shorten an address for log lines: ``jo***@example.com``."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class TZDateTime(TypeDecorator):
    """DateTime that stores UTC and returns timezone-aware values on all backends.

    PostgreSQL returns timezone-aware datetimes natively.
    SQLite stores naive text, so values are normalized to UTC on the way in
    (keeping string comparisons in WHERE clauses correct) and tagged UTC on read.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
