"""Test fixtures for SessionFort service and HTTP tests."""

import os
import re
import tempfile
import uuid

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from sessionfort import CookieConfig, HashCost, SessionFort
from sessionfort.core.schemas import UserResponse

pytestmark = pytest.mark.asyncio

# Defaults to a temp SQLite file for the test session.
# For PostgreSQL, set DATABASE_URL and it is used as-is.
_raw_url = os.environ.get("DATABASE_URL", "sqlite")

_sqlite_tmp = None
if _raw_url.startswith("sqlite"):
    _sqlite_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    _sqlite_tmp.close()
    TEST_DATABASE_URL = f"sqlite+aiosqlite:///{_sqlite_tmp.name}"
else:
    TEST_DATABASE_URL = _raw_url

ACCESS_SECRET = "test-access-secret-0123456789abcdef"
REFRESH_SECRET = "test-refresh-secret-fedcba9876543210"

# Keeps argon2 fast in tests; production defaults are much heavier.
CHEAP_HASH = HashCost(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture(scope="session", autouse=True)
def _cleanup_sqlite():
    """Delete the temp SQLite file after all tests finish."""
    yield
    if _sqlite_tmp is not None and os.path.exists(_sqlite_tmp.name):
        os.remove(_sqlite_tmp.name)


class RecordingEmailSender:
    """Email sender that keeps every message instead of delivering it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, body: str) -> None:
        self.sent.append((to, subject, body))

    def messages_to(self, to: str) -> list[tuple[str, str, str]]:
        return [m for m in self.sent if m[0] == to]

    def last_code(self, to: str) -> str:
        """The code in the newest message to ``to``."""
        _, _, body = self.messages_to(to)[-1]
        return re.search(r"\b(\d{6})\b", body).group(1)


class FailingEmailSender:
    """Email sender whose provider is always down."""

    async def send(self, to: str, subject: str, body: str) -> None:
        raise ConnectionError("mail server unreachable")


def make_auth(sender, **kwargs) -> SessionFort:
    kwargs.setdefault("cookie", CookieConfig(secure=False))
    return SessionFort(
        TEST_DATABASE_URL,
        access_token_secret=ACCESS_SECRET,
        refresh_token_secret=REFRESH_SECRET,
        email_sender=sender,
        password_hash_cost=CHEAP_HASH,
        **kwargs,
    )


@pytest.fixture
def mailbox() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest_asyncio.fixture
async def auth(mailbox: RecordingEmailSender):
    """Create a SessionFort instance for testing."""
    instance = make_auth(mailbox)
    await instance.migrate()
    yield instance
    await instance.dispose()


@pytest_asyncio.fixture
async def client(auth: SessionFort):
    """Async HTTP client for testing against the FastAPI app."""
    app = FastAPI()
    app.include_router(auth.fastapi_router(), prefix="/auth")

    # Role-protected test endpoint
    @app.get("/test-admin")
    async def test_admin(user: UserResponse = Depends(auth.require_role("SUPER_ADMIN"))):
        return {"message": "admin access", "role": user.role}

    # Multi-role test endpoint (vendor OR admin)
    @app.get("/test-vendor")
    async def test_vendor(user: UserResponse = Depends(auth.require_role(["VENDOR", "SUPER_ADMIN"]))):
        return {"message": "vendor access", "role": user.role}

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


def unique_email() -> str:
    """Generate a unique email for each test to avoid conflicts."""
    return f"test-{uuid.uuid4().hex[:8]}@example.com"


async def login_with_otp(auth: SessionFort, mailbox: RecordingEmailSender, email: str,
                         password: str = "testpassword123"):
    """Password step + OTP step. Returns the AuthResponse."""
    await auth.login(email, password)
    return await auth.verify_otp(email, mailbox.last_code(email))
