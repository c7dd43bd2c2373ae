"""
Test configuration and fixtures.

Provides:
- A throwaway SQLite database, schema recreated for every test
- JWT token minting for authenticated tests
- HTTPX AsyncClient bound to the ASGI app
- A recording email provider swapped in for the real one
"""
import datetime
import os
import tempfile
from typing import Any, Dict, List, Optional

# Must be set before the app (and its engine) is imported
_DB_DIR = tempfile.mkdtemp(prefix="ontheform-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BACKEND_URL"] = "https://api.example.test"

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from main import app  # noqa: E402
from db.database import Base, async_session_maker, engine  # noqa: E402
from db.schema import Form, Submission, User  # noqa: E402
from routers.submissions import get_email_provider  # noqa: E402
from utils.auth import JWT_ALGORITHM, JWT_SECRET  # noqa: E402
from utils.email import EmailDeliveryError, EmailProvider, EmailSendResult  # noqa: E402


class RecordingEmailProvider(EmailProvider):
    """Captures messages instead of sending them; can be told to fail."""

    name = "recording"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def send(self, to, subject, html_body, attachments=None):
        if self.fail:
            raise EmailDeliveryError("provider unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html_body, "attachments": attachments or []})
        return EmailSendResult(success=True, message_id=f"msg-{len(self.sent)}")


# =============================================================================
# Database
# =============================================================================

@pytest_asyncio.fixture(autouse=True)
async def db_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def session():
    async with async_session_maker() as s:
        yield s


async def get_form_row(form_id: str) -> Optional[Form]:
    """Read a form through a fresh session (what another request would see)."""
    async with async_session_maker() as s:
        return await s.get(Form, form_id)


async def count_submissions(form_id: str) -> int:
    from sqlalchemy import func, select

    async with async_session_maker() as s:
        result = await s.execute(
            select(func.count()).select_from(Submission).where(Submission.form_id == form_id)
        )
        return result.scalar_one()


# =============================================================================
# Users and auth
# =============================================================================

async def _create_user(session, name: str, email: str, role: str) -> User:
    user = User(name=name, email=email, role=role, is_active=True)
    session.add(user)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(session) -> User:
    return await _create_user(session, "Ada Admin", "ada@example.com", "admin")


@pytest_asyncio.fixture
async def other_admin(session) -> User:
    return await _create_user(session, "Otto Other", "otto@example.com", "admin")


@pytest_asyncio.fixture
async def super_admin(session) -> User:
    return await _create_user(session, "Sue Super", "sue@example.com", "super_admin")


def auth_headers(user: User, expires_in: int = 3600) -> Dict[str, str]:
    payload = {
        "userId": user.id,
        "email": user.email,
        "exp": datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(seconds=expires_in),
    }
    token = jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Forms
# =============================================================================

CONTACT_FIELDS = [
    {"id": "email", "type": "email", "label": "Email Address", "required": True},
    {"id": "note", "type": "text", "label": "Note", "required": False},
]


@pytest_asyncio.fixture
async def make_form(session, admin_user):
    """Factory inserting a form owned by admin_user."""

    async def _make(**overrides) -> Form:
        data = {
            "title": "Contact",
            "fields": CONTACT_FIELDS,
            "is_active": True,
            "unique_constraint_type": "none",
            "created_by": admin_user.id,
        }
        data.update(overrides)
        form = Form(**data)
        session.add(form)
        await session.commit()
        return form

    return _make


# =============================================================================
# HTTP client
# =============================================================================

@pytest.fixture
def email_provider():
    provider = RecordingEmailProvider()
    app.dependency_overrides[get_email_provider] = lambda: provider
    yield provider
    app.dependency_overrides.pop(get_email_provider, None)


@pytest_asyncio.fixture
async def client(email_provider):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
