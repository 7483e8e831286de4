import pytest
from fastapi.testclient import TestClient

from auth.session import LocalSessionCache, SessionAuthority
from core.cache import CacheTTL, TTLCache
from core.config import Settings
from database.content_repository import ContentRepository
from database.document_store import MemoryDocumentStore
from database.identity_repository import IdentityRepository
from database.notice_repository import NoticeRepository
from database.quiz_repository import QuizRepository
from portal_api import create_app
from services.notifier import EmailSender

ADMIN_EMAIL = "admin@portal.edu"
ADMIN_PASSWORD = "admin123"


class RecordingEmailSender(EmailSender):
    """Keeps outgoing messages in memory instead of talking SMTP."""

    def __init__(self, succeed: bool = True):
        super().__init__("localhost", 25, "portal@example.com", "secret")
        self.succeed = succeed
        self.sent = []

    def send(self, to_email, subject, html_body):
        self.sent.append({"to": to_email, "subject": subject, "body": html_body})
        return self.succeed


# ─── Repository-level fixtures ─────────────────────────────────────────────────

@pytest.fixture()
def store():
    return MemoryDocumentStore()


@pytest.fixture()
def cache():
    return TTLCache()


@pytest.fixture()
def ttl():
    return CacheTTL()


@pytest.fixture()
def content(store, cache, ttl):
    return ContentRepository(store, cache, ttl)


@pytest.fixture()
def quizzes(store, cache, ttl):
    return QuizRepository(store, cache, ttl)


@pytest.fixture()
def identities(store, cache, ttl):
    return IdentityRepository(store, cache, ttl)


@pytest.fixture()
def notices(store):
    return NoticeRepository(store)


@pytest.fixture()
def session_cache():
    return LocalSessionCache(ttl=300)


@pytest.fixture()
def sessions(identities, session_cache):
    return SessionAuthority(identities, session_cache, secret="test-secret")


# ─── App-level fixtures ────────────────────────────────────────────────────────

@pytest.fixture()
def settings():
    return Settings(jwt_secret="test-secret", admin_email=ADMIN_EMAIL, admin_password=ADMIN_PASSWORD)


@pytest.fixture()
def outbox():
    return RecordingEmailSender()


@pytest.fixture()
def client(settings, outbox):
    app = create_app(settings, store=MemoryDocumentStore(), email_sender=outbox)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def services(client):
    return client.app.state.services


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_token(client):
    r = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert r.status_code == 200
    return r.json()["token"]


@pytest.fixture()
def admin_headers(admin_token):
    return bearer(admin_token)
