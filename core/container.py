"""
Wiring: one PortalServices per application instance.
Caches live here, not in module globals, so each app (and each test) gets its own.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from auth.session import LocalSessionCache, RedisSessionCache, SessionAuthority, SessionTokenCache
from core.cache import CacheTTL, TTLCache
from core.config import Settings
from database.content_repository import ContentRepository
from database.database import create_db_engine, create_session_factory
from database.document_store import DocumentStore, SqlDocumentStore
from database.identity_repository import IdentityRepository
from database.notice_repository import NoticeRepository
from database.quiz_repository import QuizRepository
from database.redis_client import create_redis
from services.analytics import AnalyticsEngine
from services.notifier import Announcer, EmailSender, PushBroadcaster
from services.quiz_scoring import QuizSubmission

log = logging.getLogger(__name__)


@dataclass
class PortalServices:
    settings: Settings
    store: DocumentStore
    cache: TTLCache
    content: ContentRepository
    quizzes: QuizRepository
    identities: IdentityRepository
    notices: NoticeRepository
    sessions: SessionAuthority
    submissions: QuizSubmission
    analytics: AnalyticsEngine
    announcer: Announcer
    email_sender: EmailSender
    engine: Optional[object] = None


def build_session_cache(settings: Settings) -> SessionTokenCache:
    if settings.session_cache_backend == "redis":
        log.info("Session tokens mirrored in redis at %s", settings.redis_url)
        return RedisSessionCache(create_redis(settings.redis_url), ttl=settings.session_cache_ttl)
    return LocalSessionCache(ttl=settings.session_cache_ttl)


def build_services(
    settings: Settings,
    store: Optional[DocumentStore] = None,
    session_cache: Optional[SessionTokenCache] = None,
    announcer: Optional[Announcer] = None,
    email_sender: Optional[EmailSender] = None,
) -> PortalServices:
    engine = None
    if store is None:
        engine = create_db_engine(settings.database_url)
        store = SqlDocumentStore(create_session_factory(engine), in_batch_size=settings.in_query_batch_size)

    cache = TTLCache()
    ttl = CacheTTL.from_settings(settings)
    content = ContentRepository(store, cache, ttl)
    quizzes = QuizRepository(store, cache, ttl)
    identities = IdentityRepository(store, cache, ttl)
    notices = NoticeRepository(store)
    sessions = SessionAuthority(
        identities,
        session_cache or build_session_cache(settings),
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        credential_ttl=timedelta(days=settings.credential_ttl_days),
    )
    return PortalServices(
        settings=settings,
        store=store,
        cache=cache,
        content=content,
        quizzes=quizzes,
        identities=identities,
        notices=notices,
        sessions=sessions,
        submissions=QuizSubmission(quizzes),
        analytics=AnalyticsEngine(quizzes, identities),
        announcer=announcer or Announcer(notices, PushBroadcaster.from_settings(settings)),
        email_sender=email_sender or EmailSender.from_settings(settings),
        engine=engine,
    )
