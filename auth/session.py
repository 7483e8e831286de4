"""
Single-active-session enforcement.

Every login writes a fresh random session token onto the identity record and
embeds it in the bearer credential it issues. A request is valid only while its
embedded token equals the identity's current one, so the next login silently
revokes every earlier credential. A session-token cache answers that comparison
without a store read; on a miss the persisted token decides and repopulates it.

LocalSessionCache is per process: a rotation made by another process is seen
once the local entry expires (session_cache_ttl). RedisSessionCache shares the
entries between processes.
"""

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional, Protocol, Tuple, Union

import redis.asyncio as aioredis

from auth.security import (
    DEFAULT_ALGORITHM,
    create_credential,
    decode_credential,
    new_session_token,
    verify_password,
)
from core.cache import TTLCache
from core.errors import Forbidden, SessionInvalidated, Unauthenticated
from database import redis_client
from database.identity_repository import IdentityKind, IdentityRepository
from database.schemas import Student, User

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """An authenticated caller: which identity, which kind, which session."""
    identity_id: str
    kind: IdentityKind
    session_token: str

    @property
    def is_staff(self) -> bool:
        return self.kind == "user"


# ─── Session token caches ──────────────────────────────────────────────────────

class SessionTokenCache(Protocol):
    async def get(self, identity_id: str) -> Optional[str]: ...

    async def set(self, identity_id: str, token: str) -> None: ...

    async def discard(self, identity_id: str) -> None: ...

    async def aclose(self) -> None: ...


class LocalSessionCache:
    """Process-local identity -> token map. ttl=0 keeps entries until restart."""

    def __init__(self, ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self._entries = TTLCache(clock=clock)
        self._ttl = ttl or None

    async def get(self, identity_id: str) -> Optional[str]:
        return self._entries.get(identity_id)

    async def set(self, identity_id: str, token: str) -> None:
        self._entries.set(identity_id, token, self._ttl)

    async def discard(self, identity_id: str) -> None:
        self._entries.invalidate(identity_id)

    async def aclose(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisSessionCache:
    """Identity -> token map shared by every process through redis."""

    def __init__(self, client: aioredis.Redis, ttl: int = 300):
        self._client = client
        self._ttl = ttl or None

    async def get(self, identity_id: str) -> Optional[str]:
        return await redis_client.get_session_token(self._client, identity_id)

    async def set(self, identity_id: str, token: str) -> None:
        await redis_client.save_session_token(self._client, identity_id, token, self._ttl)

    async def discard(self, identity_id: str) -> None:
        await redis_client.clear_session_token(self._client, identity_id)

    async def aclose(self) -> None:
        await self._client.aclose()


# ─── Authority ─────────────────────────────────────────────────────────────────

class SessionAuthority:
    def __init__(
        self,
        identities: IdentityRepository,
        cache: SessionTokenCache,
        secret: str,
        algorithm: str = DEFAULT_ALGORITHM,
        credential_ttl: timedelta = timedelta(days=30),
    ):
        self.identities = identities
        self.cache = cache
        self._secret = secret
        self._algorithm = algorithm
        self._credential_ttl = credential_ttl

    async def _start_session(self, kind: IdentityKind, identity_id: str) -> Tuple[Principal, str]:
        """Rotate the identity's token: persist, then cache, then sign."""
        token = new_session_token()
        await self.identities.set_session_token(kind, identity_id, token)
        await self.cache.set(identity_id, token)
        principal = Principal(identity_id=identity_id, kind=kind, session_token=token)
        credential = create_credential(
            identity_id, kind, token, self._secret, self._algorithm, self._credential_ttl
        )
        log.info("Login: %s %s", kind, identity_id)
        return principal, credential

    async def login_user(self, email: str, password: str) -> Tuple[User, str]:
        user = await self.identities.get_user_by_email(email)
        if user is None or not verify_password(password, user.password):
            raise Unauthenticated("Invalid email or password")
        _, credential = await self._start_session("user", user.id)
        return user, credential

    async def login_student(self, identifier: str, password: str) -> Tuple[Student, str]:
        """Log a student in by email or phone number."""
        student = await self.identities.get_student_by_email(identifier)
        if student is None:
            student = await self.identities.get_student_by_phone(identifier)
        if student is None:
            raise Unauthenticated("Invalid credentials")
        if student.status == "blocked":
            raise Forbidden("Your account has been blocked. Contact your teacher.")
        if student.status == "pending":
            raise Forbidden("Your account is pending approval. Contact your teacher.")
        if not verify_password(password, student.password):
            raise Unauthenticated("Invalid credentials")
        _, credential = await self._start_session("student", student.id)
        return student, credential

    def verify_credential(self, credential: str) -> Principal:
        """Signature and expiry only; does not check the session token."""
        claims = decode_credential(credential, self._secret, self._algorithm)
        if claims is None:
            raise Unauthenticated("Invalid token")
        session_token = claims.get("sessionToken")
        if claims.get("userId"):
            kind, identity_id = "user", claims["userId"]
        elif claims.get("studentId"):
            kind, identity_id = "student", claims["studentId"]
        else:
            raise Unauthenticated("Invalid token")
        if not session_token:
            raise Unauthenticated("Invalid token")
        return Principal(identity_id=identity_id, kind=kind, session_token=session_token)

    async def _check_session(self, principal: Principal) -> None:
        cached = await self.cache.get(principal.identity_id)
        if cached is not None:
            if cached != principal.session_token:
                log.warning("Rejected superseded session for %s %s", principal.kind, principal.identity_id)
                raise SessionInvalidated()
            return

        stored = await self.identities.get_session_token(principal.kind, principal.identity_id)
        if stored is None or stored != principal.session_token:
            log.warning("Rejected stale session for %s %s", principal.kind, principal.identity_id)
            raise SessionInvalidated()
        await self.cache.set(principal.identity_id, stored)

    async def authenticate(self, credential: str) -> Principal:
        principal = self.verify_credential(credential)
        await self._check_session(principal)
        return principal

    async def require_admin(self, credential: str) -> Principal:
        """Staff only. A valid student credential is Forbidden, not Unauthenticated."""
        principal = self.verify_credential(credential)
        if not principal.is_staff:
            raise Forbidden("Students cannot access admin routes")
        await self._check_session(principal)
        return principal

    async def revoke(self, kind: IdentityKind, identity_id: str) -> None:
        """Clear the identity's session token; every outstanding credential stops working."""
        await self.identities.set_session_token(kind, identity_id, None)
        await self.cache.discard(identity_id)

    async def forget(self, identity_id: str) -> None:
        """Drop the cached token of an identity that no longer exists."""
        await self.cache.discard(identity_id)

    async def logout(self, principal: Principal) -> None:
        await self.revoke(principal.kind, principal.identity_id)
        log.info("Logout: %s %s", principal.kind, principal.identity_id)

    async def resolve_identity(self, principal: Principal) -> Union[User, Student, None]:
        if principal.is_staff:
            return await self.identities.get_user(principal.identity_id)
        return await self.identities.get_student(principal.identity_id)
