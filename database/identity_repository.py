"""
Staff users, students and password-reset tokens.

Users and students live in separate collections but share one id space: new
identity ids are drawn until they exist in neither, so an id alone always
resolves to at most one identity. Each identity's sessionToken field is the
source of truth for which login is current.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import List, Literal, Optional

from core.cache import CacheTTL, TTLCache
from core.errors import Conflict
from database import collections as col
from database.document_store import DocumentStore, generate_id
from database.schemas import (
    PasswordResetToken,
    Student,
    StudentResponse,
    StudentStatus,
    StudentUpdate,
    StudentWithPassword,
    User,
    UserResponse,
    newest_first,
    utcnow,
)

log = logging.getLogger(__name__)

IdentityKind = Literal["user", "student"]

STUDENTS_LIST = "students_list"

_COLLECTION_BY_KIND = {"user": col.USERS, "student": col.STUDENTS}


class IdentityRepository:
    def __init__(self, store: DocumentStore, cache: TTLCache, ttl: CacheTTL):
        self.store = store
        self.cache = cache
        self.ttl = ttl

    async def allocate_identity_id(self) -> str:
        """A fresh id unused by both users and students."""
        while True:
            candidate = generate_id()
            taken = await asyncio.gather(
                self.store.exists(col.USERS, candidate),
                self.store.exists(col.STUDENTS, candidate),
            )
            if not any(taken):
                return candidate

    # ─── Session tokens ────────────────────────────────────────────────────────

    async def set_session_token(self, kind: IdentityKind, identity_id: str, token: Optional[str]) -> bool:
        updated = await self.store.update(_COLLECTION_BY_KIND[kind], identity_id, {"sessionToken": token})
        if kind == "student":
            self.cache.invalidate(f"student_{identity_id}")
        return updated

    async def get_session_token(self, kind: IdentityKind, identity_id: str) -> Optional[str]:
        """The persisted token, read straight from the store (never cached)."""
        doc = await self.store.get(_COLLECTION_BY_KIND[kind], identity_id)
        if doc is None:
            return None
        return doc.get("sessionToken")

    # ==========================================
    # USERS
    # ==========================================

    async def get_user(self, user_id: str) -> Optional[User]:
        doc = await self.store.get(col.USERS, user_id)
        return User.model_validate(doc) if doc else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        doc = await self.store.find_one(col.USERS, {"email": email})
        return User.model_validate(doc) if doc else None

    async def get_user_by_username(self, username: str) -> Optional[User]:
        doc = await self.store.find_one(col.USERS, {"username": username})
        return User.model_validate(doc) if doc else None

    async def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        display_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        user = User(
            id=await self.allocate_identity_id(),
            username=username,
            email=email,
            password=password_hash,
            display_name=display_name or username,
            phone=phone,
            dark_mode=False,
            created_at=utcnow(),
        )
        await self.store.create(col.USERS, user.to_document(), user.id)
        return user

    async def update_user(self, user_id: str, changes: dict) -> Optional[User]:
        """Apply camelCase field changes to a user document."""
        if not await self.store.update(col.USERS, user_id, changes):
            return None
        return await self.get_user(user_id)

    async def delete_user(self, user_id: str) -> bool:
        """Delete a user with their attempts, notifications and reset tokens."""
        if not await self.store.exists(col.USERS, user_id):
            return False
        attempts, notifications, tokens = await asyncio.gather(
            self.store.find(col.QUIZ_ATTEMPTS, {"userId": user_id}),
            self.store.find(col.NOTIFICATIONS, {"userId": user_id}),
            self.store.find(col.PASSWORD_RESET_TOKENS, {"userId": user_id}),
        )
        await asyncio.gather(
            self.store.delete_many(col.QUIZ_ATTEMPTS, [d["id"] for d in attempts]),
            self.store.delete_many(col.NOTIFICATIONS, [d["id"] for d in notifications]),
            self.store.delete_many(col.PASSWORD_RESET_TOKENS, [d["id"] for d in tokens]),
        )
        await self.store.delete(col.USERS, user_id)
        log.info(
            "Deleted user %s (%d attempts, %d notifications, %d reset tokens)",
            user_id, len(attempts), len(notifications), len(tokens),
        )
        return True

    async def get_all_users(self) -> List[UserResponse]:
        docs = await self.store.find(col.USERS)
        users = newest_first((User.model_validate(d) for d in docs), "created_at")
        return [UserResponse.model_validate(u.model_dump()) for u in users]

    # ==========================================
    # STUDENTS
    # ==========================================

    async def get_students(self) -> List[StudentResponse]:
        """All students without credentials, newest first."""
        cached = self.cache.get(STUDENTS_LIST)
        if cached is not None:
            return cached
        docs = await self.store.find(col.STUDENTS)
        students = newest_first((Student.model_validate(d) for d in docs), "created_at")
        result = [StudentResponse.model_validate(s.model_dump()) for s in students]
        self.cache.set(STUDENTS_LIST, result, self.ttl.students)
        return result

    async def get_students_with_passwords(self) -> List[StudentWithPassword]:
        """Admin view exposing the cleartext password mirror."""
        docs = await self.store.find(col.STUDENTS)
        students = newest_first((Student.model_validate(d) for d in docs), "created_at")
        result = []
        for s in students:
            data = s.model_dump(exclude={"password"})
            # Older records stored an email in the phone field
            if "@" in data["phone"]:
                data["phone"] = ""
            result.append(StudentWithPassword(password=s.plain_password or "", **data))
        return result

    async def get_student(self, student_id: str) -> Optional[Student]:
        key = f"student_{student_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        doc = await self.store.get(col.STUDENTS, student_id)
        if doc is None:
            return None
        student = Student.model_validate(doc)
        self.cache.set(key, student, self.ttl.students)
        return student

    async def get_student_by_email(self, email: str) -> Optional[Student]:
        doc = await self.store.find_one(col.STUDENTS, {"email": email})
        return Student.model_validate(doc) if doc else None

    async def get_student_by_phone(self, phone: str) -> Optional[Student]:
        if not phone:
            return None
        doc = await self.store.find_one(col.STUDENTS, {"phone": phone})
        return Student.model_validate(doc) if doc else None

    async def _check_student_unique(self, email: str, phone: Optional[str], exclude_id: Optional[str] = None):
        by_email, by_phone = await asyncio.gather(
            self.get_student_by_email(email),
            self.get_student_by_phone(phone or ""),
        )
        if by_email is not None and by_email.id != exclude_id:
            raise Conflict("A student with this email already exists")
        if by_phone is not None and by_phone.id != exclude_id:
            raise Conflict("A student with this phone already exists")

    async def create_student(
        self,
        email: str,
        password_hash: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        plain_password: Optional[str] = None,
        status: StudentStatus = "approved",
    ) -> StudentResponse:
        """Create a student; raises Conflict on a duplicate email or phone."""
        await self._check_student_unique(email, phone)
        student = Student(
            id=await self.allocate_identity_id(),
            name=name or email.split("@")[0],
            email=email,
            phone=phone or "",
            password=password_hash,
            plain_password=plain_password,
            enrollment_number=f"ENR{int(time.time() * 1000)}",
            status=status,
            created_at=utcnow(),
        )
        await self.store.create(col.STUDENTS, student.to_document(), student.id)
        self.cache.invalidate(STUDENTS_LIST)
        return StudentResponse.model_validate(student.model_dump())

    async def update_student(self, student_id: str, payload: StudentUpdate) -> Optional[StudentResponse]:
        if not await self.store.exists(col.STUDENTS, student_id):
            return None
        await self._check_student_unique(payload.email, payload.phone, exclude_id=student_id)
        await self.store.update(col.STUDENTS, student_id, payload.to_document(exclude_none=True))
        self.cache.invalidate(STUDENTS_LIST, f"student_{student_id}")
        student = await self.get_student(student_id)
        return StudentResponse.model_validate(student.model_dump()) if student else None

    async def update_student_password(
        self, student_id: str, password_hash: str, plain_password: Optional[str] = None
    ) -> bool:
        changes = {"password": password_hash}
        if plain_password:
            changes["plainPassword"] = plain_password
        updated = await self.store.update(col.STUDENTS, student_id, changes)
        self.cache.invalidate(f"student_{student_id}")
        return updated

    async def update_student_status(self, student_id: str, status: StudentStatus) -> bool:
        updated = await self.store.update(col.STUDENTS, student_id, {"status": status})
        self.cache.invalidate(STUDENTS_LIST, f"student_{student_id}")
        return updated

    async def delete_student(self, student_id: str) -> bool:
        deleted = await self.store.delete(col.STUDENTS, student_id)
        self.cache.invalidate(STUDENTS_LIST, f"student_{student_id}")
        return deleted

    # ==========================================
    # PASSWORD RESET TOKENS
    # ==========================================

    async def create_password_reset_token(self, user_id: str, token: str, expires_at: datetime) -> PasswordResetToken:
        """Store a reset token, deleting the user's earlier unused tokens first."""
        stale = await self.store.find(col.PASSWORD_RESET_TOKENS, {"userId": user_id, "used": False})
        await self.store.delete_many(col.PASSWORD_RESET_TOKENS, [d["id"] for d in stale])
        reset = PasswordResetToken(
            id=generate_id(),
            user_id=user_id,
            token=token,
            expires_at=expires_at,
            used=False,
            created_at=utcnow(),
        )
        await self.store.create(col.PASSWORD_RESET_TOKENS, reset.to_document(), reset.id)
        return reset

    async def get_password_reset_token(self, token: str) -> Optional[PasswordResetToken]:
        doc = await self.store.find_one(col.PASSWORD_RESET_TOKENS, {"token": token})
        return PasswordResetToken.model_validate(doc) if doc else None

    async def mark_token_used(self, token: str) -> bool:
        doc = await self.store.find_one(col.PASSWORD_RESET_TOKENS, {"token": token})
        if doc is None:
            return False
        return await self.store.update(col.PASSWORD_RESET_TOKENS, doc["id"], {"used": True})
