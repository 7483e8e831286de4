"""
Notice board and per-student notifications.
Notifications are fanned out at creation time: one document per recipient.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from database import collections as col
from database.document_store import DocumentStore, generate_id
from database.schemas import Notice, NoticeCreate, NoticeUpdate, Notification, newest_first, utcnow

log = logging.getLogger(__name__)

PRIORITY_RANK = {"urgent": 0, "important": 1, "normal": 2}


class NoticeRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    # ==========================================
    # NOTICES
    # ==========================================

    async def get_notices(self) -> List[Notice]:
        docs = await self.store.find(col.NOTICES)
        return newest_first((Notice.model_validate(d) for d in docs), "created_at")

    async def get_active_notices(self, now: Optional[datetime] = None) -> List[Notice]:
        """Unexpired notices: urgent, then important, then normal; newest first within a priority."""
        now = now or utcnow()
        active = [n for n in await self.get_notices() if n.expires_at is not None and n.expires_at > now]
        # get_notices is newest first and sorted() is stable
        return sorted(active, key=lambda n: PRIORITY_RANK.get(n.priority, 2))

    async def get_notice(self, notice_id: str) -> Optional[Notice]:
        doc = await self.store.get(col.NOTICES, notice_id)
        return Notice.model_validate(doc) if doc else None

    async def create_notice(self, payload: NoticeCreate) -> Notice:
        notice = Notice(id=generate_id(), created_at=utcnow(), **payload.model_dump())
        await self.store.create(col.NOTICES, notice.to_document(), notice.id)
        return notice

    async def update_notice(self, notice_id: str, payload: NoticeUpdate) -> Optional[Notice]:
        if not await self.store.update(col.NOTICES, notice_id, payload.to_document(exclude_unset=True)):
            return None
        return await self.get_notice(notice_id)

    async def delete_notice(self, notice_id: str) -> bool:
        return await self.store.delete(col.NOTICES, notice_id)

    # ==========================================
    # NOTIFICATIONS
    # ==========================================

    async def get_notifications(self, user_id: str) -> List[Notification]:
        docs = await self.store.find(col.NOTIFICATIONS, {"userId": user_id})
        return newest_first((Notification.model_validate(d) for d in docs), "created_at")

    async def get_notification(self, notification_id: str) -> Optional[Notification]:
        doc = await self.store.get(col.NOTIFICATIONS, notification_id)
        return Notification.model_validate(doc) if doc else None

    async def mark_notification_read(self, notification_id: str) -> bool:
        return await self.store.update(col.NOTIFICATIONS, notification_id, {"read": True})

    async def mark_all_notifications_read(self, user_id: str) -> int:
        docs = await self.store.find(col.NOTIFICATIONS, {"userId": user_id})
        results = await asyncio.gather(
            *(self.store.update(col.NOTIFICATIONS, d["id"], {"read": True}) for d in docs)
        )
        return sum(1 for ok in results if ok)

    async def clear_all_notifications(self, user_id: str) -> int:
        docs = await self.store.find(col.NOTIFICATIONS, {"userId": user_id})
        return await self.store.delete_many(col.NOTIFICATIONS, [d["id"] for d in docs])

    async def notify_all_students(self, title: str, message: str, type: str) -> int:
        """Create one unread notification per approved student. Returns how many."""
        student_docs = await self.store.find(col.STUDENTS, {"status": "approved"})
        now = utcnow()
        notifications = [
            Notification(id=generate_id(), user_id=d["id"], title=title, message=message, type=type, created_at=now)
            for d in student_docs
        ]
        await asyncio.gather(
            *(self.store.create(col.NOTIFICATIONS, n.to_document(), n.id) for n in notifications)
        )
        log.info("Notified %d students: %s", len(notifications), title)
        return len(notifications)
