"""
Document store interface and its two backends.

The portal treats persistence as an external document service: documents are
schemaless dicts addressed by (collection, id), queried by equality filters
and by "field in set" lookups. The store caps how many values one "in" lookup
may carry, so callers never see that limit: find_in splits the values into
batches of in_batch_size and issues the batches concurrently.
"""

import asyncio
import copy
import secrets
import string
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import sessionmaker

from database.models import DocumentRecord

ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
ID_LENGTH = 20
DEFAULT_IN_BATCH_SIZE = 30


def generate_id() -> str:
    """20 random characters from a 62-symbol alphabet."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


def chunked(values: Sequence[Any], size: int) -> List[List[Any]]:
    return [list(values[i:i + size]) for i in range(0, len(values), size)]


def sort_documents(docs: List[dict], order_by: Optional[str], descending: bool = False) -> List[dict]:
    """Stable sort on one field; documents missing the field always go last."""
    if not order_by:
        return docs
    present = [d for d in docs if d.get(order_by) is not None]
    missing = [d for d in docs if d.get(order_by) is None]
    present.sort(key=lambda d: d[order_by], reverse=descending)
    return present + missing


class DocumentStore(ABC):
    """Async access to a collection-oriented document store."""

    def __init__(self, in_batch_size: int = DEFAULT_IN_BATCH_SIZE):
        if in_batch_size < 1:
            raise ValueError("in_batch_size must be positive")
        self.in_batch_size = in_batch_size

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def find(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[dict]:
        ...

    @abstractmethod
    async def _find_in_batch(self, collection: str, field: str, values: List[Any]) -> List[dict]:
        """One "field in values" query; len(values) <= in_batch_size."""

    @abstractmethod
    async def count(self, collection: str, where: Optional[Dict[str, Any]] = None) -> int:
        ...

    @abstractmethod
    async def create(self, collection: str, data: dict, doc_id: Optional[str] = None) -> str:
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, changes: dict) -> bool:
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        ...

    @abstractmethod
    async def delete_many(self, collection: str, doc_ids: Iterable[str]) -> int:
        ...

    async def find_one(self, collection: str, where: Dict[str, Any]) -> Optional[dict]:
        docs = await self.find(collection, where=where, limit=1)
        return docs[0] if docs else None

    async def exists(self, collection: str, doc_id: str) -> bool:
        return await self.get(collection, doc_id) is not None

    async def find_in(self, collection: str, field: str, values: Iterable[Any]) -> List[dict]:
        unique = list(dict.fromkeys(values))
        if not unique:
            return []
        batches = chunked(unique, self.in_batch_size)
        results = await asyncio.gather(
            *(self._find_in_batch(collection, field, batch) for batch in batches)
        )
        return [doc for batch in results for doc in batch]

    async def get_many(self, collection: str, doc_ids: Iterable[str]) -> List[dict]:
        return await self.find_in(collection, "id", doc_ids)


# ==========================================
# IN-MEMORY BACKEND
# ==========================================

class MemoryDocumentStore(DocumentStore):
    """
    Dict-backed store used by tests and local development.
    Reads and writes deep-copy documents so callers never share state with it.
    `reads` counts read queries issued, which lets tests observe cache hits.
    """

    def __init__(self, in_batch_size: int = DEFAULT_IN_BATCH_SIZE):
        super().__init__(in_batch_size)
        self._collections: Dict[str, Dict[str, dict]] = {}
        self.reads = 0
        self.in_batches = 0

    def _bucket(self, collection: str) -> Dict[str, dict]:
        return self._collections.setdefault(collection, {})

    @staticmethod
    def _matches(doc: dict, where: Optional[Dict[str, Any]]) -> bool:
        if not where:
            return True
        return all(doc.get(field) == value for field, value in where.items())

    @staticmethod
    def _with_id(doc_id: str, data: dict) -> dict:
        doc = copy.deepcopy(data)
        doc["id"] = doc_id
        return doc

    async def get(self, collection, doc_id):
        self.reads += 1
        data = self._bucket(collection).get(doc_id)
        return None if data is None else self._with_id(doc_id, data)

    async def find(self, collection, where=None, order_by=None, descending=False, limit=None):
        self.reads += 1
        docs = [
            self._with_id(doc_id, data)
            for doc_id, data in self._bucket(collection).items()
            if self._matches(data, where)
        ]
        docs = sort_documents(docs, order_by, descending)
        return docs[:limit] if limit is not None else docs

    async def _find_in_batch(self, collection, field, values):
        self.reads += 1
        self.in_batches += 1
        wanted = set(values)
        bucket = self._bucket(collection)
        if field == "id":
            return [self._with_id(i, bucket[i]) for i in values if i in bucket]
        return [self._with_id(i, d) for i, d in bucket.items() if d.get(field) in wanted]

    async def count(self, collection, where=None):
        self.reads += 1
        return sum(1 for d in self._bucket(collection).values() if self._matches(d, where))

    async def create(self, collection, data, doc_id=None):
        doc_id = doc_id or generate_id()
        body = copy.deepcopy(data)
        body.pop("id", None)
        self._bucket(collection)[doc_id] = body
        return doc_id

    async def update(self, collection, doc_id, changes):
        bucket = self._bucket(collection)
        if doc_id not in bucket:
            return False
        body = copy.deepcopy(changes)
        body.pop("id", None)
        bucket[doc_id].update(body)
        return True

    async def delete(self, collection, doc_id):
        return self._bucket(collection).pop(doc_id, None) is not None

    async def delete_many(self, collection, doc_ids):
        bucket = self._bucket(collection)
        return sum(1 for i in list(doc_ids) if bucket.pop(i, None) is not None)


# ==========================================
# SQL BACKEND
# ==========================================

def _json_condition(field: str, value: Any):
    if field == "id":
        return DocumentRecord.id == value
    element = DocumentRecord.data[field]
    if value is None:
        return element.as_string().is_(None)
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    return element.as_string() == str(value)


def _json_in_condition(field: str, values: List[Any]):
    if field == "id":
        return DocumentRecord.id.in_(values)
    element = DocumentRecord.data[field]
    if all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return element.as_integer().in_(values)
    return element.as_string().in_([str(v) for v in values])


class SqlDocumentStore(DocumentStore):
    """
    Document store on a single SQLAlchemy table.
    SQLAlchemy sessions are synchronous, so every call runs in a worker thread
    and concurrent calls really do overlap.
    """

    def __init__(self, session_factory: sessionmaker, in_batch_size: int = DEFAULT_IN_BATCH_SIZE):
        super().__init__(in_batch_size)
        self._session_factory = session_factory

    @staticmethod
    def _to_doc(record: DocumentRecord) -> dict:
        doc = dict(record.data or {})
        doc["id"] = record.id
        return doc

    def _select(self, db, collection: str, conditions: list):
        return (
            db.query(DocumentRecord)
            .filter(DocumentRecord.collection == collection, *conditions)
            .order_by(DocumentRecord.created_at, DocumentRecord.id)
        )

    # ─── Sync implementations (run in threads) ─────────────────────────────────

    def _get_sync(self, collection, doc_id):
        with self._session_factory() as db:
            record = db.get(DocumentRecord, (collection, doc_id))
            return None if record is None else self._to_doc(record)

    def _find_sync(self, collection, where, order_by, descending, limit):
        conditions = [_json_condition(f, v) for f, v in (where or {}).items()]
        with self._session_factory() as db:
            docs = [self._to_doc(r) for r in self._select(db, collection, conditions).all()]
        docs = sort_documents(docs, order_by, descending)
        return docs[:limit] if limit is not None else docs

    def _find_in_sync(self, collection, field, values):
        with self._session_factory() as db:
            query = self._select(db, collection, [_json_in_condition(field, values)])
            return [self._to_doc(r) for r in query.all()]

    def _count_sync(self, collection, where):
        conditions = [_json_condition(f, v) for f, v in (where or {}).items()]
        with self._session_factory() as db:
            return self._select(db, collection, conditions).count()

    def _create_sync(self, collection, data, doc_id):
        body = dict(data)
        body.pop("id", None)
        with self._session_factory() as db:
            db.add(DocumentRecord(
                collection=collection,
                id=doc_id,
                data=body,
                created_at=datetime.now(timezone.utc),
            ))
            db.commit()
        return doc_id

    def _update_sync(self, collection, doc_id, changes):
        with self._session_factory() as db:
            record = db.get(DocumentRecord, (collection, doc_id))
            if record is None:
                return False
            body = dict(record.data or {})
            body.update({k: v for k, v in changes.items() if k != "id"})
            record.data = body
            db.commit()
            return True

    def _delete_many_sync(self, collection, doc_ids):
        if not doc_ids:
            return 0
        with self._session_factory() as db:
            deleted = (
                db.query(DocumentRecord)
                .filter(DocumentRecord.collection == collection, DocumentRecord.id.in_(doc_ids))
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted

    # ─── Async surface ─────────────────────────────────────────────────────────

    async def get(self, collection, doc_id):
        return await asyncio.to_thread(self._get_sync, collection, doc_id)

    async def find(self, collection, where=None, order_by=None, descending=False, limit=None):
        return await asyncio.to_thread(self._find_sync, collection, where, order_by, descending, limit)

    async def _find_in_batch(self, collection, field, values):
        return await asyncio.to_thread(self._find_in_sync, collection, field, values)

    async def count(self, collection, where=None):
        return await asyncio.to_thread(self._count_sync, collection, where)

    async def create(self, collection, data, doc_id=None):
        return await asyncio.to_thread(self._create_sync, collection, data, doc_id or generate_id())

    async def update(self, collection, doc_id, changes):
        return await asyncio.to_thread(self._update_sync, collection, doc_id, changes)

    async def delete(self, collection, doc_id):
        return await self.delete_many(collection, [doc_id]) > 0

    async def delete_many(self, collection, doc_ids):
        ids = list(doc_ids)
        # Chunked so large cascades stay within the "in" limit too
        counts = await asyncio.gather(
            *(asyncio.to_thread(self._delete_many_sync, collection, batch)
              for batch in chunked(ids, self.in_batch_size))
        )
        return sum(counts)
