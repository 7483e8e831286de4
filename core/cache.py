"""
Process-local read cache with per-entry expiry and prefix invalidation.

Expiry is checked lazily on read; there is no background sweep. Writers
invalidate explicitly after every successful mutation, the TTL only bounds how
long an entry survives a write that happened in another process.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.config import Settings

_MISSING = object()


@dataclass(frozen=True)
class CacheTTL:
    """Per-entity TTLs in seconds."""
    subjects: float = 60
    units: float = 60
    materials: float = 60
    semester_stats: float = 120
    quizzes: float = 30
    students: float = 60

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheTTL":
        return cls(
            subjects=settings.ttl_subjects,
            units=settings.ttl_units,
            materials=settings.ttl_materials,
            semester_stats=settings.ttl_semester_stats,
            quizzes=settings.ttl_quizzes,
            students=settings.ttl_students,
        )


class TTLCache:
    """Key/value map where every entry carries its own expiry time."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key, _MISSING)
            if entry is _MISSING:
                return default
            value, expires_at = entry
            if expires_at is not None and self._clock() > expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl: Optional[float]) -> None:
        """Store value for ttl seconds. ttl=None keeps it until invalidated."""
        expires_at = None if ttl is None else self._clock() + ttl
        with self._lock:
            self._entries[key] = (value, expires_at)

    def invalidate(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with prefix. Linear in the number of keys."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[str]:
        """Keys currently held, including entries that expired but were not read yet."""
        with self._lock:
            return list(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
