"""
Content hierarchy: semesters -> subjects -> units -> study materials.

Reads go through the TTL cache; every successful write invalidates the keys
it could have made stale before returning. Deletes cascade children first.
"""

import asyncio
import logging
from typing import List, Optional

from core.cache import CacheTTL, TTLCache
from core.errors import ValidationFailed
from database import collections as col
from database.document_store import DocumentStore, generate_id
from database.schemas import (
    SEMESTERS,
    Semester,
    SemesterStats,
    StudyMaterial,
    StudyMaterialCreate,
    StudyMaterialUpdate,
    Subject,
    SubjectCreate,
    SubjectUpdate,
    Unit,
    UnitCreate,
    UnitUpdate,
    utcnow,
)

log = logging.getLogger(__name__)

SUBJECTS_ALL = "subjects_all"


class ContentRepository:
    def __init__(self, store: DocumentStore, cache: TTLCache, ttl: CacheTTL):
        self.store = store
        self.cache = cache
        self.ttl = ttl

    # ==========================================
    # SEMESTERS
    # ==========================================

    async def get_semesters(self) -> List[Semester]:
        return list(SEMESTERS)

    async def get_semester_stats(self, semester_number: int) -> SemesterStats:
        """Counts for one semester; units and material counts are fetched concurrently."""
        key = f"semester_stats_{semester_number}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        subjects = await self.get_subjects_by_semester(semester_number)
        unit_lists = await asyncio.gather(*(self.get_units_by_subject(s.id) for s in subjects))
        units = [u for batch in unit_lists for u in batch]
        material_counts = await asyncio.gather(
            *(self.store.count(col.STUDY_MATERIALS, {"unitId": u.id}) for u in units)
        )

        stats = SemesterStats(
            subject_count=len(subjects),
            chapter_count=len(units),
            material_count=sum(material_counts),
        )
        self.cache.set(key, stats, self.ttl.semester_stats)
        return stats

    # ==========================================
    # SUBJECTS
    # ==========================================

    async def get_subjects(self) -> List[Subject]:
        cached = self.cache.get(SUBJECTS_ALL)
        if cached is not None:
            return cached
        docs = await self.store.find(col.SUBJECTS)
        subjects = sorted(
            (Subject.model_validate(d) for d in docs),
            key=lambda s: (s.semester_number, s.order),
        )
        self.cache.set(SUBJECTS_ALL, subjects, self.ttl.subjects)
        return subjects

    async def get_subject(self, subject_id: str) -> Optional[Subject]:
        key = f"subject_{subject_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        doc = await self.store.get(col.SUBJECTS, subject_id)
        if doc is None:
            return None
        subject = Subject.model_validate(doc)
        self.cache.set(key, subject, self.ttl.subjects)
        return subject

    async def get_subjects_by_semester(self, semester_number: int) -> List[Subject]:
        key = f"subjects_sem_{semester_number}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        docs = await self.store.find(col.SUBJECTS, {"semesterNumber": semester_number})
        subjects = sorted((Subject.model_validate(d) for d in docs), key=lambda s: s.order)
        self.cache.set(key, subjects, self.ttl.subjects)
        return subjects

    async def create_subject(self, payload: SubjectCreate) -> Subject:
        subject = Subject(id=generate_id(), **payload.model_dump())
        await self.store.create(col.SUBJECTS, subject.to_document(), subject.id)
        self.cache.invalidate(SUBJECTS_ALL, f"subjects_sem_{subject.semester_number}")
        self.cache.invalidate_prefix("semester_stats_")
        return subject

    async def update_subject(self, subject_id: str, payload: SubjectUpdate) -> Optional[Subject]:
        changes = payload.to_document(exclude_unset=True)
        if not await self.store.update(col.SUBJECTS, subject_id, changes):
            return None
        # Semester number may have changed, so every semester list is suspect
        self.cache.invalidate(SUBJECTS_ALL, f"subject_{subject_id}")
        self.cache.invalidate_prefix("subjects_sem_")
        self.cache.invalidate_prefix("semester_stats_")
        doc = await self.store.get(col.SUBJECTS, subject_id)
        return Subject.model_validate(doc) if doc else None

    async def delete_subject(self, subject_id: str) -> bool:
        """Delete a subject and, first, every unit (and material) under it."""
        if not await self.store.exists(col.SUBJECTS, subject_id):
            return False
        unit_docs = await self.store.find(col.UNITS, {"subjectId": subject_id})
        for unit_doc in unit_docs:
            await self.delete_unit(unit_doc["id"])
        await self.store.delete(col.SUBJECTS, subject_id)

        self.cache.invalidate(SUBJECTS_ALL, f"subject_{subject_id}", f"units_{subject_id}")
        self.cache.invalidate_prefix("subjects_sem_")
        self.cache.invalidate_prefix("semester_stats_")
        log.info("Deleted subject %s with %d units", subject_id, len(unit_docs))
        return True

    # ==========================================
    # UNITS
    # ==========================================

    async def get_units_by_subject(self, subject_id: str) -> List[Unit]:
        key = f"units_{subject_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        docs = await self.store.find(col.UNITS, {"subjectId": subject_id})
        units = sorted((Unit.model_validate(d) for d in docs), key=lambda u: u.order)
        self.cache.set(key, units, self.ttl.units)
        return units

    async def get_unit(self, unit_id: str) -> Optional[Unit]:
        key = f"unit_{unit_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        doc = await self.store.get(col.UNITS, unit_id)
        if doc is None:
            return None
        unit = Unit.model_validate(doc)
        self.cache.set(key, unit, self.ttl.units)
        return unit

    async def create_unit(self, payload: UnitCreate) -> Optional[Unit]:
        """Returns None when the parent subject does not exist."""
        if not await self.store.exists(col.SUBJECTS, payload.subject_id):
            return None
        unit = Unit(id=generate_id(), **payload.model_dump())
        await self.store.create(col.UNITS, unit.to_document(), unit.id)
        self.cache.invalidate(f"units_{unit.subject_id}")
        self.cache.invalidate_prefix("semester_stats_")
        return unit

    async def update_unit(self, unit_id: str, payload: UnitUpdate) -> Optional[Unit]:
        before = await self.store.get(col.UNITS, unit_id)
        if before is None:
            return None
        changes = payload.to_document(exclude_unset=True)
        new_subject_id = changes.get("subjectId")
        if new_subject_id and not await self.store.exists(col.SUBJECTS, new_subject_id):
            raise ValidationFailed("Subject not found")
        if not await self.store.update(col.UNITS, unit_id, changes):
            return None

        self.cache.invalidate(f"unit_{unit_id}", f"units_{before['subjectId']}")
        if new_subject_id:
            self.cache.invalidate(f"units_{new_subject_id}")
            self.cache.invalidate_prefix("semester_stats_")
        doc = await self.store.get(col.UNITS, unit_id)
        return Unit.model_validate(doc) if doc else None

    async def delete_unit(self, unit_id: str) -> bool:
        """Delete a unit after deleting its materials."""
        if not await self.store.exists(col.UNITS, unit_id):
            return False
        material_docs = await self.store.find(col.STUDY_MATERIALS, {"unitId": unit_id})
        await self.store.delete_many(col.STUDY_MATERIALS, [d["id"] for d in material_docs])
        await self.store.delete(col.UNITS, unit_id)

        self.cache.invalidate(f"unit_{unit_id}")
        self.cache.invalidate_prefix("units_")
        self.cache.invalidate_prefix("materials_")
        self.cache.invalidate_prefix("semester_stats_")
        log.info("Deleted unit %s with %d materials", unit_id, len(material_docs))
        return True

    # ==========================================
    # STUDY MATERIALS
    # ==========================================

    async def get_materials_by_unit(self, unit_id: str) -> List[StudyMaterial]:
        key = f"materials_{unit_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        docs = await self.store.find(col.STUDY_MATERIALS, {"unitId": unit_id})
        materials = sorted((StudyMaterial.model_validate(d) for d in docs), key=lambda m: m.order)
        self.cache.set(key, materials, self.ttl.materials)
        return materials

    async def get_material(self, material_id: str) -> Optional[StudyMaterial]:
        doc = await self.store.get(col.STUDY_MATERIALS, material_id)
        return StudyMaterial.model_validate(doc) if doc else None

    async def get_all_materials(self) -> List[StudyMaterial]:
        docs = await self.store.find(col.STUDY_MATERIALS)
        return sorted((StudyMaterial.model_validate(d) for d in docs), key=lambda m: m.order)

    async def create_material(self, payload: StudyMaterialCreate) -> Optional[StudyMaterial]:
        """Returns None when the parent unit does not exist."""
        if not await self.store.exists(col.UNITS, payload.unit_id):
            return None
        material = StudyMaterial(id=generate_id(), uploaded_at=utcnow(), **payload.model_dump())
        await self.store.create(col.STUDY_MATERIALS, material.to_document(), material.id)
        self.cache.invalidate(f"materials_{material.unit_id}")
        self.cache.invalidate_prefix("semester_stats_")
        return material

    async def update_material(self, material_id: str, payload: StudyMaterialUpdate) -> Optional[StudyMaterial]:
        before = await self.store.get(col.STUDY_MATERIALS, material_id)
        if before is None:
            return None
        changes = payload.to_document(exclude_unset=True)
        new_unit_id = changes.get("unitId")
        if new_unit_id and not await self.store.exists(col.UNITS, new_unit_id):
            raise ValidationFailed("Unit not found")
        if not await self.store.update(col.STUDY_MATERIALS, material_id, changes):
            return None

        self.cache.invalidate(f"materials_{before['unitId']}")
        if new_unit_id:
            self.cache.invalidate(f"materials_{new_unit_id}")
            self.cache.invalidate_prefix("semester_stats_")
        doc = await self.store.get(col.STUDY_MATERIALS, material_id)
        return StudyMaterial.model_validate(doc) if doc else None

    async def delete_material(self, material_id: str) -> bool:
        doc = await self.store.get(col.STUDY_MATERIALS, material_id)
        if doc is None:
            return False
        await self.store.delete(col.STUDY_MATERIALS, material_id)
        self.cache.invalidate(f"materials_{doc['unitId']}")
        self.cache.invalidate_prefix("semester_stats_")
        return True
