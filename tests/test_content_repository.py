import pytest

from core.errors import ValidationFailed
from database import collections as col
from database.content_repository import SUBJECTS_ALL
from database.schemas import (
    SEMESTERS,
    StudyMaterialCreate,
    StudyMaterialUpdate,
    SubjectCreate,
    SubjectUpdate,
    UnitCreate,
    UnitUpdate,
)


async def make_subject(content, name="Mathematics", semester=1, order=0):
    return await content.create_subject(SubjectCreate(name=name, semester_number=semester, order=order))


async def make_unit(content, subject_id, title="Limits", order=0):
    return await content.create_unit(UnitCreate(subject_id=subject_id, title=title, order=order))


async def make_material(content, unit_id, title="Notes", order=0):
    return await content.create_material(
        StudyMaterialCreate(unit_id=unit_id, title=title, type="pdf", url="https://cdn.example.com/n.pdf", order=order)
    )


async def test_semester_stats_counts_subjects_units_and_materials(content):
    s1 = await make_subject(content, "Physics", semester=2)
    await make_subject(content, "Chemistry", semester=2)
    await make_subject(content, "Biology", semester=3)
    unit_a = await make_unit(content, s1.id, "A")
    await make_unit(content, s1.id, "B")
    for n in range(3):
        await make_material(content, unit_a.id, f"m{n}")

    stats = await content.get_semester_stats(2)

    assert (stats.subject_count, stats.chapter_count, stats.material_count) == (2, 2, 3)
    empty = await content.get_semester_stats(4)
    assert (empty.subject_count, empty.chapter_count, empty.material_count) == (0, 0, 0)


def test_semesters_are_fixed():
    assert [s.name for s in SEMESTERS] == ["Semester 1", "Semester 2", "Semester 3", "Semester 4"]


async def test_subject_reads_are_cached(content, store):
    await make_subject(content)
    await content.get_subjects()
    reads = store.reads
    await content.get_subjects()
    assert store.reads == reads


async def test_subjects_sorted_by_semester_then_order(content):
    await make_subject(content, "C", semester=2, order=0)
    await make_subject(content, "B", semester=1, order=5)
    await make_subject(content, "A", semester=1, order=1)
    assert [s.name for s in await content.get_subjects()] == ["A", "B", "C"]


async def test_subject_write_invalidates_lists(content):
    subject = await make_subject(content, "Algebra", semester=1)
    assert [s.name for s in await content.get_subjects_by_semester(1)] == ["Algebra"]
    assert await content.get_subjects_by_semester(2) == []
    assert (await content.get_semester_stats(2)).subject_count == 0

    await content.update_subject(subject.id, SubjectUpdate(semester_number=2, name="Linear Algebra"))

    assert await content.get_subjects_by_semester(1) == []
    assert [s.name for s in await content.get_subjects_by_semester(2)] == ["Linear Algebra"]
    assert (await content.get_subject(subject.id)).name == "Linear Algebra"
    assert (await content.get_semester_stats(2)).subject_count == 1


async def test_update_missing_subject_returns_none(content):
    assert await content.update_subject("missing", SubjectUpdate(name="x")) is None
    assert await content.delete_subject("missing") is False


async def test_delete_subject_cascades_to_units_and_materials(content, store):
    subject = await make_subject(content)
    other = await make_subject(content, "History")
    units = [await make_unit(content, subject.id, f"u{n}") for n in range(2)]
    for unit in units:
        await make_material(content, unit.id)
        await make_material(content, unit.id, "More")
    kept_unit = await make_unit(content, other.id)
    await make_material(content, kept_unit.id)

    # warm the caches
    await content.get_subjects()
    await content.get_subject(subject.id)
    await content.get_semester_stats(1)
    await content.get_units_by_subject(subject.id)
    for unit in units:
        await content.get_unit(unit.id)
        await content.get_materials_by_unit(unit.id)
    assert f"unit_{units[0].id}" in content.cache

    assert await content.delete_subject(subject.id) is True

    stale = (f"subject_{subject.id}", f"units_{subject.id}", SUBJECTS_ALL, "subjects_sem_", "semester_stats_")
    stale += tuple(f"unit_{u.id}" for u in units) + tuple(f"materials_{u.id}" for u in units)
    assert [key for key in content.cache.keys() if key.startswith(stale)] == []

    assert await content.get_subject(subject.id) is None
    assert await content.get_units_by_subject(subject.id) == []
    assert await content.get_materials_by_unit(units[0].id) == []
    assert await store.find(col.UNITS, {"subjectId": subject.id}) == []
    assert await store.count(col.STUDY_MATERIALS) == 1
    assert len(await content.get_units_by_subject(other.id)) == 1


async def test_create_unit_for_missing_subject(content):
    assert await make_unit(content, "missing") is None


async def test_moving_a_unit_updates_both_lists(content):
    first = await make_subject(content, "First")
    second = await make_subject(content, "Second")
    unit = await make_unit(content, first.id)
    assert len(await content.get_units_by_subject(first.id)) == 1
    assert await content.get_units_by_subject(second.id) == []

    moved = await content.update_unit(unit.id, UnitUpdate(subject_id=second.id))

    assert moved.subject_id == second.id
    assert await content.get_units_by_subject(first.id) == []
    assert [u.id for u in await content.get_units_by_subject(second.id)] == [unit.id]
    assert (await content.get_unit(unit.id)).subject_id == second.id


async def test_moving_a_unit_to_unknown_subject_is_rejected(content):
    subject = await make_subject(content)
    unit = await make_unit(content, subject.id)
    with pytest.raises(ValidationFailed):
        await content.update_unit(unit.id, UnitUpdate(subject_id="missing"))


async def test_units_ordered(content):
    subject = await make_subject(content)
    await make_unit(content, subject.id, "Third", order=3)
    await make_unit(content, subject.id, "First", order=1)
    assert [u.title for u in await content.get_units_by_subject(subject.id)] == ["First", "Third"]


async def test_material_lifecycle_keeps_cache_coherent(content):
    subject = await make_subject(content)
    unit = await make_unit(content, subject.id)
    assert await content.get_materials_by_unit(unit.id) == []

    material = await make_material(content, unit.id, "Slides")
    assert material.uploaded_at is not None
    assert [m.title for m in await content.get_materials_by_unit(unit.id)] == ["Slides"]

    await content.update_material(material.id, StudyMaterialUpdate(title="Slides v2"))
    assert [m.title for m in await content.get_materials_by_unit(unit.id)] == ["Slides v2"]

    assert await content.delete_material(material.id) is True
    assert await content.get_materials_by_unit(unit.id) == []
    assert await content.delete_material(material.id) is False


async def test_create_material_for_missing_unit(content):
    assert await make_material(content, "missing") is None


async def test_all_materials_across_units(content):
    subject = await make_subject(content)
    u1 = await make_unit(content, subject.id, "u1")
    u2 = await make_unit(content, subject.id, "u2")
    await make_material(content, u1.id, "a", order=2)
    await make_material(content, u2.id, "b", order=1)
    assert [m.title for m in await content.get_all_materials()] == ["b", "a"]
