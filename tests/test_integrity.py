from datetime import datetime

from bson import ObjectId
from pymongo.errors import PyMongoError
import pytest

from lms.core.integrity import ReferenceIntegrityManager
from lms.errors import (
    AlreadyAssigned,
    AlreadyEnrolled,
    DuplicateEntry,
    DuplicateOrder,
    HasDependents,
    InconsistentReference,
    InvalidIdentifier,
    NotEnrolled,
    ReferenceNotFound,
)
from lms.models import (
    AssignmentUpdate,
    CourseCreate,
    CourseUpdate,
    EntityKind,
    GradeCreate,
    InstructorCreate,
    LessonCreate,
    ModuleUpdate,
)
from lms.services import (
    assignment_service,
    content_service,
    course_service,
    instructor_service,
    student_service,
    submission_service,
)
from lms.services.common import insert_entity

pytestmark = pytest.mark.anyio

# ==================== ENROLLMENT ====================

async def test_enroll_then_unenroll_restores_enrollment_count(store, factory):
    student = await factory.student()
    course = await factory.course()
    sid, cid = str(student["_id"]), str(course["_id"])

    enrolled = await student_service.enroll_student(store, sid, cid)
    assert enrolled["enrolledCourses"] == [course["_id"]]
    assert (await course_service.get_course(store, cid))["enrollmentCount"] == 1

    unenrolled = await student_service.unenroll_student(store, sid, cid)
    assert unenrolled["enrolledCourses"] == []
    assert (await course_service.get_course(store, cid))["enrollmentCount"] == 0


async def test_enroll_twice_fails_and_counts_once(store, factory):
    student = await factory.student()
    course = await factory.course()
    sid, cid = str(student["_id"]), str(course["_id"])

    await student_service.enroll_student(store, sid, cid)
    with pytest.raises(AlreadyEnrolled):
        await student_service.enroll_student(store, sid, cid)

    assert (await course_service.get_course(store, cid))["enrollmentCount"] == 1
    assert (await student_service.get_student(store, sid))["enrolledCourses"] == [course["_id"]]


async def test_unenroll_without_enroll_fails(store, factory):
    student = await factory.student()
    course = await factory.course()

    with pytest.raises(NotEnrolled):
        await student_service.unenroll_student(store, str(student["_id"]), str(course["_id"]))
    assert (await course_service.get_course(store, str(course["_id"])))["enrollmentCount"] == 0


async def test_unenroll_never_drives_count_negative(store, factory):
    student = await factory.student()
    course = await factory.course()
    sid, cid = str(student["_id"]), str(course["_id"])
    await student_service.enroll_student(store, sid, cid)
    # counter drifted below the real enrollment
    await store.update_by_id("courses", course["_id"], {"$set": {"enrollmentCount": 0}})

    await student_service.unenroll_student(store, sid, cid)
    assert (await course_service.get_course(store, cid))["enrollmentCount"] == 0

# ==================== ORDERING ====================

async def test_duplicate_module_order_within_course(store, factory):
    course_x = await factory.course(title="X")
    course_y = await factory.course(title="Y")

    await factory.module(course_x, order=1)
    with pytest.raises(DuplicateOrder):
        await factory.module(course_x, order=1)

    other = await factory.module(course_y, order=1)
    assert other["order"] == 1


async def test_unique_index_violation_maps_to_duplicate_order(store, factory):
    course = await factory.course()
    await factory.module(course, order=1)

    # skips the pre-check, as a concurrent writer would
    with pytest.raises(DuplicateOrder):
        await insert_entity(store, EntityKind.MODULE, {"title": "Race", "course": course["_id"], "order": 1})


async def test_duplicate_lesson_order_within_module(store, factory):
    course = await factory.course()
    first = await factory.module(course, order=1)
    second = await factory.module(course, order=2)

    await factory.lesson(first, order=1)
    with pytest.raises(DuplicateOrder):
        await factory.lesson(first, order=1)
    await factory.lesson(second, order=1)


async def test_module_update_checks_order_against_siblings_only(store, factory):
    course = await factory.course()
    first = await factory.module(course, order=1)
    await factory.module(course, order=2)

    same = await content_service.update_module(store, str(first["_id"]), ModuleUpdate(order=1, title="Renamed"))
    assert same["title"] == "Renamed"

    with pytest.raises(DuplicateOrder):
        await content_service.update_module(store, str(first["_id"]), ModuleUpdate(order=2))

# ==================== REFERENCES ====================

async def test_missing_reference_is_rejected(store):
    data = CourseCreate(title="Orphan", description="x", instructor=str(ObjectId()))
    with pytest.raises(ReferenceNotFound) as exc:
        await course_service.create_course(store, data)
    assert exc.value.field == "instructor"
    assert await store.count("courses") == 0


async def test_malformed_id_is_rejected_before_lookup(store):
    with pytest.raises(InvalidIdentifier):
        await course_service.get_course(store, "not-an-object-id")


async def test_assignment_lesson_must_belong_to_module(store, factory):
    course = await factory.course()
    module_a = await factory.module(course, order=1)
    module_b = await factory.module(course, order=2)
    lesson_b = await factory.lesson(module_b, order=1)

    with pytest.raises(InconsistentReference):
        await factory.assignment(course, module=str(module_a["_id"]), lesson=str(lesson_b["_id"]))

    ok = await factory.assignment(course, module=str(module_b["_id"]), lesson=str(lesson_b["_id"]))
    assert ok["lesson"] == lesson_b["_id"]


async def test_assignment_module_must_belong_to_course(store, factory):
    course = await factory.course(title="Mine")
    other = await factory.course(title="Other")
    foreign_module = await factory.module(other, order=1)

    with pytest.raises(InconsistentReference):
        await factory.assignment(course, module=str(foreign_module["_id"]))


async def test_assignment_update_rechecks_lesson_against_stored_module(store, factory):
    course = await factory.course()
    module_a = await factory.module(course, order=1)
    module_b = await factory.module(course, order=2)
    lesson_b = await factory.lesson(module_b, order=1)
    assignment = await factory.assignment(course, module=str(module_a["_id"]))

    with pytest.raises(InconsistentReference):
        await assignment_service.update_assignment(
            store, str(assignment["_id"]), AssignmentUpdate(lesson=str(lesson_b["_id"]))
        )


async def test_lesson_course_is_taken_from_module(store, factory):
    course = await factory.course()
    other = await factory.course(title="Other")
    module = await factory.module(course, order=1)

    lesson = await factory.lesson(module, order=1)
    assert lesson["course"] == course["_id"]

    with pytest.raises(InconsistentReference):
        await content_service.create_lesson(
            store,
            LessonCreate(title="Wrong", module=str(module["_id"]), course=str(other["_id"]), order=2),
        )


async def test_submission_and_grade_carry_assignment_course(store, factory):
    course = await factory.course()
    student = await factory.student()
    assignment = await factory.assignment(course)

    submission = await factory.submission(student, assignment)
    grade = await factory.grade(submission, 75)

    assert submission["course"] == course["_id"]
    assert grade["course"] == course["_id"]
    assert submission["isLate"] is False


async def test_grade_submission_must_match_student(store, factory):
    course = await factory.course()
    alice = await factory.student(first_name="Alice")
    bob = await factory.student(first_name="Bob")
    assignment = await factory.assignment(course)
    submission = await factory.submission(alice, assignment)

    data = GradeCreate(
        submission=str(submission["_id"]),
        student=str(bob["_id"]),
        assignment=str(assignment["_id"]),
        score=50,
    )
    with pytest.raises(InconsistentReference):
        await submission_service.create_grade(store, data)


async def test_one_grade_per_submission(store, factory):
    course = await factory.course()
    student = await factory.student()
    assignment = await factory.assignment(course)
    submission = await factory.submission(student, assignment)

    await factory.grade(submission, 80)
    with pytest.raises(DuplicateEntry):
        await factory.grade(submission, 90)


async def test_duplicate_attempt_is_rejected(store, factory):
    course = await factory.course()
    student = await factory.student()
    assignment = await factory.assignment(course)

    await factory.submission(student, assignment, attempt_number=1)
    await factory.submission(student, assignment, attempt_number=2)
    with pytest.raises(DuplicateEntry):
        await factory.submission(student, assignment, attempt_number=2)


async def test_duplicate_email_is_rejected(store):
    data = InstructorCreate(first_name="Grace", last_name="Hopper", email="grace@example.com")
    await instructor_service.create_instructor(store, data)
    with pytest.raises(DuplicateEntry):
        await instructor_service.create_instructor(store, data)

# ==================== INSTRUCTOR BACK-REFERENCES ====================

async def test_course_creation_attaches_to_instructor(store, factory):
    instructor = await factory.instructor()
    course = await factory.course(instructor)

    refreshed = await instructor_service.get_instructor(store, str(instructor["_id"]))
    assert refreshed["courses"] == [course["_id"]]


async def test_course_reassignment_moves_back_reference(store, factory):
    old = await factory.instructor(first_name="Old")
    new = await factory.instructor(first_name="New")
    course = await factory.course(old)

    updated = await course_service.update_course(store, str(course["_id"]), CourseUpdate(instructor=str(new["_id"])))
    assert updated["instructor"] == new["_id"]

    assert (await instructor_service.get_instructor(store, str(old["_id"])))["courses"] == []
    assert (await instructor_service.get_instructor(store, str(new["_id"])))["courses"] == [course["_id"]]


async def test_add_instructor_to_course(store, factory):
    owner = await factory.instructor(first_name="Owner")
    other = await factory.instructor(first_name="Other")
    course = await factory.course(owner)

    with pytest.raises(AlreadyAssigned):
        await instructor_service.add_course_to_instructor(store, str(owner["_id"]), str(course["_id"]))

    result = await instructor_service.add_course_to_instructor(store, str(other["_id"]), str(course["_id"]))
    assert result["courses"] == [course["_id"]]
    assert (await course_service.get_course(store, str(course["_id"])))["instructor"] == other["_id"]
    assert (await instructor_service.get_instructor(store, str(owner["_id"])))["courses"] == []


async def test_instructor_courses_read_from_course_owner(store, factory):
    instructor = await factory.instructor()
    await factory.course(instructor, title="One")
    await factory.course(instructor, title="Two")
    await factory.course(title="Someone else's")

    page = await instructor_service.get_instructor_courses(store, str(instructor["_id"]))
    assert page["meta"]["totalItems"] == 2
    assert {c["title"] for c in page["items"]} == {"One", "Two"}

# ==================== PARTIAL FAILURES ====================

def _fail_updates(monkeypatch, store, collection, operator):
    """Make every update_one using `operator` on `collection` fail"""
    update_one = store.update_one

    async def failing_update_one(name, filter, update):
        if name == collection and operator in update:
            raise PyMongoError("store write failed")
        return await update_one(name, filter, update)

    monkeypatch.setattr(store, "update_one", failing_update_one)


async def test_enroll_succeeds_when_counter_update_fails(store, factory, monkeypatch):
    student = await factory.student()
    course = await factory.course()
    _fail_updates(monkeypatch, store, "courses", "$inc")

    enrolled = await student_service.enroll_student(store, str(student["_id"]), str(course["_id"]))

    assert enrolled["enrolledCourses"] == [course["_id"]]
    assert (await course_service.get_course(store, str(course["_id"])))["enrollmentCount"] == 0

    monkeypatch.undo()
    report = await ReferenceIntegrityManager(store).rebuild_back_references()
    assert report["courses"] == 1
    assert (await course_service.get_course(store, str(course["_id"])))["enrollmentCount"] == 1


async def test_unenroll_succeeds_when_counter_update_fails(store, factory, monkeypatch):
    student = await factory.student()
    course = await factory.course()
    await student_service.enroll_student(store, str(student["_id"]), str(course["_id"]))
    _fail_updates(monkeypatch, store, "courses", "$inc")

    left = await student_service.unenroll_student(store, str(student["_id"]), str(course["_id"]))

    assert left["enrolledCourses"] == []
    assert (await course_service.get_course(store, str(course["_id"])))["enrollmentCount"] == 1


async def test_course_creation_survives_failed_back_reference(store, factory, monkeypatch):
    instructor = await factory.instructor()
    _fail_updates(monkeypatch, store, "instructors", "$addToSet")

    course = await course_service.create_course(
        store, CourseCreate(title="Orphaned", description="x", instructor=str(instructor["_id"]))
    )

    assert await store.find_by_id("courses", course["_id"]) is not None
    assert (await instructor_service.get_instructor(store, str(instructor["_id"])))["courses"] == []


async def test_reassignment_survives_failed_attach(store, factory, monkeypatch):
    old = await factory.instructor(first_name="Old")
    new = await factory.instructor(first_name="New")
    course = await factory.course(old)
    _fail_updates(monkeypatch, store, "instructors", "$addToSet")

    updated = await course_service.update_course(store, str(course["_id"]), CourseUpdate(instructor=str(new["_id"])))

    assert updated["instructor"] == new["_id"]
    assert (await instructor_service.get_instructor(store, str(old["_id"])))["courses"] == []
    assert (await instructor_service.get_instructor(store, str(new["_id"])))["courses"] == []

    monkeypatch.undo()
    await ReferenceIntegrityManager(store).rebuild_back_references()
    assert (await instructor_service.get_instructor(store, str(new["_id"])))["courses"] == [course["_id"]]


async def test_add_instructor_to_course_touches_updated_at(store, factory):
    owner = await factory.instructor(first_name="Owner")
    other = await factory.instructor(first_name="Other")
    course = await factory.course(owner)
    stale = datetime(2020, 1, 1)
    await store.update_by_id("courses", course["_id"], {"$set": {"updatedAt": stale}})

    await instructor_service.add_course_to_instructor(store, str(other["_id"]), str(course["_id"]))

    assert (await course_service.get_course(store, str(course["_id"])))["updatedAt"] > stale

# ==================== MOVING MODULES ====================

async def test_moving_module_carries_lessons_to_new_course(store, factory):
    source = await factory.course(title="Source")
    target = await factory.course(title="Target")
    module = await factory.module(source, order=1)
    lesson = await factory.lesson(module, order=1)

    moved = await content_service.update_module(store, str(module["_id"]), ModuleUpdate(course=str(target["_id"])))

    assert moved["course"] == target["_id"]
    assert (await content_service.get_lesson(store, str(lesson["_id"])))["course"] == target["_id"]

    stats = await course_service.get_course_statistics(store, str(source["_id"]))
    assert stats["modulesCount"] == 0
    assert stats["lessonsCount"] == 0

    await course_service.delete_course(store, str(source["_id"]))
    assert await store.find_by_id("lessons", lesson["_id"]) is not None


async def test_module_with_assignments_cannot_change_course(store, factory):
    source = await factory.course(title="Source")
    target = await factory.course(title="Target")
    module = await factory.module(source, order=1)
    await factory.assignment(source, module=str(module["_id"]))

    with pytest.raises(HasDependents):
        await content_service.update_module(store, str(module["_id"]), ModuleUpdate(course=str(target["_id"])))
    assert (await content_service.get_module(store, str(module["_id"])))["course"] == source["_id"]

# ==================== DOCUMENT VALUES ====================

def test_default_enum_values_are_stored_as_strings():
    document = CourseCreate(title="Algorithms", description="x", instructor=str(ObjectId())).to_document()
    assert document["status"] == "draft"
    assert type(document["status"]) is str
