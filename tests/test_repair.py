from bson import ObjectId
import pytest

from lms.core.integrity import ReferenceIntegrityManager
from lms.errors import NotFound
from lms.services import course_service, instructor_service, student_service

pytestmark = pytest.mark.anyio


async def test_rebuild_restores_back_references(store, factory):
    instructor = await factory.instructor()
    course = await factory.course(instructor)
    student = await factory.student()
    await student_service.enroll_student(store, str(student["_id"]), str(course["_id"]))

    # corrupt every derived field
    await store.update_by_id("instructors", instructor["_id"], {"$set": {"courses": [ObjectId()]}})
    await store.update_by_id("students", student["_id"], {"$push": {"enrolledCourses": ObjectId()}})
    await store.update_by_id("courses", course["_id"], {"$set": {"enrollmentCount": 7}})

    report = await ReferenceIntegrityManager(store).rebuild_back_references()

    assert report == {"instructors": 1, "students": 1, "courses": 1}
    assert (await instructor_service.get_instructor(store, str(instructor["_id"])))["courses"] == [course["_id"]]
    assert (await student_service.get_student(store, str(student["_id"])))["enrolledCourses"] == [course["_id"]]
    assert (await course_service.get_course(store, str(course["_id"])))["enrollmentCount"] == 1


async def test_rebuild_is_idempotent(store, factory):
    course = await factory.course()
    student = await factory.student()
    await student_service.enroll_student(store, str(student["_id"]), str(course["_id"]))
    integrity = ReferenceIntegrityManager(store)

    assert await integrity.rebuild_back_references() == {"instructors": 0, "students": 0, "courses": 0}
    await store.update_by_id("courses", course["_id"], {"$set": {"enrollmentCount": 0}})
    assert (await integrity.rebuild_back_references())["courses"] == 1
    assert await integrity.rebuild_back_references() == {"instructors": 0, "students": 0, "courses": 0}


async def test_rebuild_single_instructor(store, factory):
    instructor = await factory.instructor()
    course = await factory.course(instructor)
    await store.update_by_id("instructors", instructor["_id"], {"$set": {"courses": []}})
    integrity = ReferenceIntegrityManager(store)

    assert await integrity.rebuild_instructor_courses(str(instructor["_id"])) is True
    assert await integrity.rebuild_instructor_courses(str(instructor["_id"])) is False
    assert (await store.find_by_id("instructors", instructor["_id"]))["courses"] == [course["_id"]]

    with pytest.raises(NotFound):
        await integrity.rebuild_instructor_courses(str(ObjectId()))
