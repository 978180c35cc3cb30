from datetime import datetime

from bson import ObjectId
import pytest

from lms.errors import NotFound
from lms.models import AssignmentStatus, SubmissionStatus
from lms.services import course_service, student_service

pytestmark = pytest.mark.anyio

# ==================== COURSE DETAIL TREE ====================

async def test_course_details_orders_modules_and_lessons(store, factory):
    instructor = await factory.instructor(first_name="Ada", last_name="Lovelace")
    course = await factory.course(instructor)
    second = await factory.module(course, order=2)
    first = await factory.module(course, order=1)
    first_b = await factory.lesson(first, order=2)
    first_a = await factory.lesson(first, order=1)
    second_a = await factory.lesson(second, order=1)
    await factory.assignment(course, title="HW1")
    await factory.assignment(course, title="HW2")

    details = await course_service.get_course_details(store, str(course["_id"]))

    assert details["_id"] == course["_id"]
    assert details["instructor"]["fullName"] == "Ada Lovelace"
    assert details["instructor"]["_id"] == instructor["_id"]
    assert [m["order"] for m in details["modules"]] == [1, 2]
    assert [lesson["_id"] for lesson in details["modules"][0]["lessons"]] == [first_a["_id"], first_b["_id"]]
    assert [lesson["_id"] for lesson in details["modules"][1]["lessons"]] == [second_a["_id"]]
    assert {a["title"] for a in details["assignments"]} == {"HW1", "HW2"}
    assert "allLessons" not in details


async def test_course_details_for_empty_course(store, factory):
    course = await factory.course()

    details = await course_service.get_course_details(store, str(course["_id"]))

    assert details["modules"] == []
    assert details["assignments"] == []


async def test_course_details_missing_course(store):
    with pytest.raises(NotFound):
        await course_service.get_course_details(store, str(ObjectId()))

# ==================== STUDENT DASHBOARD ====================

async def test_dashboard_without_enrollments_returns_empty_courses(store, factory):
    student = await factory.student(first_name="Alan", last_name="Turing")

    dashboard = await student_service.get_enrollment_details(store, str(student["_id"]))

    assert dashboard["_id"] == student["_id"]
    assert dashboard["fullName"] == "Alan Turing"
    assert dashboard["courses"] == []


async def test_dashboard_progress_and_average_grade(store, factory):
    student = await factory.student(first_name="Alan", last_name="Turing")
    classmate = await factory.student(first_name="Other")
    instructor = await factory.instructor(first_name="Grace", last_name="Hopper")
    busy = await factory.course(instructor, title="Busy")
    quiet = await factory.course(instructor, title="Quiet")

    hw1 = await factory.assignment(busy, title="HW1")
    await factory.assignment(busy, title="HW2")
    await factory.assignment(busy, title="Old", status=AssignmentStatus.INACTIVE)

    for s in (student, classmate):
        await student_service.enroll_student(store, str(s["_id"]), str(busy["_id"]))
    await student_service.enroll_student(store, str(student["_id"]), str(quiet["_id"]))

    mine = await factory.submission(student, hw1)
    await factory.grade(mine, 80)
    theirs = await factory.submission(classmate, hw1)
    await factory.grade(theirs, 20)

    dashboard = await student_service.get_enrollment_details(store, str(student["_id"]))
    courses = {c["title"]: c for c in dashboard["courses"]}

    assert dashboard["fullName"] == "Alan Turing"
    assert set(courses) == {"Busy", "Quiet"}

    # one submission out of two active assignments
    assert courses["Busy"]["progress"] == 50
    assert courses["Busy"]["averageGrade"] == 80
    assert courses["Busy"]["submissionCount"] == 1
    assert courses["Busy"]["gradedAssignments"] == 1
    assert courses["Busy"]["instructorDetails"]["fullName"] == "Grace Hopper"

    assert courses["Quiet"]["progress"] == 0
    assert courses["Quiet"]["averageGrade"] is None


async def test_dashboard_skips_enrollments_of_deleted_courses(store, factory):
    student = await factory.student()
    course = await factory.course()
    await student_service.enroll_student(store, str(student["_id"]), str(course["_id"]))
    await store.update_by_id("students", student["_id"], {"$push": {"enrolledCourses": ObjectId()}})

    dashboard = await student_service.get_enrollment_details(store, str(student["_id"]))

    assert [c["_id"] for c in dashboard["courses"]] == [course["_id"]]

# ==================== PERFORMANCE ====================

async def test_student_performance_rolls_up_course_averages(store, factory):
    student = await factory.student()
    algebra = await factory.course(title="Algebra")
    biology = await factory.course(title="Biology")
    a1 = await factory.assignment(algebra, title="A1", total_points=100)
    a2 = await factory.assignment(algebra, title="A2", total_points=200)
    b1 = await factory.assignment(biology, title="B1", total_points=0)

    await factory.grade(await factory.submission(student, a1), 80)
    await factory.grade(await factory.submission(student, a2), 100)
    await factory.grade(await factory.submission(student, b1), 60)

    performance = await student_service.get_student_performance(store, str(student["_id"]))

    assert performance["student"]["_id"] == student["_id"]
    assert performance["overallAverage"] == 75
    assert performance["totalCompletedAssignments"] == 3

    by_title = {c["courseTitle"]: c for c in performance["coursePerformance"]}
    assert by_title["Algebra"]["averageScore"] == 90
    assert by_title["Biology"]["averageScore"] == 60
    assert by_title["Algebra"]["totalAssignments"] == 2

    percentages = {a["title"]: a["percentageScore"] for a in by_title["Algebra"]["assignments"]}
    assert percentages == {"A1": 80, "A2": 50}
    # zero total points never divides
    assert by_title["Biology"]["assignments"][0]["percentageScore"] == 0


async def test_student_performance_without_grades(store, factory):
    student = await factory.student()

    performance = await student_service.get_student_performance(store, str(student["_id"]))

    assert performance["overallAverage"] == 0
    assert performance["totalCompletedAssignments"] == 0
    assert performance["coursePerformance"] == []


async def test_student_performance_unknown_student(store):
    with pytest.raises(NotFound):
        await student_service.get_student_performance(store, str(ObjectId()))

# ==================== SUBMISSION STATISTICS ====================

async def test_submission_statistics(store, factory):
    student = await factory.student()
    course = await factory.course()
    first = await factory.assignment(course, title="First")
    second = await factory.assignment(course, title="Second")

    await factory.submission(student, first, attempt_number=1, is_late=True)
    await factory.submission(student, first, attempt_number=2, status=SubmissionStatus.RESUBMITTED)
    await factory.submission(student, second, submitted_at=datetime(2024, 1, 1))

    stats = await student_service.get_submission_statistics(store, str(student["_id"]))

    assert stats["totalSubmissions"] == 3
    assert stats["lateSubmissionsCount"] == 1
    assert sum(entry["count"] for entry in stats["statusBreakdown"]) == 3
    breakdown = {entry["status"]: entry for entry in stats["statusBreakdown"]}
    assert breakdown["submitted"]["count"] == 2
    assert breakdown["resubmitted"]["count"] == 1
    assert {s["assignmentTitle"] for s in breakdown["submitted"]["submissions"]} == {"First", "Second"}


async def test_submission_statistics_without_submissions(store, factory):
    student = await factory.student()

    stats = await student_service.get_submission_statistics(store, str(student["_id"]))

    assert stats["totalSubmissions"] == 0
    assert stats["lateSubmissionsCount"] == 0
    assert stats["statusBreakdown"] == []


async def test_reports_do_not_modify_state(store, factory):
    student = await factory.student()
    course = await factory.course()
    await student_service.enroll_student(store, str(student["_id"]), str(course["_id"]))
    before = {name: list(docs) for name, docs in store.collections.items()}

    await student_service.get_enrollment_details(store, str(student["_id"]))
    await student_service.get_student_performance(store, str(student["_id"]))
    await student_service.get_submission_statistics(store, str(student["_id"]))
    await course_service.get_course_details(store, str(course["_id"]))

    assert {name: list(docs) for name, docs in store.collections.items()} == before
