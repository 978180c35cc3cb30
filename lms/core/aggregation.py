"""
Aggregation Engine

Composite read views assembled from normalized records:
course detail tree, student enrollment dashboard, performance analytics and
submission statistics. All queries are read-only and safe to retry.
"""

from typing import Any, Dict, List

from lms.core import stages
from lms.core.integrity import ReferenceIntegrityManager
from lms.errors import NotFound
from lms.models import EntityKind, AssignmentStatus
from lms.store.base import EntityStore, to_object_id


def _student_summary(student: dict) -> dict:
    return {
        "_id": student["_id"],
        "firstName": student.get("firstName"),
        "lastName": student.get("lastName"),
        "fullName": f"{student.get('firstName', '')} {student.get('lastName', '')}",
    }


class AggregationEngine:
    def __init__(self, store: EntityStore, integrity: ReferenceIntegrityManager):
        self.store = store
        self.integrity = integrity

    # ==================== COURSE DETAIL TREE ====================

    def course_details_pipeline(self, course_id) -> List[dict]:
        return [
            stages.match({"_id": course_id}),
            stages.join("instructors", "instructor", "_id", "instructorDetails"),
            stages.add_fields({"instructorDetails": {"$arrayElemAt": ["$instructorDetails", 0]}}),
            stages.join("modules", "_id", "course", "modules"),
            stages.add_fields({"modules": {"$sortArray": {"input": "$modules", "sortBy": {"order": 1}}}}),
            stages.join("lessons", "modules._id", "module", "allLessons"),
            # attach lessons per module by equality on the module id
            stages.add_fields({
                "modules": {
                    "$map": {
                        "input": "$modules",
                        "as": "module",
                        "in": {
                            "$mergeObjects": [
                                "$$module",
                                {
                                    "lessons": {
                                        "$sortArray": {
                                            "input": {
                                                "$filter": {
                                                    "input": "$allLessons",
                                                    "as": "lesson",
                                                    "cond": {"$eq": ["$$lesson.module", "$$module._id"]},
                                                }
                                            },
                                            "sortBy": {"order": 1},
                                        }
                                    }
                                },
                            ]
                        },
                    }
                }
            }),
            stages.join("assignments", "_id", "course", "assignments"),
            stages.project({
                "_id": 1,
                "title": 1,
                "description": 1,
                "coverImage": 1,
                "status": 1,
                "startDate": 1,
                "endDate": 1,
                "enrollmentCount": 1,
                "tags": 1,
                "settings": 1,
                "createdAt": 1,
                "updatedAt": 1,
                "instructor": {
                    "_id": "$instructorDetails._id",
                    "firstName": "$instructorDetails.firstName",
                    "lastName": "$instructorDetails.lastName",
                    "email": "$instructorDetails.email",
                    "fullName": stages.full_name("instructorDetails"),
                },
                "modules": {
                    "_id": 1,
                    "title": 1,
                    "description": 1,
                    "order": 1,
                    "isPublished": 1,
                    "durationMinutes": 1,
                    "lessons": {
                        "_id": 1,
                        "title": 1,
                        "description": 1,
                        "order": 1,
                        "type": 1,
                        "content": 1,
                        "isPublished": 1,
                        "durationMinutes": 1,
                    },
                },
                "assignments": {
                    "_id": 1,
                    "title": 1,
                    "description": 1,
                    "dueDate": 1,
                    "totalPoints": 1,
                    "status": 1,
                },
            }),
        ]

    async def get_course_details(self, course_id: Any) -> dict:
        cid = to_object_id(course_id, "course")
        results = await self.store.aggregate("courses", self.course_details_pipeline(cid))
        if not results:
            raise NotFound("Course", course_id)
        return results[0]

    # ==================== STUDENT DASHBOARD ====================

    def enrollment_pipeline(self, student_id) -> List[dict]:
        def scoped_to_student_and_course(collection: str, as_field: str) -> dict:
            return stages.correlated_join(
                collection,
                {"studentId": "$_id", "courseId": "$courses._id"},
                [stages.match(stages.equals_all(
                    ("$student", "$$studentId"),
                    ("$course", "$$courseId"),
                ))],
                as_field,
            )

        return [
            stages.match({"_id": student_id}),
            stages.join("courses", "enrolledCourses", "_id", "courses"),
            stages.unwind("$courses", keep_empty=True),
            stages.join("instructors", "courses.instructor", "_id", "courses.instructorDetails"),
            stages.add_fields({
                "courses.instructorDetails": {"$arrayElemAt": ["$courses.instructorDetails", 0]},
            }),
            scoped_to_student_and_course("submissions", "courses.submissions"),
            scoped_to_student_and_course("grades", "courses.grades"),
            stages.correlated_join(
                "assignments",
                {"courseId": "$courses._id"},
                [stages.match(stages.equals_all(
                    ("$course", "$$courseId"),
                    ("$status", AssignmentStatus.ACTIVE.value),
                ))],
                "courses.activeAssignments",
            ),
            # per-course figures are computed while the courses are still unwound
            stages.add_fields({
                "courses.progress": {
                    "$multiply": [
                        {
                            "$divide": [
                                {"$size": "$courses.submissions"},
                                {
                                    "$cond": [
                                        {"$eq": [{"$size": "$courses.activeAssignments"}, 0]},
                                        1,
                                        {"$size": "$courses.activeAssignments"},
                                    ]
                                },
                            ]
                        },
                        100,
                    ]
                },
                "courses.averageGrade": {
                    "$cond": {
                        "if": {"$eq": [{"$size": "$courses.grades"}, 0]},
                        "then": None,
                        "else": {"$avg": "$courses.grades.score"},
                    }
                },
                "courses.submissionCount": {"$size": "$courses.submissions"},
                "courses.gradedAssignments": {"$size": "$courses.grades"},
                "courses.instructorDetails.fullName": stages.full_name("courses.instructorDetails"),
            }),
            stages.group("$_id", {
                "firstName": {"$first": "$firstName"},
                "lastName": {"$first": "$lastName"},
                "email": {"$first": "$email"},
                "courses": {"$push": "$courses"},
            }),
            # drop the placeholder left by enrolled ids whose course no longer exists
            stages.add_fields({
                "courses": {
                    "$filter": {
                        "input": "$courses",
                        "as": "course",
                        "cond": {"$ifNull": ["$$course._id", False]},
                    }
                }
            }),
            stages.project({
                "_id": 1,
                "firstName": 1,
                "lastName": 1,
                "email": 1,
                "fullName": stages.full_name(),
                "courses": {
                    "_id": 1,
                    "title": 1,
                    "description": 1,
                    "status": 1,
                    "startDate": 1,
                    "endDate": 1,
                    "instructor": 1,
                    "instructorDetails": {
                        "_id": 1,
                        "firstName": 1,
                        "lastName": 1,
                        "email": 1,
                        "fullName": 1,
                    },
                    "progress": 1,
                    "averageGrade": 1,
                    "submissionCount": 1,
                    "gradedAssignments": 1,
                },
            }),
        ]

    async def get_enrollment_details(self, student_id: Any) -> dict:
        student = await self.integrity.require(EntityKind.STUDENT, student_id)

        # nothing to join: answer from the student record itself
        if not student.get("enrolledCourses"):
            return {**student, "fullName": _student_summary(student)["fullName"], "courses": []}

        results = await self.store.aggregate("students", self.enrollment_pipeline(student["_id"]))
        if not results:
            return {**student, "fullName": _student_summary(student)["fullName"], "courses": []}
        return results[0]

    # ==================== PERFORMANCE ANALYTICS ====================

    def performance_pipeline(self, student_id) -> List[dict]:
        return [
            stages.match({"student": student_id}),
            stages.join("assignments", "assignment", "_id", "assignmentDetails"),
            stages.unwind("$assignmentDetails"),
            stages.join("courses", "assignmentDetails.course", "_id", "courseDetails"),
            stages.unwind("$courseDetails"),
            stages.group("$courseDetails._id", {
                "courseTitle": {"$first": "$courseDetails.title"},
                "averageScore": {"$avg": "$score"},
                "totalAssignments": {"$sum": 1},
                "assignments": {
                    "$push": {
                        "_id": "$assignment",
                        "title": "$assignmentDetails.title",
                        "score": "$score",
                        "totalPoints": "$assignmentDetails.totalPoints",
                        "percentageScore": {
                            "$cond": [
                                {"$eq": [{"$ifNull": ["$assignmentDetails.totalPoints", 0]}, 0]},
                                0,
                                {"$multiply": [{"$divide": ["$score", "$assignmentDetails.totalPoints"]}, 100]},
                            ]
                        },
                        "gradedAt": "$gradedAt",
                    }
                },
            }),
            stages.sort("courseTitle"),
            stages.group(None, {
                "overallAverage": {"$avg": "$averageScore"},
                "totalCompletedAssignments": {"$sum": "$totalAssignments"},
                "coursePerformance": {"$push": "$$ROOT"},
            }),
            stages.project({
                "_id": 0,
                "overallAverage": 1,
                "totalCompletedAssignments": 1,
                "coursePerformance": 1,
            }),
        ]

    async def get_student_performance(self, student_id: Any) -> dict:
        student = await self.integrity.require(EntityKind.STUDENT, student_id)
        results = await self.store.aggregate("grades", self.performance_pipeline(student["_id"]))

        if not results:
            return {
                "student": _student_summary(student),
                "overallAverage": 0,
                "totalCompletedAssignments": 0,
                "coursePerformance": [],
            }
        return {"student": _student_summary(student), **results[0]}

    # ==================== SUBMISSION STATISTICS ====================

    def submission_statistics_pipeline(self, student_id) -> List[dict]:
        return [
            stages.match({"student": student_id}),
            stages.join("assignments", "assignment", "_id", "assignmentDetails"),
            stages.unwind("$assignmentDetails", keep_empty=True),
            stages.group("$status", {
                "count": {"$sum": 1},
                "submissions": {
                    "$push": {
                        "_id": "$_id",
                        "assignment": "$assignment",
                        "assignmentTitle": "$assignmentDetails.title",
                        "status": "$status",
                        "submittedAt": "$submittedAt",
                        "isLate": "$isLate",
                    }
                },
            }),
            stages.sort("_id"),
            stages.group(None, {
                "totalSubmissions": {"$sum": "$count"},
                "statusBreakdown": {
                    "$push": {
                        "status": "$_id",
                        "count": "$count",
                        "submissions": "$submissions",
                    }
                },
            }),
            stages.project({"_id": 0, "totalSubmissions": 1, "statusBreakdown": 1}),
        ]

    async def get_submission_statistics(self, student_id: Any) -> Dict[str, Any]:
        student = await self.integrity.require(EntityKind.STUDENT, student_id)
        results = await self.store.aggregate("submissions", self.submission_statistics_pipeline(student["_id"]))
        late = await self.store.count("submissions", {"student": student["_id"], "isLate": True})

        stats = results[0] if results else {"totalSubmissions": 0, "statusBreakdown": []}
        return {
            "student": _student_summary(student),
            "totalSubmissions": stats["totalSubmissions"],
            "lateSubmissionsCount": late,
            "statusBreakdown": stats["statusBreakdown"],
        }
