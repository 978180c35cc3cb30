import logging

from lms.store.base import EntityStore

logger = logging.getLogger(__name__)


async def create_lms_indexes(store: EntityStore):
    """
    Create unique constraints and lookup indexes
    Called during application startup
    """

    # People
    await store.create_index("instructors", [("email", 1)], unique=True)
    await store.create_index("students", [("email", 1)], unique=True)
    await store.create_index("students", [("enrolledCourses", 1)])

    # Courses
    await store.create_index("courses", [("instructor", 1)])
    await store.create_index("courses", [("status", 1), ("createdAt", -1)])

    # Ordered content: order is unique inside its parent
    await store.create_index("modules", [("course", 1), ("order", 1)], unique=True)
    await store.create_index("lessons", [("module", 1), ("order", 1)], unique=True)
    await store.create_index("lessons", [("course", 1)])

    # Assignments
    await store.create_index("assignments", [("course", 1), ("dueDate", 1)])
    await store.create_index("assignments", [("module", 1)])

    # Submissions: one document per attempt
    await store.create_index(
        "submissions",
        [("student", 1), ("assignment", 1), ("attemptNumber", 1)],
        unique=True,
    )
    await store.create_index("submissions", [("student", 1), ("course", 1)])
    await store.create_index("submissions", [("assignment", 1), ("submittedAt", -1)])

    # Grades: one per submission
    await store.create_index("grades", [("submission", 1)], unique=True)
    await store.create_index("grades", [("student", 1), ("course", 1)])
    await store.create_index("grades", [("assignment", 1)])

    logger.info("LMS indexes created successfully")
