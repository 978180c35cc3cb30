"""
Domain errors for the LMS backend.

Every error carries the HTTP status it is rendered with, so the router layer
never has to translate them one by one.
"""

from typing import Any, Optional


class LMSError(Exception):
    """Base class for all domain failures surfaced to callers"""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(LMSError):
    status_code = 404

    def __init__(self, kind: str, entity_id: Any = None, detail: Optional[str] = None):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(detail or f'{kind} with ID "{entity_id}" not found')


class ReferenceNotFound(NotFound):
    """A write names a parent entity that does not exist"""

    def __init__(self, field: str, entity_id: Any):
        self.field = field
        super().__init__(
            field,
            entity_id,
            detail=f'Referenced {field} with ID "{entity_id}" not found',
        )


class InvalidIdentifier(LMSError):
    status_code = 400

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f'Invalid {field} ID "{value}"')


class InconsistentReference(LMSError):
    status_code = 400


class NotEnrolled(LMSError):
    status_code = 400

    def __init__(self, student_id: Any, course_id: Any):
        super().__init__(f'Student "{student_id}" is not enrolled in course "{course_id}"')


class HasDependents(LMSError):
    status_code = 400


# ==================== CONFLICTS ====================

class Conflict(LMSError):
    status_code = 409


class DuplicateOrder(Conflict):
    def __init__(self, order: Any, scope: str):
        self.order = order
        self.scope = scope
        super().__init__(f"An entry with order {order} already exists in this {scope}")


class AlreadyEnrolled(Conflict):
    def __init__(self, student_id: Any, course_id: Any):
        super().__init__(f'Student "{student_id}" is already enrolled in course "{course_id}"')


class AlreadyAssigned(Conflict):
    def __init__(self, instructor_id: Any, course_id: Any):
        super().__init__(f'Instructor "{instructor_id}" is already assigned to course "{course_id}"')


class DuplicateEntry(Conflict):
    """Unique constraint other than ordering (email, attempt tuple, grade per submission)"""
