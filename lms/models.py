from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum

from lms.config import DEFAULT_PAGE, DEFAULT_PAGE_LIMIT

# ==================== ENUMS ====================

class EntityKind(str, Enum):
    INSTRUCTOR = "instructor"
    STUDENT = "student"
    COURSE = "course"
    MODULE = "module"
    LESSON = "lesson"
    ASSIGNMENT = "assignment"
    SUBMISSION = "submission"
    GRADE = "grade"

# Collection holding each entity kind
COLLECTIONS = {
    EntityKind.INSTRUCTOR: "instructors",
    EntityKind.STUDENT: "students",
    EntityKind.COURSE: "courses",
    EntityKind.MODULE: "modules",
    EntityKind.LESSON: "lessons",
    EntityKind.ASSIGNMENT: "assignments",
    EntityKind.SUBMISSION: "submissions",
    EntityKind.GRADE: "grades",
}

class InstructorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

class StudentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"

class CourseStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"

class LessonType(str, Enum):
    TEXT = "text"
    VIDEO = "video"
    QUIZ = "quiz"
    ASSIGNMENT = "assignment"

class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"

class SubmissionStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    RESUBMITTED = "resubmitted"
    RETURNED = "returned"


class CamelModel(BaseModel):
    """Payload model: snake_case attributes, camelCase document fields"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_patch(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)

# ==================== PEOPLE ====================

class InstructorCreate(CamelModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: Optional[str] = None
    status: InstructorStatus = InstructorStatus.ACTIVE
    bio: Optional[str] = None
    specialization: Optional[str] = None
    profile_picture: Optional[str] = None

class InstructorUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[InstructorStatus] = None
    bio: Optional[str] = None
    specialization: Optional[str] = None
    profile_picture: Optional[str] = None

class StudentCreate(CamelModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    status: StudentStatus = StudentStatus.ACTIVE
    profile: Dict[str, Any] = {}

class StudentUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    status: Optional[StudentStatus] = None
    profile: Optional[Dict[str, Any]] = None

# ==================== COURSE CONTENT ====================

class CourseCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str
    cover_image: Optional[str] = None
    instructor: str
    status: CourseStatus = CourseStatus.DRAFT
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    tags: List[str] = []
    settings: Dict[str, Any] = {}

class CourseUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    cover_image: Optional[str] = None
    instructor: Optional[str] = None
    status: Optional[CourseStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    settings: Optional[Dict[str, Any]] = None

class ModuleCreate(CamelModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    course: str
    order: int = Field(ge=1)
    is_published: bool = False
    duration_minutes: Optional[float] = None

class ModuleUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    course: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=1)
    is_published: Optional[bool] = None
    duration_minutes: Optional[float] = None

class LessonCreate(CamelModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    module: str
    course: Optional[str] = None  # denormalized from the module when omitted
    order: int = Field(ge=1)
    type: LessonType = LessonType.TEXT
    content: Optional[Dict[str, Any]] = None
    is_published: bool = False
    duration_minutes: Optional[float] = None

class LessonUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    module: Optional[str] = None
    course: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=1)
    type: Optional[LessonType] = None
    content: Optional[Dict[str, Any]] = None
    is_published: Optional[bool] = None
    duration_minutes: Optional[float] = None

# ==================== ASSESSMENT ====================

class AssignmentCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str
    course: str
    module: Optional[str] = None
    lesson: Optional[str] = None
    due_date: datetime
    total_points: float = Field(default=0, ge=0)
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    resources: List[Dict[str, str]] = []  # [{"name": "...", "url": "...", "type": "..."}]
    submission_settings: Dict[str, Any] = {}

class AssignmentUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    course: Optional[str] = None
    module: Optional[str] = None
    lesson: Optional[str] = None
    due_date: Optional[datetime] = None
    total_points: Optional[float] = Field(default=None, ge=0)
    status: Optional[AssignmentStatus] = None
    resources: Optional[List[Dict[str, str]]] = None
    submission_settings: Optional[Dict[str, Any]] = None

class SubmissionCreate(CamelModel):
    student: str
    assignment: str
    course: Optional[str] = None  # denormalized from the assignment when omitted
    status: SubmissionStatus = SubmissionStatus.SUBMITTED
    content: Optional[Dict[str, Any]] = None  # {"text": ..., "fileUrls": [...], "links": [...]}
    submitted_at: Optional[datetime] = None
    attempt_number: int = Field(default=1, ge=1)
    is_late: Optional[bool] = None  # derived from the due date when omitted

class SubmissionUpdate(CamelModel):
    student: Optional[str] = None
    assignment: Optional[str] = None
    course: Optional[str] = None
    status: Optional[SubmissionStatus] = None
    content: Optional[Dict[str, Any]] = None
    submitted_at: Optional[datetime] = None
    attempt_number: Optional[int] = Field(default=None, ge=1)
    is_late: Optional[bool] = None

class FeedbackCreate(CamelModel):
    text: Optional[str] = None
    file_urls: List[str] = []

class GradeCreate(CamelModel):
    submission: str
    student: str
    assignment: str
    course: Optional[str] = None
    score: float = Field(ge=0)
    graded_by: Optional[str] = None
    graded_at: Optional[datetime] = None
    feedback: Optional[str] = None
    rubric_scores: Optional[List[Dict[str, Any]]] = None

class GradeUpdate(CamelModel):
    submission: Optional[str] = None
    student: Optional[str] = None
    assignment: Optional[str] = None
    course: Optional[str] = None
    score: Optional[float] = Field(default=None, ge=0)
    graded_by: Optional[str] = None
    graded_at: Optional[datetime] = None
    feedback: Optional[str] = None
    rubric_scores: Optional[List[Dict[str, Any]]] = None

# ==================== PAGINATION ====================

class PaginationParams(BaseModel):
    page: int = Field(default=DEFAULT_PAGE, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_LIMIT, ge=1)

class PaginationMeta(BaseModel):
    totalItems: int
    itemCount: int
    itemsPerPage: int
    totalPages: int
    currentPage: int
