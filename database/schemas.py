"""
Pydantic schemas for documents, requests and responses
Documents are stored and served with camelCase keys; Python code uses snake_case
"""

from datetime import datetime, timezone
from typing import Annotated, ClassVar, Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDateTime = Annotated[datetime, AfterValidator(_as_utc)]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def newest_first(items, attr: str) -> list:
    """Sort models by a datetime attribute, descending; missing values sort last."""
    return sorted(items, key=lambda item: getattr(item, attr) or _EPOCH, reverse=True)


class PortalModel(BaseModel):
    """Base for every portal schema: camelCase aliases, snake_case attributes"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self, **kwargs) -> dict:
        """JSON-safe dict with camelCase keys, minus the id"""
        exclude = set(kwargs.pop("exclude", set())) | {"id"}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude, **kwargs)


class UpdateModel(PortalModel):
    """
    Partial update. Omitted fields stay as they are; an explicit null is only
    accepted for the fields in nullable_fields and clears them.
    """
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null(self):
        for name in self.model_fields_set:
            if getattr(self, name) is None and name not in self.nullable_fields:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self


class SuccessResponse(PortalModel):
    success: bool = True


# ==========================================
# SEMESTER SCHEMAS
# ==========================================

class Semester(PortalModel):
    """Fixed enumeration; never persisted"""
    id: int
    number: int
    name: str


SEMESTERS: List[Semester] = [
    Semester(id=n, number=n, name=f"Semester {n}") for n in range(1, 5)
]


class SemesterStats(PortalModel):
    subject_count: int = 0
    chapter_count: int = 0
    material_count: int = 0


class SemesterWithStats(Semester, SemesterStats):
    pass


# ==========================================
# SUBJECT SCHEMAS
# ==========================================

class SubjectBase(PortalModel):
    """Base schema for Subject - shared fields"""
    semester_number: int = Field(..., ge=1, le=4, description="Owning semester (1-4)")
    name: str = Field(..., min_length=1, max_length=255, description="Subject name")
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    order: int = Field(default=0, ge=0, description="Display order within semester")


class SubjectCreate(SubjectBase):
    """Schema for creating a new Subject"""


class SubjectUpdate(UpdateModel):
    """Schema for updating a Subject - all fields optional"""
    nullable_fields = frozenset({"description", "icon", "color"})

    semester_number: Optional[int] = Field(None, ge=1, le=4)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    order: Optional[int] = Field(None, ge=0)


class Subject(SubjectBase):
    id: str


# ==========================================
# UNIT SCHEMAS
# ==========================================

class UnitBase(PortalModel):
    """Base schema for Unit - shared fields"""
    subject_id: str = Field(..., min_length=1, description="Parent subject ID")
    title: str = Field(..., min_length=1, max_length=255, description="Unit title")
    description: Optional[str] = None
    order: int = Field(default=0, ge=0, description="Display order within subject")


class UnitCreate(UnitBase):
    """Schema for creating a new Unit"""


class UnitUpdate(UpdateModel):
    """Schema for updating a Unit - all fields optional"""
    nullable_fields = frozenset({"description"})

    subject_id: Optional[str] = Field(None, min_length=1)
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    order: Optional[int] = Field(None, ge=0)


class Unit(UnitBase):
    id: str


# ==========================================
# STUDY MATERIAL SCHEMAS
# ==========================================

MaterialType = Literal["pdf", "video", "link", "document"]


class StudyMaterialBase(PortalModel):
    unit_id: str = Field(..., min_length=1, description="Parent unit ID")
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: MaterialType
    url: str = Field(..., min_length=1, pattern=r"^https?://")
    file_name: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0)
    order: int = Field(default=0, ge=0)


class StudyMaterialCreate(StudyMaterialBase):
    pass


class StudyMaterialUpdate(UpdateModel):
    nullable_fields = frozenset({"description", "file_name", "file_size"})

    unit_id: Optional[str] = Field(None, min_length=1)
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[MaterialType] = None
    url: Optional[str] = Field(None, min_length=1, pattern=r"^https?://")
    file_name: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0)
    order: Optional[int] = Field(None, ge=0)


class StudyMaterial(StudyMaterialBase):
    id: str
    uploaded_at: Optional[UtcDateTime] = None


# ==========================================
# QUIZ SCHEMAS
# ==========================================

class QuizBase(PortalModel):
    subject_id: str = Field(default="", description="Empty string means unassigned")
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    duration: Optional[int] = Field(None, gt=0, description="Minutes")
    total_marks: Optional[int] = Field(None, gt=0)


class QuizCreate(QuizBase):
    is_active: Optional[bool] = None


class QuizUpdate(UpdateModel):
    nullable_fields = frozenset({"description", "duration", "total_marks"})

    subject_id: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    duration: Optional[int] = Field(None, gt=0)
    total_marks: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None


class Quiz(QuizBase):
    id: str
    is_active: bool = False
    created_at: Optional[UtcDateTime] = None


# ==========================================
# QUESTION BANK SCHEMAS
# ==========================================

class QuestionBase(PortalModel):
    question_text: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=2, description="At least 2 options")
    correct_answer: int = Field(..., ge=0, description="Index into options")
    explanation: Optional[str] = None
    marks: int = Field(default=1, gt=0)
    order: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _answer_within_options(self):
        if self.correct_answer >= len(self.options):
            raise ValueError("correctAnswer must index one of the options")
        return self


class QuestionCreate(QuestionBase):
    pass


class QuestionUpdate(UpdateModel):
    nullable_fields = frozenset({"explanation"})

    question_text: Optional[str] = Field(None, min_length=1)
    options: Optional[List[str]] = Field(None, min_length=2)
    correct_answer: Optional[int] = Field(None, ge=0)
    explanation: Optional[str] = None
    marks: Optional[int] = Field(None, gt=0)
    order: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def _answer_within_options(self):
        if (
            self.options is not None
            and self.correct_answer is not None
            and self.correct_answer >= len(self.options)
        ):
            raise ValueError("correctAnswer must index one of the options")
        return self


class Question(QuestionBase):
    id: str


class StudentQuestion(PortalModel):
    """Question as shown to a student taking the quiz (no answer key)"""
    id: str
    question_text: str
    options: List[str]
    explanation: Optional[str] = None
    marks: int = 1
    order: int = 0


class QuizUsage(PortalModel):
    quiz_id: str
    quiz_title: str
    quiz_subject_id: str


class QuestionWithQuizInfo(Question):
    used_in_quizzes: List[QuizUsage] = []


class QuizQuestionLink(PortalModel):
    id: str
    quiz_id: str
    question_id: str
    order: int = 0


class AddQuestionRequest(PortalModel):
    question_id: str = Field(..., min_length=1)
    order: Optional[int] = Field(None, ge=0)


class LinkResult(SuccessResponse):
    created: bool


class ReorderQuestionsRequest(PortalModel):
    ordered_question_ids: List[str]


class SyncQuestionsRequest(PortalModel):
    question_ids: List[str] = []


class SyncQuestionsResult(PortalModel):
    success: bool = True
    linked: int
    skipped: int
    total: int
    message: str


class SyncStatus(PortalModel):
    quiz_id: str
    quiz_title: str
    total_questions_in_bank: int
    linked_to_this_quiz: int
    not_linked: int
    unlinked_question_ids: List[str]


# ==========================================
# ATTEMPT SCHEMAS
# ==========================================

class QuizAttempt(PortalModel):
    id: str
    user_id: str
    quiz_id: str
    answers: Dict[str, int] = {}
    score: Optional[int] = None
    total_questions: Optional[int] = None
    time_taken: Optional[int] = None
    submitted_at: Optional[UtcDateTime] = None


class AttemptWithQuiz(QuizAttempt):
    quiz: Optional[Quiz] = None


class QuizSubmitRequest(PortalModel):
    answers: Dict[str, int] = {}
    time_taken: Optional[int] = Field(None, ge=0, description="Seconds")


class QuizSubmitResponse(PortalModel):
    attempt: QuizAttempt
    correct_answers: Dict[str, int]


class AttemptCheckResponse(PortalModel):
    attempted: bool
    attempt: Optional[QuizAttempt] = None


# ==========================================
# ANALYTICS SCHEMAS
# ==========================================

class LeaderboardEntry(PortalModel):
    rank: int = 0
    student_id: str
    student_name: str
    student_email: str
    score: int
    total_questions: int
    percentage: int
    time_taken: Optional[int] = None
    submitted_at: Optional[UtcDateTime] = None


class QuizAnalytics(PortalModel):
    quiz_id: str
    quiz_title: str
    total_attempts: int = 0
    average_score: float = 0
    average_percentage: int = 0
    highest_score: int = 0
    lowest_score: int = 0
    total_questions: int = 0
    leaderboard: List[LeaderboardEntry] = []


class AdminStats(PortalModel):
    users: int
    subjects: int
    chapters: int
    quizzes: int
    questions: int
    materials: int
    attempts: int
    students: int
    notices: int
    active_quizzes: int
    total_quiz_time: int


# ==========================================
# IDENTITY SCHEMAS
# ==========================================

StudentStatus = Literal["pending", "approved", "blocked"]


class User(PortalModel):
    """Staff account as stored"""
    id: str
    username: str
    email: str
    password: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    dark_mode: Optional[bool] = False
    phone: Optional[str] = None
    session_token: Optional[str] = None
    created_at: Optional[UtcDateTime] = None


class UserResponse(PortalModel):
    id: str
    username: str
    email: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    dark_mode: Optional[bool] = None
    phone: Optional[str] = None
    created_at: Optional[UtcDateTime] = None


class UserCreate(PortalModel):
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    display_name: Optional[str] = None
    phone: Optional[str] = None


class ProfileUpdate(PortalModel):
    display_name: Optional[str] = None
    phone: Optional[str] = None
    dark_mode: Optional[bool] = None


class Student(PortalModel):
    """Student account as stored"""
    id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    password: str = ""
    plain_password: Optional[str] = None
    enrollment_number: str = ""
    status: StudentStatus = "pending"
    session_token: Optional[str] = None
    created_at: Optional[UtcDateTime] = None


class StudentResponse(PortalModel):
    id: str
    name: str
    email: str
    phone: str
    enrollment_number: str
    status: StudentStatus
    created_at: Optional[UtcDateTime] = None


class StudentWithPassword(StudentResponse):
    """Admin view; password is the cleartext mirror, not the hash"""
    password: str = ""


class StudentCreate(PortalModel):
    name: Optional[str] = None
    email: EmailStr
    phone: Optional[str] = None
    password: str = Field(..., min_length=6)


class StudentUpdate(PortalModel):
    name: Optional[str] = None
    email: EmailStr
    phone: Optional[str] = None


class StudentStatusUpdate(PortalModel):
    status: StudentStatus


class PasswordResetToken(PortalModel):
    id: str
    user_id: str
    token: str
    expires_at: UtcDateTime
    used: bool = False
    created_at: Optional[UtcDateTime] = None


# ==========================================
# AUTH REQUEST / RESPONSE SCHEMAS
# ==========================================

class LoginRequest(PortalModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class StudentLoginRequest(PortalModel):
    identifier: str = Field(..., min_length=1, description="Email or phone")
    password: str = Field(..., min_length=1)


class LoginResponse(PortalModel):
    user: UserResponse
    token: str


class StudentLoginResponse(PortalModel):
    student: StudentResponse
    token: str


class UserEnvelope(PortalModel):
    user: UserResponse


class StudentProfile(StudentResponse):
    """A student shaped like a staff profile for /api/auth/me"""
    username: str
    display_name: Optional[str] = None


class MeResponse(PortalModel):
    user: Union[StudentProfile, UserResponse]


class NewPasswordRequest(PortalModel):
    new_password: str = Field(..., min_length=6)


class ForgotPasswordRequest(PortalModel):
    email: EmailStr


class ForgotPasswordResponse(PortalModel):
    message: str = "If that email exists, a reset link has been sent."


class ResetPasswordRequest(PortalModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class MessageResponse(PortalModel):
    message: str


# ==========================================
# NOTICE / NOTIFICATION SCHEMAS
# ==========================================

NoticePriority = Literal["normal", "important", "urgent"]


class NoticeCreate(PortalModel):
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    expires_at: UtcDateTime
    priority: NoticePriority = "normal"


class NoticeUpdate(UpdateModel):
    nullable_fields = frozenset({"expires_at"})

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    message: Optional[str] = Field(None, min_length=1)
    expires_at: Optional[UtcDateTime] = None
    priority: Optional[NoticePriority] = None


class Notice(PortalModel):
    id: str
    title: str
    message: str
    priority: NoticePriority = "normal"
    created_at: Optional[UtcDateTime] = None
    expires_at: Optional[UtcDateTime] = None


class Notification(PortalModel):
    id: str
    user_id: str
    title: str
    message: str
    type: str = "info"  # quiz | material | notice | info
    read: bool = False
    created_at: Optional[UtcDateTime] = None
