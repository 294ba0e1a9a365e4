from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime
from examhub.models.user import UserRole


AnswerChoice = Literal["A", "B", "C", "D"]
LockAction = Literal["lock", "unlock"]


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input, serializes as camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# =============================================================================
# Auth
# =============================================================================

class RegisterRequest(CamelModel):
    name: str = Field(min_length=2)
    email: str
    password: str = Field(min_length=6)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("الاسم يجب أن يكون حرفين على الأقل")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class LoginRequest(CamelModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class UserOut(CamelModel):
    id: int
    name: str
    email: str
    role: UserRole
    phone_number: Optional[str] = None
    student_code: Optional[str] = None
    is_active: bool
    total_score: int = 0
    overall_percentage: float = 0.0
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TokenOut(CamelModel):
    token: str
    user: UserOut


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    local, sep, domain = value.partition("@")
    if not sep or not local or "." not in domain:
        raise ValueError("يرجى إدخال بريد إلكتروني صحيح")
    return value


# =============================================================================
# Exams
# =============================================================================

class QuestionIn(CamelModel):
    question_image: Optional[str] = None
    correct_answer: AnswerChoice
    explanation: str = ""


class QuestionOut(CamelModel):
    id: int
    question_image: str
    correct_answer: str
    explanation: str = ""


class PublicQuestionOut(CamelModel):
    """Question without its answer key"""
    id: int
    question_image: str


class ExamCreate(CamelModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    exam_group: int = Field(ge=0, le=8)
    order: int = Field(ge=1)
    time_limit: int = Field(ge=1, default=60)
    questions: List[QuestionIn] = Field(min_length=1)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("عنوان الامتحان مطلوب")
        return v


class ExamUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    exam_group: Optional[int] = Field(default=None, ge=0, le=8)
    order: Optional[int] = Field(default=None, ge=1)
    time_limit: Optional[int] = Field(default=None, ge=1)
    questions: Optional[List[QuestionIn]] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None


class ExamSummary(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    exam_group: int
    order: int
    time_limit: int
    total_questions: int
    is_active: bool
    is_free_exam: bool
    free_exam_order: Optional[int] = None
    total_attempts: int
    average_score: float
    pass_count: int
    pass_rate_percentage: float
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


class ExamOut(ExamSummary):
    questions: List[QuestionOut] = []


class PublicExamOut(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    exam_group: int
    order: int
    time_limit: int
    total_questions: int
    free_exam_order: Optional[int] = None
    questions: List[PublicQuestionOut] = []


class SetFreeRequest(CamelModel):
    free_exam_order: int = Field(ge=1, le=3)


# =============================================================================
# Submissions
# =============================================================================

class AnswerIn(CamelModel):
    question_id: Optional[int] = None
    selected_answer: AnswerChoice


class SubmitExamRequest(CamelModel):
    answers: List[AnswerIn] = Field(min_length=1)


class RepeatExamRequest(CamelModel):
    student_id: int


class AnswerRecord(CamelModel):
    question_id: int
    selected_answer: Optional[str] = None
    is_correct: bool


class SubmissionResult(CamelModel):
    score: int
    percentage: float
    correct_answers: int
    total_questions: int
    wrong_answers: int
    has_review_exam: bool
    review_exam_id: Optional[int] = None


class ReviewSubmissionResult(CamelModel):
    score: int
    percentage: float
    correct_answers: int
    total_questions: int
    wrong_answers: int
    attempt_number: int
    is_best_score: bool


class ProgressOut(CamelModel):
    id: int
    exam_id: int
    exam_group: int
    status: str
    score: Optional[int] = None
    percentage: Optional[float] = None
    total_questions: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    answers: List[AnswerRecord] = []
    wrong_questions: List[int] = []
    review_exam_id: Optional[int] = None
    exam_title: Optional[str] = None
    exam_order: Optional[int] = None
    best_review_score: Optional[float] = None


# =============================================================================
# Review exams
# =============================================================================

class ReviewQuestionOut(CamelModel):
    id: int
    question_id: int
    original_question_index: int
    question_image: str
    correct_answer: str
    explanation: str = ""


class ReviewAttemptOut(CamelModel):
    attempt_number: int
    score: int
    percentage: float
    answers: List[AnswerRecord] = []
    completed_at: Optional[datetime] = None


class ReviewExamOut(CamelModel):
    id: int
    student_id: int
    original_exam_id: int
    title: str
    description: str
    time_limit: int
    is_active: bool
    best_score: int
    best_percentage: float
    total_attempts: int
    current_attempt_number: int
    created_at: Optional[datetime] = None
    questions: List[ReviewQuestionOut] = []
    attempts: List[ReviewAttemptOut] = []


# =============================================================================
# Students
# =============================================================================

class StudentCreate(CamelModel):
    name: str = Field(min_length=2)
    email: str
    password: str = Field(min_length=6)
    phone_number: str = Field(min_length=1)
    student_code: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class StudentUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2)
    email: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_email(v) if v is not None else v


class StudentDetail(UserOut):
    progress: List[ProgressOut] = []


class ExamIdRequest(CamelModel):
    exam_id: int


class ToggleExamsRequest(CamelModel):
    exam_ids: List[int] = Field(min_length=1)
    action: LockAction


class ToggleGroupRequest(CamelModel):
    group_number: int = Field(ge=0, le=8)
    action: LockAction


class AssignExamsRequest(CamelModel):
    exam_ids: List[int] = Field(min_length=1)


class AssignCategoryRequest(CamelModel):
    category: int = Field(ge=0, le=8)


class AssignCategoriesRequest(CamelModel):
    categories: List[int] = Field(min_length=1)
