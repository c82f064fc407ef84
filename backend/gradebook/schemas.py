"""Pydantic request/response schemas and grading snapshots.

Request schemas keep API input shapes stable and validate controller
payloads. The `*Snapshot` models are the immutable quiz view handed to
the grading engine; `GradedAnswer` and `GradeResult` are what it returns.
"""

from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from .models import (
    AttemptStatus,
    Difficulty,
    QuestionType,
    ResultVisibility,
    Role,
)


class RegisterIn(BaseModel):
    """Payload for the registration endpoint."""
    username: str
    password: str
    role: Role = Role.STUDENT

    @field_validator('role')
    @classmethod
    def _no_self_admin(cls, v: Role) -> Role:
        if v == Role.ADMIN:
            raise ValueError('role must be student or instructor')
        return v


class LoginIn(BaseModel):
    """Payload for the login endpoint."""
    username: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class OptionIn(BaseModel):
    """A choice option in a question payload."""
    text: str
    is_correct: bool = False
    key: Optional[str] = None


class QuestionIn(BaseModel):
    """Request format for authoring a single question."""
    prompt: str = Field(min_length=1)
    question_type: QuestionType
    options: List[OptionIn] = Field(default_factory=list)
    reference_answer: Optional[str] = None
    explanation: Optional[str] = None
    points: float = Field(default=1, ge=0)
    difficulty: Difficulty = Difficulty.MEDIUM


class QuizSettingsIn(BaseModel):
    """Scoring and delivery settings for a quiz."""
    time_limit: Optional[int] = Field(default=None, ge=1)
    max_attempts: int = Field(default=1, ge=1)
    passing_score: int = Field(default=70, ge=0, le=100)
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_results: ResultVisibility = ResultVisibility.IMMEDIATELY
    show_correct_answers: bool = True
    questions_per_attempt: Optional[int] = Field(default=None, ge=1)


class QuizIn(BaseModel):
    """Request model for creating a quiz."""
    title: str = Field(min_length=1)
    description: Optional[str] = None
    course_id: Optional[int] = None
    questions: List[QuestionIn] = Field(min_length=1)
    settings: QuizSettingsIn = Field(default_factory=QuizSettingsIn)
    due_date: Optional[datetime] = None
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None

    @field_validator('title')
    @classmethod
    def _strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('title must not be blank')
        return v


class QuizUpdateIn(BaseModel):
    """Partial edit of a quiz's details, settings and dates.

    Fields left out of the request keep their stored value.
    """
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    course_id: Optional[int] = None
    settings: Optional[QuizSettingsIn] = None
    due_date: Optional[datetime] = None
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None

    @field_validator('title')
    @classmethod
    def _strip_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError('title must not be blank')
        return v


class QuestionListIn(BaseModel):
    """Replacement question list for an existing quiz."""
    questions: List[QuestionIn]


class AnswerSubmission(BaseModel):
    """Single submitted answer item used when grading an attempt."""
    question_id: int
    answer: Any = None
    time_spent: Optional[int] = Field(default=None, ge=0)


class AttemptSubmission(BaseModel):
    """Request model for submitting an attempt with optional final answers."""
    answers: List[AnswerSubmission] = Field(default_factory=list)


class FeedbackIn(BaseModel):
    """Instructor feedback text for an attempt."""
    feedback: str


class ReviewIn(BaseModel):
    """Instructor-awarded points (and optional note) for one answer."""
    question_id: int
    points: float = Field(ge=0)
    feedback: Optional[str] = None


class OptionSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    text: str
    is_correct: bool = False


class QuestionSnapshot(BaseModel):
    """Immutable view of a question as the grading engine sees it."""
    model_config = ConfigDict(frozen=True)

    id: int
    question_type: QuestionType
    points: float = 1
    options: tuple[OptionSnapshot, ...] = ()
    reference_answer: Optional[str] = None

    @classmethod
    def from_model(cls, question) -> 'QuestionSnapshot':
        return cls(
            id=question.id,
            question_type=question.question_type,
            points=question.points,
            options=tuple(OptionSnapshot(key=o.key, text=o.text, is_correct=o.is_correct) for o in question.options),
            reference_answer=question.reference_answer,
        )


class QuizSnapshot(BaseModel):
    """Immutable quiz view loaded once before grading.

    `total_points` is the stored value; the engine refuses to grade when it
    disagrees with the questions.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    questions: tuple[QuestionSnapshot, ...] = ()
    total_points: float = 0
    passing_score: int = Field(default=70, ge=0, le=100)

    @classmethod
    def from_model(cls, quiz) -> 'QuizSnapshot':
        return cls(
            id=quiz.id,
            questions=tuple(QuestionSnapshot.from_model(q) for q in quiz.questions),
            total_points=quiz.total_points,
            passing_score=quiz.passing_score,
        )


class GradedAnswer(BaseModel):
    """Outcome of scoring one submitted answer."""
    question_id: int
    answer: Any = None
    is_correct: bool = False
    points_earned: float = 0
    pending_review: bool = False
    time_spent: Optional[int] = None


class GradeResult(BaseModel):
    """Score, percentage and pass flag for a set of graded answers."""
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    answers: List[GradedAnswer] = Field(default_factory=list)
    score: float = 0
    percentage: int = 0
    is_passed: bool = False
