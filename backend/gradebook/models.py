"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
The enumerations used by the grading engine live here too so stored
values and engine values never drift apart.
"""

from enum import Enum
from typing import Any, List, Optional
from datetime import datetime, timezone
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field, Relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Role(str, Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_ANSWER = "short-answer"
    ESSAY = "essay"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ResultVisibility(str, Enum):
    IMMEDIATELY = "immediately"
    AFTER_SUBMISSION = "after-submission"
    AFTER_DUE_DATE = "after-due-date"
    NEVER = "never"


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    SUBMITTED = "submitted"
    AUTO_SUBMITTED = "auto-submitted"
    ABANDONED = "abandoned"


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: students take quizzes, instructors author and review them
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    role: Role = Field(default=Role.STUDENT)
    created_at: datetime = Field(default_factory=utcnow)


class Quiz(SQLModel, table=True):
    """An ordered assessment owned by an instructor.

    `total_points` is derived from the questions and is recomputed by the
    quiz service every time the question list is persisted.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    course_id: Optional[int] = Field(default=None, index=True)
    instructor_id: int = Field(foreign_key='user.id', index=True)
    time_limit: Optional[int] = None
    max_attempts: int = 1
    passing_score: int = 70
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_results: ResultVisibility = Field(default=ResultVisibility.IMMEDIATELY)
    show_correct_answers: bool = True
    questions_per_attempt: Optional[int] = None
    is_published: bool = False
    due_date: Optional[datetime] = None
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    total_points: float = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    questions: List['Question'] = Relationship(
        back_populates='quiz',
        sa_relationship_kwargs={'order_by': 'Question.position', 'cascade': 'all, delete-orphan'},
    )


class Question(SQLModel, table=True):
    """A single assessment item inside a `Quiz`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key='quiz.id', index=True)
    position: int = 0
    prompt: str
    question_type: QuestionType
    reference_answer: Optional[str] = None
    explanation: Optional[str] = None
    points: float = 1
    difficulty: Difficulty = Field(default=Difficulty.MEDIUM)
    quiz: Optional[Quiz] = Relationship(back_populates='questions')
    options: List['QuestionOption'] = Relationship(
        back_populates='question',
        sa_relationship_kwargs={'order_by': 'QuestionOption.position', 'cascade': 'all, delete-orphan'},
    )


class QuestionOption(SQLModel, table=True):
    """Possible answer for a choice `Question`.

    `is_correct` marks whether this option is considered correct. More
    than one option may be flagged; the learner must then select all of
    them.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key='question.id', index=True)
    position: int = 0
    key: str
    text: str
    is_correct: bool = False
    question: Optional[Question] = Relationship(back_populates='options')


class QuizAttempt(SQLModel, table=True):
    """One learner's try at a quiz, with the derived grading results."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key='quiz.id', index=True)
    student_id: int = Field(foreign_key='user.id', index=True)
    attempt_number: int
    status: AttemptStatus = Field(default=AttemptStatus.IN_PROGRESS, index=True)
    score: float = 0
    percentage: int = 0
    is_passed: bool = False
    started_at: datetime = Field(default_factory=utcnow)
    submitted_at: Optional[datetime] = None
    time_spent: Optional[int] = None
    feedback: Optional[str] = None
    answers: List['AttemptAnswer'] = Relationship(
        back_populates='attempt',
        sa_relationship_kwargs={'order_by': 'AttemptAnswer.id', 'cascade': 'all, delete-orphan'},
    )


class AttemptAnswer(SQLModel, table=True):
    """A single submitted answer inside a `QuizAttempt`.

    `answer` holds the raw submitted value (string, list or object).
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key='quizattempt.id', index=True)
    question_id: int = Field(foreign_key='question.id')
    answer: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    is_correct: bool = False
    points_earned: float = 0
    pending_review: bool = False
    feedback: Optional[str] = None
    time_spent: Optional[int] = None
    attempt: Optional[QuizAttempt] = Relationship(back_populates='answers')
