import os
import tempfile
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

# Point the application at a throwaway database before it is imported.
_DB_DIR = Path(tempfile.mkdtemp(prefix="gradebook-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'app.db'}"
os.environ["ANSWER_MATCH_POLICY"] = "exact"

from gradebook import models  # noqa: E402
from gradebook.schemas import OptionIn, QuestionIn, QuizIn, QuizSettingsIn  # noqa: E402
from gradebook.services import AuthService, QuizService  # noqa: E402


@pytest.fixture
def session():
    """Fresh in-memory database per test."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s


@pytest.fixture
def instructor(session):
    return AuthService(session).register("teacher", "pw", models.Role.INSTRUCTOR)


@pytest.fixture
def student(session):
    return AuthService(session).register("learner", "pw")


@pytest.fixture
def other_student(session):
    return AuthService(session).register("learner2", "pw")


def capital_questions():
    """Two questions worth 2 + 3 points: choice 'A' and short answer 'Paris'."""
    return [
        QuestionIn(
            prompt="2 + 2 = ?",
            question_type=models.QuestionType.MULTIPLE_CHOICE,
            points=2,
            options=[OptionIn(key="A", text="4", is_correct=True), OptionIn(key="B", text="5")],
        ),
        QuestionIn(
            prompt="Capital of France?",
            question_type=models.QuestionType.SHORT_ANSWER,
            points=3,
            reference_answer="Paris",
            explanation="Paris has been the capital since 987.",
        ),
    ]


@pytest.fixture
def make_quiz(session, instructor):
    """Create (and by default publish) a quiz owned by `instructor`."""
    def _make(questions=None, publish=True, **settings):
        settings.setdefault("passing_score", 60)
        extra = {k: settings.pop(k) for k in ("course_id", "due_date", "available_from", "available_until")
                 if k in settings}
        payload = QuizIn(
            title="Geography",
            questions=questions if questions is not None else capital_questions(),
            settings=QuizSettingsIn(**settings),
            **extra,
        )
        svc = QuizService(session)
        quiz = svc.create_quiz(instructor, payload)
        if publish:
            quiz = svc.set_published(quiz.id, instructor, True)
        return quiz
    return _make
