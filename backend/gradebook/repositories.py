"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
quizzes, attempts). Repositories return SQLModel objects and perform
commits/refreshes where appropriate.
"""

from typing import List, Optional
from sqlmodel import Session, select
from sqlalchemy import func, update
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


class QuizRepository:
    """Persist quizzes together with their questions and options."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, quiz_id: int) -> Optional[models.Quiz]:
        return self.session.get(models.Quiz, quiz_id)

    def save(self, quiz: models.Quiz) -> models.Quiz:
        """Commit the quiz graph (questions and options cascade)."""
        self.session.add(quiz)
        self.session.commit()
        self.session.refresh(quiz)
        return quiz

    def list_for_instructor(self, instructor_id: int) -> List[models.Quiz]:
        stmt = (
            select(models.Quiz)
            .where(models.Quiz.instructor_id == instructor_id)
            .order_by(models.Quiz.id.desc())
        )
        return self.session.exec(stmt).all()

    def list_published_for_course(self, course_id: int) -> List[models.Quiz]:
        stmt = (
            select(models.Quiz)
            .where(models.Quiz.course_id == course_id, models.Quiz.is_published == True)  # noqa: E712
            .order_by(models.Quiz.id)
        )
        return self.session.exec(stmt).all()


class AttemptRepository:
    """Queries and updates for `QuizAttempt` and its answers."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, attempt_id: int) -> Optional[models.QuizAttempt]:
        return self.session.get(models.QuizAttempt, attempt_id)

    def count_for_student(self, quiz_id: int, student_id: int) -> int:
        """Number of attempts (any status) the student has made on the quiz."""
        stmt = select(func.count(models.QuizAttempt.id)).where(
            models.QuizAttempt.quiz_id == quiz_id,
            models.QuizAttempt.student_id == student_id,
        )
        return self.session.exec(stmt).one()

    def find_in_progress(self, quiz_id: int, student_id: int) -> Optional[models.QuizAttempt]:
        stmt = select(models.QuizAttempt).where(
            models.QuizAttempt.quiz_id == quiz_id,
            models.QuizAttempt.student_id == student_id,
            models.QuizAttempt.status == models.AttemptStatus.IN_PROGRESS,
        )
        return self.session.exec(stmt).first()

    def list_for_quiz(self, quiz_id: int, status: Optional[models.AttemptStatus] = None,
                      student_id: Optional[int] = None) -> List[models.QuizAttempt]:
        stmt = select(models.QuizAttempt).where(models.QuizAttempt.quiz_id == quiz_id)
        if status is not None:
            stmt = stmt.where(models.QuizAttempt.status == status)
        if student_id is not None:
            stmt = stmt.where(models.QuizAttempt.student_id == student_id)
        return self.session.exec(stmt.order_by(models.QuizAttempt.id)).all()

    def _student_query(self, stmt, student_id: int, status: Optional[models.AttemptStatus],
                       course_id: Optional[int]):
        stmt = stmt.where(models.QuizAttempt.student_id == student_id)
        if status is not None:
            stmt = stmt.where(models.QuizAttempt.status == status)
        if course_id is not None:
            stmt = stmt.join(models.Quiz, models.Quiz.id == models.QuizAttempt.quiz_id).where(
                models.Quiz.course_id == course_id)
        return stmt

    def list_for_student(self, student_id: int, status: Optional[models.AttemptStatus] = None,
                         course_id: Optional[int] = None, offset: int = 0,
                         limit: int = 10) -> List[models.QuizAttempt]:
        """One page of a learner's attempts, newest first."""
        stmt = self._student_query(select(models.QuizAttempt), student_id, status, course_id)
        stmt = stmt.order_by(models.QuizAttempt.started_at.desc(), models.QuizAttempt.id.desc())
        return self.session.exec(stmt.offset(offset).limit(limit)).all()

    def count_for_filters(self, student_id: int, status: Optional[models.AttemptStatus] = None,
                          course_id: Optional[int] = None) -> int:
        base = select(func.count(models.QuizAttempt.id)).select_from(models.QuizAttempt)
        stmt = self._student_query(base, student_id, status, course_id)
        return self.session.exec(stmt).one()

    def list_in_progress(self, instructor_id: Optional[int] = None) -> List[models.QuizAttempt]:
        """In-progress attempts, optionally only those on one instructor's quizzes."""
        stmt = select(models.QuizAttempt).where(models.QuizAttempt.status == models.AttemptStatus.IN_PROGRESS)
        if instructor_id is not None:
            stmt = stmt.join(models.Quiz, models.Quiz.id == models.QuizAttempt.quiz_id).where(
                models.Quiz.instructor_id == instructor_id)
        return self.session.exec(stmt.order_by(models.QuizAttempt.id)).all()

    def create(self, attempt: models.QuizAttempt) -> models.QuizAttempt:
        self.session.add(attempt)
        self.session.commit()
        self.session.refresh(attempt)
        return attempt

    def claim_transition(self, attempt_id: int, from_status: models.AttemptStatus,
                         to_status: models.AttemptStatus) -> bool:
        """Conditionally move an attempt between statuses.

        Issues `UPDATE ... WHERE status = from_status` without committing and
        returns whether a row changed. Of two concurrent submits only one
        sees a changed row; the caller commits or rolls back.
        """
        stmt = (
            update(models.QuizAttempt)
            .where(models.QuizAttempt.id == attempt_id, models.QuizAttempt.status == from_status)
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def save(self, attempt: models.QuizAttempt) -> models.QuizAttempt:
        self.session.add(attempt)
        self.session.commit()
        self.session.refresh(attempt)
        return attempt
