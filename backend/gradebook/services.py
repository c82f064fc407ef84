"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories and
the grading engine. Services are intentionally thin: they check
permissions and lifecycle rules, load a consistent quiz snapshot, call
`grading` and persist the resulting aggregates via repositories.
"""

import json
import logging
import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

import jwt
from passlib.context import CryptContext
from sqlmodel import Session

from . import grading, models, repositories
from .config import settings
from .errors import NotFoundError, PermissionDeniedError, StateError, ValidationError
from .schemas import AnswerSubmission, QuestionIn, QuestionSnapshot, QuizIn, QuizSnapshot, QuizUpdateIn

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
STAFF_ROLES = (models.Role.INSTRUCTOR, models.Role.ADMIN)

logger = logging.getLogger(__name__)


def _event(name: str, **fields):
    logger.info("%s %s", name, json.dumps(fields, ensure_ascii=True, default=str))


def _option_key(index: int) -> str:
    return chr(ord('A') + index) if index < 26 else str(index + 1)


def build_question(payload: QuestionIn, position: int) -> models.Question:
    """Create an unsaved `Question` (with options) from a request payload."""
    options = []
    seen = set()
    for i, o in enumerate(payload.options):
        key = (o.key or _option_key(i)).strip()
        if not key or key in seen:
            raise ValidationError(f"duplicate or empty option key {key!r} in question {position + 1}")
        seen.add(key)
        options.append(models.QuestionOption(position=i, key=key, text=o.text, is_correct=o.is_correct))
    if payload.question_type in (models.QuestionType.MULTIPLE_CHOICE, models.QuestionType.TRUE_FALSE):
        if not options and payload.reference_answer is None:
            raise ValidationError(f"question {position + 1} needs options or a reference answer")
    return models.Question(
        position=position,
        prompt=payload.prompt,
        question_type=payload.question_type,
        reference_answer=payload.reference_answer,
        explanation=payload.explanation,
        points=payload.points,
        difficulty=payload.difficulty,
        options=options,
    )


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, username: str, password: str, role: models.Role = models.Role.STUDENT) -> models.User:
        """Create a new user with a hashed password.

        Returns the persisted `User` instance.
        """
        hashed = PWD_CTX.hash(password)
        u = models.User(username=username, password_hash=hashed, role=role)
        return self.user_repo.create(u)

    def authenticate(self, username: str, password: str):
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_username(username)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "username": user.username, "role": user.role.value,
                   "exp": int(expire.timestamp())}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class QuizService:
    """Author quizzes and build the learner-facing paper."""
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)

    def get(self, quiz_id: int) -> models.Quiz:
        quiz = self.quiz_repo.get(quiz_id)
        if not quiz:
            raise NotFoundError(f"quiz not found: {quiz_id}")
        return quiz

    def _check_owner(self, quiz: models.Quiz, user: models.User):
        if user.role != models.Role.ADMIN and quiz.instructor_id != user.id:
            raise PermissionDeniedError("only the quiz instructor may change it")

    def _check_no_attempts(self, quiz: models.Quiz):
        if self.attempt_repo.list_for_quiz(quiz.id):
            raise StateError(f"quiz {quiz.id} already has attempts; its questions are frozen")

    def _persist(self, quiz: models.Quiz) -> models.Quiz:
        quiz.total_points = grading.recompute_total_points(quiz.questions)
        quiz.updated_at = models.utcnow()
        return self.quiz_repo.save(quiz)

    def create_quiz(self, user: models.User, payload: QuizIn) -> models.Quiz:
        """Create a quiz with its questions; `total_points` is derived."""
        if user.role not in STAFF_ROLES:
            raise PermissionDeniedError("only instructors can create quizzes")
        s = payload.settings
        quiz = models.Quiz(
            title=payload.title,
            description=payload.description,
            course_id=payload.course_id,
            instructor_id=user.id,
            time_limit=s.time_limit,
            max_attempts=s.max_attempts,
            passing_score=s.passing_score,
            shuffle_questions=s.shuffle_questions,
            shuffle_options=s.shuffle_options,
            show_results=s.show_results,
            show_correct_answers=s.show_correct_answers,
            questions_per_attempt=s.questions_per_attempt,
            due_date=payload.due_date,
            available_from=payload.available_from,
            available_until=payload.available_until,
            questions=[build_question(q, i) for i, q in enumerate(payload.questions)],
        )
        quiz = self._persist(quiz)
        _event("quiz_created", quiz_id=quiz.id, instructor_id=user.id, total_points=quiz.total_points)
        return quiz

    def update_quiz(self, quiz_id: int, user: models.User, payload: QuizUpdateIn) -> models.Quiz:
        """Edit details, settings and dates of a quiz.

        Title, description, course and availability window can change at
        any time. Settings and the due date decide how attempts are graded
        and shown, so they are frozen once the quiz has attempts.
        """
        quiz = self.get(quiz_id)
        self._check_owner(quiz, user)
        changed = payload.model_fields_set
        if changed & {'settings', 'due_date'} and self.attempt_repo.list_for_quiz(quiz.id):
            raise StateError(f"quiz {quiz.id} already has attempts; its settings are frozen")
        if 'title' in changed and payload.title is not None:
            quiz.title = payload.title
        for name in ('description', 'course_id', 'due_date', 'available_from', 'available_until'):
            if name in changed:
                setattr(quiz, name, getattr(payload, name))
        if 'settings' in changed and payload.settings is not None:
            for name, value in payload.settings.model_dump(exclude_unset=True).items():
                setattr(quiz, name, value)
        quiz.updated_at = models.utcnow()
        quiz = self.quiz_repo.save(quiz)
        _event("quiz_updated", quiz_id=quiz.id, fields=sorted(changed))
        return quiz

    def list_for_instructor(self, user: models.User) -> List[models.Quiz]:
        if user.role not in STAFF_ROLES:
            raise PermissionDeniedError("only instructors have quizzes")
        return self.quiz_repo.list_for_instructor(user.id)

    def list_for_course(self, course_id: int) -> List[dict]:
        """Published quizzes of a course, without questions or answers."""
        return [
            {
                'id': q.id,
                'title': q.title,
                'description': q.description,
                'course_id': q.course_id,
                'time_limit': q.time_limit,
                'max_attempts': q.max_attempts,
                'passing_score': q.passing_score,
                'total_points': q.total_points,
                'total_questions': len(q.questions),
                'due_date': q.due_date.isoformat() if q.due_date else None,
                'available_from': q.available_from.isoformat() if q.available_from else None,
                'available_until': q.available_until.isoformat() if q.available_until else None,
            }
            for q in self.quiz_repo.list_published_for_course(course_id)
        ]

    def replace_questions(self, quiz_id: int, user: models.User, questions: Sequence[QuestionIn]) -> models.Quiz:
        quiz = self.get(quiz_id)
        self._check_owner(quiz, user)
        self._check_no_attempts(quiz)
        quiz.questions = [build_question(q, i) for i, q in enumerate(questions)]
        return self._persist(quiz)

    def add_question(self, quiz_id: int, user: models.User, question: QuestionIn) -> models.Quiz:
        quiz = self.get(quiz_id)
        self._check_owner(quiz, user)
        self._check_no_attempts(quiz)
        quiz.questions.append(build_question(question, len(quiz.questions)))
        return self._persist(quiz)

    def set_published(self, quiz_id: int, user: models.User, published: bool) -> models.Quiz:
        quiz = self.get(quiz_id)
        self._check_owner(quiz, user)
        if published and not quiz.questions:
            raise StateError("cannot publish a quiz without questions")
        quiz.is_published = published
        quiz.updated_at = models.utcnow()
        return self.quiz_repo.save(quiz)

    def paper_for_attempt(self, quiz: models.Quiz, attempt: models.QuizAttempt) -> dict:
        """Return the quiz as a learner sees it during `attempt`.

        Correct flags, reference answers and explanations are stripped.
        Shuffling and question subsets are seeded by the attempt id, so a
        reload shows the same paper.
        """
        rng = random.Random(attempt.id)
        questions = list(quiz.questions)
        if quiz.shuffle_questions:
            rng.shuffle(questions)
        if quiz.questions_per_attempt and quiz.questions_per_attempt < len(questions):
            picked = set(q.id for q in rng.sample(questions, quiz.questions_per_attempt))
            questions = [q for q in questions if q.id in picked]
        out = []
        for q in questions:
            options = [{'key': o.key, 'text': o.text} for o in q.options]
            if quiz.shuffle_options:
                rng.shuffle(options)
            out.append({
                'id': q.id,
                'prompt': q.prompt,
                'question_type': q.question_type.value,
                'points': q.points,
                'options': options,
            })
        return {
            'id': quiz.id,
            'title': quiz.title,
            'description': quiz.description,
            'time_limit': quiz.time_limit,
            'total_points': quiz.total_points,
            'passing_score': quiz.passing_score,
            'questions': out,
        }


class AttemptService:
    """Drive an attempt through its lifecycle and persist graded results."""
    def __init__(self, session: Session, policy: Optional[str] = None):
        self.session = session
        self.policy = policy or settings.ANSWER_MATCH_POLICY
        self.quiz_repo = repositories.QuizRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)

    def _get(self, attempt_id: int) -> models.QuizAttempt:
        attempt = self.attempt_repo.get(attempt_id)
        if not attempt:
            raise NotFoundError(f"attempt not found: {attempt_id}")
        return attempt

    def _get_own(self, attempt_id: int, student: models.User) -> models.QuizAttempt:
        attempt = self._get(attempt_id)
        if attempt.student_id != student.id:
            raise PermissionDeniedError("attempt belongs to another learner")
        return attempt

    def _quiz(self, attempt: models.QuizAttempt) -> models.Quiz:
        quiz = self.quiz_repo.get(attempt.quiz_id)
        if not quiz:
            raise NotFoundError(f"quiz not found: {attempt.quiz_id}")
        return quiz

    def _check_staff(self, quiz: models.Quiz, user: models.User):
        if user.role != models.Role.ADMIN and quiz.instructor_id != user.id:
            raise PermissionDeniedError("only the quiz instructor may review attempts")

    def start(self, quiz_id: int, student: models.User, now: Optional[datetime] = None) -> models.QuizAttempt:
        """Open a new in-progress attempt for `student`."""
        now = now or models.utcnow()
        quiz = self.quiz_repo.get(quiz_id)
        if not quiz or not quiz.is_published:
            raise NotFoundError(f"quiz not found or not published: {quiz_id}")
        if quiz.available_from and now < models.as_utc(quiz.available_from):
            raise StateError("quiz is not yet available")
        if quiz.available_until and now > models.as_utc(quiz.available_until):
            raise StateError("quiz is no longer available")
        existing = self.attempt_repo.find_in_progress(quiz.id, student.id)
        if existing:
            raise StateError(f"attempt {existing.id} is already in progress")
        previous = self.attempt_repo.count_for_student(quiz.id, student.id)
        if previous >= quiz.max_attempts:
            raise StateError("maximum attempts reached")
        attempt = models.QuizAttempt(
            quiz_id=quiz.id,
            student_id=student.id,
            attempt_number=previous + 1,
            started_at=now,
        )
        attempt = self.attempt_repo.create(attempt)
        _event("attempt_started", attempt_id=attempt.id, quiz_id=quiz.id, student_id=student.id,
               attempt_number=attempt.attempt_number)
        return attempt

    def save_answer(self, attempt_id: int, student: models.User, submission: AnswerSubmission) -> models.AttemptAnswer:
        """Store (or replace) one answer on an in-progress attempt.

        The answer is scored right away. Attempt-level score fields are
        only written when the attempt is graded on submission.
        """
        attempt = self._get_own(attempt_id, student)
        if grading.is_terminal(attempt.status):
            raise StateError(f"attempt is already {attempt.status.value}")
        quiz = self._quiz(attempt)
        question = next((q for q in quiz.questions if q.id == submission.question_id), None)
        if question is None:
            raise ValidationError(f"question not found in quiz: {submission.question_id}")
        graded = grading.score_answer(
            QuestionSnapshot.from_model(question),
            submission.answer,
            policy=self.policy,
            time_spent=submission.time_spent,
        )
        row = next((a for a in attempt.answers if a.question_id == question.id), None)
        if row is None:
            row = models.AttemptAnswer(question_id=question.id)
            attempt.answers.append(row)
        row.answer = graded.answer
        row.is_correct = graded.is_correct
        row.points_earned = graded.points_earned
        row.pending_review = graded.pending_review
        row.time_spent = graded.time_spent
        self.attempt_repo.save(attempt)
        return row

    def _finalize(self, attempt: models.QuizAttempt, target: models.AttemptStatus,
                  answers: Sequence[AnswerSubmission], now: Optional[datetime]) -> models.QuizAttempt:
        now = now or models.utcnow()
        quiz = self._quiz(attempt)
        snapshot = QuizSnapshot.from_model(quiz)
        merged = {
            a.question_id: AnswerSubmission(question_id=a.question_id, answer=a.answer, time_spent=a.time_spent)
            for a in attempt.answers
        }
        final_ids = set()
        for a in answers:
            if a.question_id in final_ids:
                raise ValidationError(f"question answered more than once: {a.question_id}")
            final_ids.add(a.question_id)
            merged[a.question_id] = a
        result = grading.finalize_attempt(snapshot, list(merged.values()), attempt.status, target,
                                          policy=self.policy)
        if not self.attempt_repo.claim_transition(attempt.id, models.AttemptStatus.IN_PROGRESS, target):
            self.session.rollback()
            raise StateError(f"attempt {attempt.id} was already finalized")
        if target != models.AttemptStatus.ABANDONED:
            attempt.answers = [
                models.AttemptAnswer(
                    question_id=g.question_id,
                    answer=g.answer,
                    is_correct=g.is_correct,
                    points_earned=g.points_earned,
                    pending_review=g.pending_review,
                    time_spent=g.time_spent,
                )
                for g in result.answers
            ]
        attempt.status = result.status
        attempt.score = result.score
        attempt.percentage = result.percentage
        attempt.is_passed = result.is_passed
        if target != models.AttemptStatus.ABANDONED:
            attempt.submitted_at = now
        attempt.time_spent = max(0, int((now - models.as_utc(attempt.started_at)).total_seconds()))
        attempt = self.attempt_repo.save(attempt)
        _event("attempt_finalized", attempt_id=attempt.id, quiz_id=attempt.quiz_id, status=attempt.status.value,
               score=attempt.score, percentage=attempt.percentage, is_passed=attempt.is_passed)
        return attempt

    def submit(self, attempt_id: int, student: models.User, answers: Sequence[AnswerSubmission] = (),
               now: Optional[datetime] = None) -> models.QuizAttempt:
        """Learner-initiated completion; grades saved and final answers."""
        attempt = self._get_own(attempt_id, student)
        return self._finalize(attempt, models.AttemptStatus.SUBMITTED, answers, now)

    def auto_submit(self, attempt_id: int, now: Optional[datetime] = None) -> models.QuizAttempt:
        """Time-limit completion; grades exactly like `submit`."""
        attempt = self._get(attempt_id)
        return self._finalize(attempt, models.AttemptStatus.AUTO_SUBMITTED, (), now)

    def abandon(self, attempt_id: int, student: models.User, now: Optional[datetime] = None) -> models.QuizAttempt:
        attempt = self._get_own(attempt_id, student)
        return self._finalize(attempt, models.AttemptStatus.ABANDONED, (), now)

    def expire_overdue(self, now: Optional[datetime] = None, user: Optional[models.User] = None) -> List[int]:
        """Auto-submit in-progress attempts whose time limit has passed.

        With an instructor `user` only attempts on that instructor's own
        quizzes are considered; admins (or no user, for a scheduler) cover
        every quiz. Returns the ids of the attempts that were auto-submitted.
        """
        now = now or models.utcnow()
        scope = None
        if user is not None and user.role != models.Role.ADMIN:
            if user.role not in STAFF_ROLES:
                raise PermissionDeniedError("only instructors can expire attempts")
            scope = user.id
        expired = []
        for attempt in self.attempt_repo.list_in_progress(instructor_id=scope):
            quiz = self.quiz_repo.get(attempt.quiz_id)
            if not quiz or not quiz.time_limit:
                continue
            deadline = models.as_utc(attempt.started_at) + timedelta(minutes=quiz.time_limit)
            if deadline > now:
                continue
            try:
                self.auto_submit(attempt.id, now=now)
            except StateError as e:
                logger.warning("attempt_expire_skipped %s", json.dumps({"attempt_id": attempt.id, "reason": str(e)}))
                continue
            expired.append(attempt.id)
        return expired

    def add_feedback(self, attempt_id: int, user: models.User, feedback: str) -> models.QuizAttempt:
        attempt = self._get(attempt_id)
        self._check_staff(self._quiz(attempt), user)
        attempt.feedback = feedback
        return self.attempt_repo.save(attempt)

    def review_answer(self, attempt_id: int, user: models.User, question_id: int, points: float,
                      feedback: Optional[str] = None) -> models.QuizAttempt:
        """Set instructor points on one answer and re-aggregate the attempt.

        Works for answers waiting for review (essays) and as an override
        of an automatically scored answer. `points` must lie within
        0..question points.
        """
        attempt = self._get(attempt_id)
        quiz = self._quiz(attempt)
        self._check_staff(quiz, user)
        if attempt.status not in (models.AttemptStatus.SUBMITTED, models.AttemptStatus.AUTO_SUBMITTED):
            raise StateError(f"attempt is {attempt.status.value}; only graded attempts can be reviewed")
        row = next((a for a in attempt.answers if a.question_id == question_id), None)
        if row is None:
            raise ValidationError(f"no answer for question {question_id} in this attempt")
        question = next((q for q in quiz.questions if q.id == question_id), None)
        if question is None:
            raise StateError(f"question {question_id} no longer belongs to quiz {quiz.id}")
        if points < 0 or points > question.points:
            raise ValidationError(f"points must be between 0 and {question.points}")
        row.points_earned = points
        row.is_correct = points >= question.points
        row.pending_review = False
        if feedback:
            row.feedback = feedback
        attempt.score, attempt.percentage, attempt.is_passed = grading.aggregate(
            attempt.answers, quiz.total_points, quiz.passing_score)
        attempt = self.attempt_repo.save(attempt)
        _event("attempt_reviewed", attempt_id=attempt.id, question_id=question_id, points=points,
               score=attempt.score, percentage=attempt.percentage)
        return attempt

    def list_for_quiz(self, quiz_id: int, user: models.User, status: Optional[models.AttemptStatus] = None,
                      student_id: Optional[int] = None) -> List[dict]:
        """Attempts on a quiz with per-attempt progress, for its instructor."""
        quiz = self.quiz_repo.get(quiz_id)
        if not quiz:
            raise NotFoundError(f"quiz not found: {quiz_id}")
        self._check_staff(quiz, user)
        total = len(quiz.questions)
        out = []
        for attempt in self.attempt_repo.list_for_quiz(quiz.id, status=status, student_id=student_id):
            answered = len(attempt.answers)
            out.append({
                'attempt': attempt,
                'progress': {
                    'questions_answered': answered,
                    'total_questions': total,
                    'progress_percentage': grading.percentage_of(answered, total),
                    'time_spent': attempt.time_spent or 0,
                    'average_time_per_question': grading.round_half_up(Decimal(attempt.time_spent) / answered)
                    if answered and attempt.time_spent else 0,
                },
            })
        return out

    def list_for_student(self, student: models.User, status: Optional[models.AttemptStatus] = None,
                         course_id: Optional[int] = None, page: int = 1,
                         limit: int = 10) -> Tuple[List[models.QuizAttempt], dict]:
        """One page of the learner's own attempts plus pagination details."""
        page = max(1, page)
        limit = min(100, max(1, limit))
        total = self.attempt_repo.count_for_filters(student.id, status=status, course_id=course_id)
        attempts = self.attempt_repo.list_for_student(student.id, status=status, course_id=course_id,
                                                      offset=(page - 1) * limit, limit=limit)
        total_pages = -(-total // limit)
        pagination = {
            'current_page': page,
            'total_pages': total_pages,
            'total_items': total,
            'has_next_page': page < total_pages,
            'has_prev_page': page > 1,
        }
        return attempts, pagination

    def get_for_user(self, attempt_id: int, user: models.User) -> models.QuizAttempt:
        attempt = self._get(attempt_id)
        if attempt.student_id != user.id:
            self._check_staff(self._quiz(attempt), user)
        return attempt

    def results(self, attempt: models.QuizAttempt, viewer: models.User, now: Optional[datetime] = None) -> Optional[dict]:
        """Return the result view for `attempt` or `None` when it is hidden.

        Learners see results according to the quiz's visibility policy;
        the quiz instructor and admins always see them.
        """
        now = now or models.utcnow()
        quiz = self._quiz(attempt)
        if not grading.is_terminal(attempt.status):
            return None
        staff = viewer.role == models.Role.ADMIN or quiz.instructor_id == viewer.id
        visibility = quiz.show_results
        if not staff:
            if visibility == models.ResultVisibility.NEVER:
                return None
            if visibility == models.ResultVisibility.AFTER_DUE_DATE:
                if not quiz.due_date or now < models.as_utc(quiz.due_date):
                    return None
        out = {
            'score': attempt.score,
            'percentage': attempt.percentage,
            'is_passed': attempt.is_passed,
            'total_questions': len(quiz.questions),
            'answered_questions': len(attempt.answers),
            'correct_answers': sum(1 for a in attempt.answers if a.is_correct),
        }
        if staff or quiz.show_correct_answers:
            by_id = {q.id: q for q in quiz.questions}
            items = []
            for a in attempt.answers:
                q = by_id.get(a.question_id)
                if q is None:
                    continue
                correct = q.reference_answer
                if correct is None:
                    correct = [o.text for o in q.options if o.is_correct]
                items.append({
                    'question_id': q.id,
                    'prompt': q.prompt,
                    'your_answer': a.answer,
                    'correct_answer': correct,
                    'is_correct': a.is_correct,
                    'points_earned': a.points_earned,
                    'pending_review': a.pending_review,
                    'explanation': q.explanation,
                    'feedback': a.feedback,
                })
            out['answers'] = items
        return out


class AnalyticsService:
    """Aggregate attempt statistics for a quiz."""
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)

    def quiz_analytics(self, quiz_id: int, user: models.User) -> dict:
        """Summarise attempts on a quiz for its instructor.

        Averages are rounded half-up to integers; empty sets report 0.
        """
        quiz = self.quiz_repo.get(quiz_id)
        if not quiz:
            raise NotFoundError(f"quiz not found: {quiz_id}")
        if user.role != models.Role.ADMIN and quiz.instructor_id != user.id:
            raise PermissionDeniedError("only the quiz instructor may view analytics")
        attempts = self.attempt_repo.list_for_quiz(quiz.id)
        timed = [a.time_spent for a in attempts if a.time_spent]
        summary = {
            'total_attempts': len(attempts),
            'unique_students': len({a.student_id for a in attempts}),
            'average_score': _mean(a.percentage for a in attempts),
            'pass_rate': _share(attempts, lambda a: a.is_passed),
            'completion_rate': _share(attempts, lambda a: a.status == models.AttemptStatus.SUBMITTED),
            'average_time_spent': _mean(timed),
        }
        questions = []
        for q in quiz.questions:
            answers = [ans for a in attempts for ans in a.answers if ans.question_id == q.id]
            correct = sum(1 for ans in answers if ans.is_correct)
            questions.append({
                'question_id': q.id,
                'prompt': q.prompt,
                'total_answers': len(answers),
                'correct_answers': correct,
                'correct_rate': grading.percentage_of(correct, len(answers)),
                'average_time_spent': _mean(ans.time_spent for ans in answers if ans.time_spent),
            })
        summary['questions'] = questions
        return summary


def _mean(values) -> int:
    values = list(values)
    if not values:
        return 0
    return grading.round_half_up(Decimal(str(sum(values))) / len(values))


def _share(items, pred) -> int:
    items = list(items)
    return grading.percentage_of(sum(1 for i in items if pred(i)), len(items))
