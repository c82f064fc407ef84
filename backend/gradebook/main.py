"""FastAPI application entrypoint and HTTP controllers.

Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Domain errors raised by services
are mapped to status codes by a single exception handler.

Endpoints implemented:
- POST /auth/register
- POST /auth/login
- GET /quizzes
- POST /quizzes
- PUT /quizzes/{quiz_id}
- GET /quizzes/{quiz_id}
- PUT /quizzes/{quiz_id}/questions
- POST /quizzes/{quiz_id}/questions
- PUT /quizzes/{quiz_id}/publish
- GET /quizzes/{quiz_id}/analytics
- GET /quizzes/{quiz_id}/attempts
- POST /quizzes/{quiz_id}/attempts
- GET /courses/{course_id}/quizzes
- GET /attempts/mine
- PUT /attempts/{attempt_id}/answer
- POST /attempts/{attempt_id}/submit
- POST /attempts/{attempt_id}/abandon
- GET /attempts/{attempt_id}
- PUT /attempts/{attempt_id}/feedback
- PUT /attempts/{attempt_id}/review
- POST /attempts/expire
- GET /health
"""

from typing import Optional
from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import json
import logging
import time
import uuid
from .database import create_db_and_tables, get_session
from . import services, repositories, models
from .auth import get_current_user, require_staff
from .config import settings
from .errors import GradingError, NotFoundError, PermissionDeniedError, StateError, ValidationError
from .schemas import (
    AnswerSubmission,
    AttemptSubmission,
    FeedbackIn,
    LoginIn,
    QuestionIn,
    QuestionListIn,
    QuizIn,
    QuizUpdateIn,
    RegisterIn,
    ReviewIn,
    TokenOut,
)

app = FastAPI(title="Course Quiz Grading API")
logger = logging.getLogger("gradebook.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()

_STATUS_FOR_ERROR = (
    (ValidationError, 400),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (StateError, 409),
)


@app.exception_handler(GradingError)
async def grading_error_handler(request: Request, exc: GradingError):
    status_code = next((code for kind, code in _STATUS_FOR_ERROR if isinstance(exc, kind)), 400)
    logger.info(
        "request_rejected %s",
        json.dumps(
            {
                "request_id": getattr(request.state, "request_id", None),
                "path": request.url.path,
                "error": type(exc).__name__,
                "detail": str(exc),
            },
            ensure_ascii=True,
        ),
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


def _quiz_out(quiz: models.Quiz) -> dict:
    """Full quiz representation for its instructor (includes answers)."""
    return {
        'id': quiz.id,
        'title': quiz.title,
        'description': quiz.description,
        'course_id': quiz.course_id,
        'is_published': quiz.is_published,
        'total_points': quiz.total_points,
        'due_date': quiz.due_date.isoformat() if quiz.due_date else None,
        'available_from': quiz.available_from.isoformat() if quiz.available_from else None,
        'available_until': quiz.available_until.isoformat() if quiz.available_until else None,
        'settings': {
            'time_limit': quiz.time_limit,
            'max_attempts': quiz.max_attempts,
            'passing_score': quiz.passing_score,
            'shuffle_questions': quiz.shuffle_questions,
            'shuffle_options': quiz.shuffle_options,
            'show_results': quiz.show_results.value,
            'show_correct_answers': quiz.show_correct_answers,
            'questions_per_attempt': quiz.questions_per_attempt,
        },
        'questions': [
            {
                'id': q.id,
                'prompt': q.prompt,
                'question_type': q.question_type.value,
                'points': q.points,
                'difficulty': q.difficulty.value,
                'reference_answer': q.reference_answer,
                'explanation': q.explanation,
                'options': [{'key': o.key, 'text': o.text, 'is_correct': o.is_correct} for o in q.options],
            }
            for q in quiz.questions
        ],
    }


def _attempt_out(attempt: models.QuizAttempt) -> dict:
    return {
        'id': attempt.id,
        'quiz_id': attempt.quiz_id,
        'student_id': attempt.student_id,
        'attempt_number': attempt.attempt_number,
        'status': attempt.status.value,
        'score': attempt.score,
        'percentage': attempt.percentage,
        'is_passed': attempt.is_passed,
        'started_at': attempt.started_at.isoformat(),
        'submitted_at': attempt.submitted_at.isoformat() if attempt.submitted_at else None,
        'time_spent': attempt.time_spent,
        'feedback': attempt.feedback,
    }


@app.post('/auth/register')
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new user (idempotent).

    Returns the existing user if the username is already taken, which
    keeps automation and tests simple.
    """
    existing = repositories.UserRepository(db).get_by_username(payload.username)
    if existing:
        return {'id': existing.id, 'username': existing.username, 'role': existing.role.value}
    user = services.AuthService(db).register(payload.username, payload.password, payload.role)
    return {'id': user.id, 'username': user.username, 'role': user.role.value}


@app.post('/auth/login', response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a short-lived JWT token."""
    token = services.AuthService(db).authenticate(payload.username, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return TokenOut(access_token=token)


@app.get('/quizzes')
def list_my_quizzes(db: Session = Depends(get_session), user: models.User = Depends(require_staff)):
    """Quizzes owned by the calling instructor, newest first."""
    quizzes = services.QuizService(db).list_for_instructor(user)
    return {'quizzes': [_quiz_out(q) for q in quizzes]}


@app.post('/quizzes', status_code=201)
def create_quiz(payload: QuizIn, db: Session = Depends(get_session), user: models.User = Depends(require_staff)):
    """Create a quiz with its questions; total points are derived."""
    quiz = services.QuizService(db).create_quiz(user, payload)
    return _quiz_out(quiz)


@app.put('/quizzes/{quiz_id}')
def update_quiz(quiz_id: int, payload: QuizUpdateIn, db: Session = Depends(get_session),
                user: models.User = Depends(require_staff)):
    """Edit title, description, course, settings or dates of a quiz."""
    quiz = services.QuizService(db).update_quiz(quiz_id, user, payload)
    return _quiz_out(quiz)


@app.get('/quizzes/{quiz_id}')
def get_quiz(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_staff)):
    svc = services.QuizService(db)
    quiz = svc.get(quiz_id)
    if user.role != models.Role.ADMIN and quiz.instructor_id != user.id:
        raise HTTPException(status_code=403, detail='access denied')
    return _quiz_out(quiz)


@app.put('/quizzes/{quiz_id}/questions')
def replace_questions(quiz_id: int, payload: QuestionListIn, db: Session = Depends(get_session),
                      user: models.User = Depends(require_staff)):
    """Replace the whole question list and recompute total points."""
    quiz = services.QuizService(db).replace_questions(quiz_id, user, payload.questions)
    return _quiz_out(quiz)


@app.post('/quizzes/{quiz_id}/questions')
def add_question(quiz_id: int, payload: QuestionIn, db: Session = Depends(get_session),
                 user: models.User = Depends(require_staff)):
    quiz = services.QuizService(db).add_question(quiz_id, user, payload)
    return _quiz_out(quiz)


@app.put('/quizzes/{quiz_id}/publish')
def publish_quiz(quiz_id: int, published: bool = True, db: Session = Depends(get_session),
                 user: models.User = Depends(require_staff)):
    quiz = services.QuizService(db).set_published(quiz_id, user, published)
    return {'id': quiz.id, 'is_published': quiz.is_published}


@app.get('/quizzes/{quiz_id}/analytics')
def quiz_analytics(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_staff)):
    """Attempt statistics for the quiz and each of its questions."""
    return services.AnalyticsService(db).quiz_analytics(quiz_id, user)


@app.get('/quizzes/{quiz_id}/attempts')
def list_quiz_attempts(quiz_id: int, status: Optional[models.AttemptStatus] = None,
                       student_id: Optional[int] = None, db: Session = Depends(get_session),
                       user: models.User = Depends(require_staff)):
    """Every attempt on the quiz with how far each learner got."""
    rows = services.AttemptService(db).list_for_quiz(quiz_id, user, status=status, student_id=student_id)
    return {'attempts': [{**_attempt_out(r['attempt']), 'progress': r['progress']} for r in rows]}


@app.get('/courses/{course_id}/quizzes')
def list_course_quizzes(course_id: int, db: Session = Depends(get_session),
                        user: models.User = Depends(get_current_user)):
    return {'quizzes': services.QuizService(db).list_for_course(course_id)}


@app.post('/quizzes/{quiz_id}/attempts', status_code=201)
def start_attempt(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Start an attempt and return the learner's paper (no answers)."""
    attempt = services.AttemptService(db).start(quiz_id, user)
    quiz_svc = services.QuizService(db)
    paper = quiz_svc.paper_for_attempt(quiz_svc.get(quiz_id), attempt)
    return {'attempt': _attempt_out(attempt), 'quiz': paper}


@app.get('/attempts/mine')
def list_my_attempts(status: Optional[models.AttemptStatus] = None, course_id: Optional[int] = None,
                     page: int = Query(default=1, ge=1), limit: int = Query(default=10, ge=1, le=100),
                     db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """The caller's own attempts, newest first, filtered and paginated."""
    attempts, pagination = services.AttemptService(db).list_for_student(
        user, status=status, course_id=course_id, page=page, limit=limit)
    return {'attempts': [_attempt_out(a) for a in attempts], 'pagination': pagination}


@app.put('/attempts/{attempt_id}/answer')
def save_answer(attempt_id: int, payload: AnswerSubmission, db: Session = Depends(get_session),
                user: models.User = Depends(get_current_user)):
    """Save or replace one answer on an in-progress attempt.

    Correctness is only echoed back when the quiz shows results
    immediately.
    """
    svc = services.AttemptService(db)
    row = svc.save_answer(attempt_id, user, payload)
    quiz = services.QuizService(db).get(row.attempt.quiz_id)
    out = {'question_id': row.question_id, 'saved': True}
    if quiz.show_results == models.ResultVisibility.IMMEDIATELY:
        out['is_correct'] = row.is_correct
        out['points_earned'] = row.points_earned
    return out


@app.post('/attempts/{attempt_id}/submit')
def submit_attempt(attempt_id: int, payload: AttemptSubmission | None = None, db: Session = Depends(get_session),
                   user: models.User = Depends(get_current_user)):
    """Submit an attempt; any answers in the body override saved ones."""
    svc = services.AttemptService(db)
    answers = payload.answers if payload else []
    attempt = svc.submit(attempt_id, user, answers)
    return {'attempt': _attempt_out(attempt), 'results': svc.results(attempt, user)}


@app.post('/attempts/{attempt_id}/abandon')
def abandon_attempt(attempt_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    attempt = services.AttemptService(db).abandon(attempt_id, user)
    return {'attempt': _attempt_out(attempt)}


@app.get('/attempts/{attempt_id}')
def get_attempt(attempt_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.AttemptService(db)
    attempt = svc.get_for_user(attempt_id, user)
    return {'attempt': _attempt_out(attempt), 'results': svc.results(attempt, user)}


@app.put('/attempts/{attempt_id}/feedback')
def add_feedback(attempt_id: int, payload: FeedbackIn, db: Session = Depends(get_session),
                 user: models.User = Depends(require_staff)):
    attempt = services.AttemptService(db).add_feedback(attempt_id, user, payload.feedback)
    return {'attempt': _attempt_out(attempt)}


@app.put('/attempts/{attempt_id}/review')
def review_answer(attempt_id: int, payload: ReviewIn, db: Session = Depends(get_session),
                  user: models.User = Depends(require_staff)):
    """Set points on one answer (essay or override) and re-grade the attempt."""
    attempt = services.AttemptService(db).review_answer(attempt_id, user, payload.question_id, payload.points,
                                                        feedback=payload.feedback)
    return {'attempt': _attempt_out(attempt)}


@app.post('/attempts/expire')
def expire_attempts(db: Session = Depends(get_session), user: models.User = Depends(require_staff)):
    """Auto-submit in-progress attempts past their time limit.

    Meant to be called by an external scheduler. Instructors only reach
    attempts on their own quizzes; admins reach every quiz.
    """
    expired = services.AttemptService(db).expire_overdue(user=user)
    return {'auto_submitted': expired}


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
