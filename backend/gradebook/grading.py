"""Quiz grading engine.

Pure functions that turn a quiz snapshot and a list of submitted answers
into per-answer correctness, an aggregate score, an integer percentage
and a pass flag. The module also owns the attempt status state machine.

Nothing here touches the database: callers load a consistent
`QuizSnapshot` first and persist the returned `GradeResult` themselves.
Grading the same answers against the same snapshot always yields the
same result.
"""

from __future__ import annotations

import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import pydantic

from .errors import StateError, ValidationError
from .models import AttemptStatus, QuestionType
from .schemas import AnswerSubmission, GradedAnswer, GradeResult, QuestionSnapshot, QuizSnapshot

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({
    AttemptStatus.SUBMITTED,
    AttemptStatus.AUTO_SUBMITTED,
    AttemptStatus.ABANDONED,
})
_TRANSITIONS = {
    AttemptStatus.IN_PROGRESS: frozenset({
        AttemptStatus.SUBMITTED,
        AttemptStatus.AUTO_SUBMITTED,
        AttemptStatus.ABANDONED,
    }),
}
_SELECTION_KEYS = ('selected', 'options', 'option', 'answer')
_CHOICE_TYPES = (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE)


def is_terminal(status: AttemptStatus) -> bool:
    return AttemptStatus(status) in TERMINAL_STATUSES


def transition(current: AttemptStatus, target: AttemptStatus) -> AttemptStatus:
    """Validate a status change and return the new status.

    Raises `StateError` for any change not allowed by the state machine,
    including every change out of a terminal status.
    """
    current = AttemptStatus(current)
    target = AttemptStatus(target)
    if target not in _TRANSITIONS.get(current, frozenset()):
        raise StateError(f"cannot move attempt from {current.value} to {target.value}")
    return target


def recompute_total_points(questions: Iterable[Any]) -> float:
    """Return the sum of question point values.

    Accepts snapshots or ORM questions (anything with a `points`
    attribute). An empty list yields 0.
    """
    total = 0
    for q in questions:
        if q.points is None or q.points < 0:
            raise ValidationError(f"question points must be >= 0, got {q.points!r}")
        total += q.points
    return total


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def percentage_of(score: float, total_points: float) -> int:
    """Integer percentage of `score` over `total_points`, 0 when the total is 0."""
    if not total_points:
        return 0
    return round_half_up(Decimal(str(score)) * 100 / Decimal(str(total_points)))


def aggregate(answers: Iterable[Any], total_points: float, passing_score: int) -> Tuple[float, int, bool]:
    """Compute `(score, percentage, is_passed)` from already-scored answers."""
    score = sum((a.points_earned or 0) for a in answers)
    percentage = percentage_of(score, total_points)
    # a quiz worth nothing can never be passed, even with a 0% threshold
    is_passed = bool(total_points) and percentage >= passing_score
    return score, percentage, is_passed


def normalize_text(value: str, policy: str = 'exact') -> str:
    """Normalize free text for comparison.

    `exact` trims surrounding whitespace only. `casefold` also collapses
    inner whitespace and ignores case.
    """
    if policy == 'exact':
        return value.strip()
    if policy == 'casefold':
        return ' '.join(value.split()).casefold()
    raise ValueError(f"unknown answer match policy: {policy}")


def _scalar_token(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (str, int, float)):
        return str(value).strip()
    raise ValidationError(f"unsupported answer value: {value!r}")


def _selection(value: Any) -> List[str]:
    """Flatten a submitted choice value into option tokens."""
    if isinstance(value, dict):
        for k in _SELECTION_KEYS:
            if k in value:
                return _selection(value[k])
        raise ValidationError("choice answer object needs a 'selected' entry")
    if isinstance(value, (list, tuple)):
        tokens = [_scalar_token(v) for v in value]
    else:
        tokens = [_scalar_token(value)]
    return [t for t in tokens if t]


def _option_matches(question: QuestionSnapshot, option, token: str) -> bool:
    if question.question_type == QuestionType.TRUE_FALSE:
        return option.text.strip().casefold() == token.casefold()
    return option.text.strip() == token


def _resolve_options(question: QuestionSnapshot, tokens: Sequence[str]) -> Optional[set]:
    """Map tokens to option keys, or None if any token selects nothing."""
    selected = set()
    for token in tokens:
        keys = [o.key for o in question.options if o.key == token]
        if not keys:
            keys = [o.key for o in question.options if _option_matches(question, o, token)]
        if not keys:
            return None
        selected.update(keys)
    return selected


def _free_text(value: Any) -> str:
    if isinstance(value, dict):
        if 'text' not in value:
            raise ValidationError("text answer object needs a 'text' entry")
        value = value['text']
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValidationError(f"unsupported answer value: {value!r}")
    return str(value)


def score_answer(question: QuestionSnapshot, value: Any, policy: str = 'exact',
                 time_spent: Optional[int] = None) -> GradedAnswer:
    """Score one submitted value against its question.

    Choice questions earn full points when the selected options are exactly
    the options flagged correct. Short answers are compared with the
    reference answer under `policy`. Essays, and short answers without a
    reference, earn nothing and are flagged for instructor review.
    """
    if value is None:
        raise ValidationError(f"answer value required for question {question.id}")
    is_correct = False
    pending = False
    qtype = question.question_type
    if qtype in _CHOICE_TYPES and question.options:
        correct = {o.key for o in question.options if o.is_correct}
        selected = _resolve_options(question, _selection(value))
        is_correct = bool(correct) and selected == correct
    elif qtype == QuestionType.TRUE_FALSE:
        tokens = _selection(value)
        ref = question.reference_answer
        if ref is None:
            pending = True
        else:
            is_correct = len(tokens) == 1 and tokens[0].casefold() == ref.strip().casefold()
    elif qtype == QuestionType.SHORT_ANSWER:
        text = _free_text(value)
        if question.reference_answer is None:
            pending = True
        else:
            is_correct = normalize_text(text, policy) == normalize_text(question.reference_answer, policy)
    elif qtype == QuestionType.ESSAY:
        pending = True
    else:
        # choice question authored without options
        _selection(value)
    return GradedAnswer(
        question_id=question.id,
        answer=value,
        is_correct=is_correct,
        points_earned=question.points if is_correct else 0,
        pending_review=pending,
        time_spent=time_spent,
    )


def check_snapshot(quiz: QuizSnapshot) -> None:
    """Raise `StateError` when the snapshot's question list is inconsistent."""
    ids = [q.id for q in quiz.questions]
    if len(ids) != len(set(ids)):
        raise StateError(f"quiz {quiz.id} has duplicate question ids")
    expected = recompute_total_points(quiz.questions)
    if not math.isclose(expected, quiz.total_points):
        raise StateError(
            f"quiz {quiz.id} total_points {quiz.total_points} does not match question points {expected}"
        )


def _coerce(answer: Any) -> AnswerSubmission:
    if isinstance(answer, AnswerSubmission):
        return answer
    try:
        return AnswerSubmission.model_validate(answer)
    except pydantic.ValidationError as e:
        raise ValidationError(f"malformed answer: {e.errors()[0]['msg']}") from e


def grade_attempt(quiz: QuizSnapshot, answers: Sequence[Any],
                  status: AttemptStatus = AttemptStatus.IN_PROGRESS,
                  policy: str = 'exact') -> GradeResult:
    """Grade `answers` against `quiz` and return the derived results.

    Answers may be `AnswerSubmission` objects or plain dicts with
    `question_id`, `answer` and optional `time_spent`. Raises
    `ValidationError` for unknown or repeated questions and missing
    values, `StateError` when `status` is terminal or the snapshot is
    inconsistent. The returned result carries `status` unchanged.
    """
    if is_terminal(status):
        raise StateError(f"attempt is already {AttemptStatus(status).value}")
    check_snapshot(quiz)
    by_id = {q.id: q for q in quiz.questions}
    seen = set()
    graded = []
    for raw in answers:
        a = _coerce(raw)
        question = by_id.get(a.question_id)
        if question is None:
            raise ValidationError(f"question not found in quiz: {a.question_id}")
        if a.question_id in seen:
            raise ValidationError(f"question answered more than once: {a.question_id}")
        seen.add(a.question_id)
        graded.append(score_answer(question, a.answer, policy=policy, time_spent=a.time_spent))
    score, percentage, is_passed = aggregate(graded, quiz.total_points, quiz.passing_score)
    logger.debug("graded quiz=%s answers=%d score=%s percentage=%d", quiz.id, len(graded), score, percentage)
    return GradeResult(
        status=AttemptStatus(status),
        answers=graded,
        score=score,
        percentage=percentage,
        is_passed=is_passed,
    )


def finalize_attempt(quiz: QuizSnapshot, answers: Sequence[Any], status: AttemptStatus,
                     target: AttemptStatus, policy: str = 'exact') -> GradeResult:
    """Move an attempt to a terminal status, grading it unless abandoned.

    Abandoned attempts are not graded and keep a zero score.
    """
    new_status = transition(status, target)
    if new_status == AttemptStatus.ABANDONED:
        return GradeResult(status=new_status)
    result = grade_attempt(quiz, answers, status=status, policy=policy)
    return result.model_copy(update={'status': new_status})
