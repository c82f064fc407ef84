from datetime import datetime, timedelta, timezone

import pytest

from conftest import capital_questions
from gradebook import models, repositories
from gradebook.errors import NotFoundError, PermissionDeniedError, StateError, ValidationError
from gradebook.schemas import AnswerSubmission, QuestionIn, QuizIn, QuizSettingsIn, QuizUpdateIn
from gradebook.services import AnalyticsService, AttemptService, AuthService, QuizService

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def essay_questions():
    return [
        QuestionIn(prompt="Explain recursion.", question_type=models.QuestionType.ESSAY, points=4),
        QuestionIn(prompt="1 + 1 = ?", question_type=models.QuestionType.SHORT_ANSWER, points=1, reference_answer="2"),
    ]


def test_create_quiz_derives_total_points(make_quiz):
    quiz = make_quiz()
    assert quiz.total_points == 5
    assert [o.key for o in quiz.questions[0].options] == ["A", "B"]


def test_option_keys_default_to_letters(session, instructor):
    payload = QuizIn(title="Keys", questions=[QuestionIn(
        prompt="Pick", question_type=models.QuestionType.MULTIPLE_CHOICE,
        options=[{"text": "x", "is_correct": True}, {"text": "y"}, {"text": "z"}],
    )])
    quiz = QuizService(session).create_quiz(instructor, payload)
    assert [o.key for o in quiz.questions[0].options] == ["A", "B", "C"]


def test_add_question_increases_total_by_its_points(session, instructor, make_quiz):
    quiz = make_quiz(publish=False)
    extra = QuestionIn(prompt="Largest ocean?", question_type=models.QuestionType.SHORT_ANSWER,
                       points=4, reference_answer="Pacific")
    updated = QuizService(session).add_question(quiz.id, instructor, extra)
    assert updated.total_points == 9
    assert updated.questions[-1].position == 2


def test_replacing_with_no_questions_gives_zero_total(session, instructor, make_quiz):
    quiz = make_quiz(publish=False)
    updated = QuizService(session).replace_questions(quiz.id, instructor, [])
    assert updated.total_points == 0
    assert updated.questions == []


def test_students_cannot_author_quizzes(session, student):
    payload = QuizIn(title="Nope", questions=capital_questions())
    with pytest.raises(PermissionDeniedError):
        QuizService(session).create_quiz(student, payload)


def test_start_requires_published_quiz(session, student, make_quiz):
    quiz = make_quiz(publish=False)
    with pytest.raises(NotFoundError):
        AttemptService(session).start(quiz.id, student)


def test_start_respects_availability_window(session, student, make_quiz):
    quiz = make_quiz(available_from=NOW + timedelta(days=1))
    with pytest.raises(StateError):
        AttemptService(session).start(quiz.id, student, now=NOW)
    quiz = make_quiz(available_until=NOW - timedelta(days=1))
    with pytest.raises(StateError):
        AttemptService(session).start(quiz.id, student, now=NOW)


def test_attempt_numbers_and_limits(session, student, make_quiz):
    quiz = make_quiz(max_attempts=2)
    svc = AttemptService(session)
    first = svc.start(quiz.id, student, now=NOW)
    assert first.attempt_number == 1
    with pytest.raises(StateError):
        svc.start(quiz.id, student, now=NOW)
    svc.submit(first.id, student, now=NOW)
    second = svc.start(quiz.id, student, now=NOW)
    assert second.attempt_number == 2
    svc.abandon(second.id, student, now=NOW)
    with pytest.raises(StateError):
        svc.start(quiz.id, student, now=NOW)


def test_saved_answers_are_graded_on_submit(session, student, make_quiz):
    quiz = make_quiz()
    mc, short = quiz.questions
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    row = svc.save_answer(attempt.id, student, AnswerSubmission(question_id=mc.id, answer="A", time_spent=5))
    assert row.is_correct is True
    svc.save_answer(attempt.id, student, AnswerSubmission(question_id=short.id, answer="paris"))
    done = svc.submit(attempt.id, student, now=NOW + timedelta(minutes=3))
    assert done.status == models.AttemptStatus.SUBMITTED
    assert (done.score, done.percentage, done.is_passed) == (2, 40, False)
    assert done.time_spent == 180
    assert len(done.answers) == 2


def test_saving_an_answer_again_replaces_it(session, student, make_quiz):
    quiz = make_quiz()
    mc = quiz.questions[0]
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    svc.save_answer(attempt.id, student, AnswerSubmission(question_id=mc.id, answer="B"))
    svc.save_answer(attempt.id, student, AnswerSubmission(question_id=mc.id, answer="A"))
    attempt = svc.get_for_user(attempt.id, student)
    assert len(attempt.answers) == 1
    assert attempt.answers[0].answer == "A"


def test_submit_answers_override_saved_ones(session, student, make_quiz):
    quiz = make_quiz()
    mc, short = quiz.questions
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    svc.save_answer(attempt.id, student, AnswerSubmission(question_id=mc.id, answer="B"))
    done = svc.submit(attempt.id, student, [
        AnswerSubmission(question_id=mc.id, answer="A"),
        AnswerSubmission(question_id=short.id, answer="Paris"),
    ], now=NOW)
    assert (done.score, done.percentage, done.is_passed) == (5, 100, True)


def test_double_submit_is_a_state_error(session, student, make_quiz):
    quiz = make_quiz()
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    svc.submit(attempt.id, student, now=NOW)
    with pytest.raises(StateError):
        svc.submit(attempt.id, student, now=NOW)


def test_claim_transition_only_succeeds_once(session, student, make_quiz):
    quiz = make_quiz()
    attempt = AttemptService(session).start(quiz.id, student, now=NOW)
    repo = repositories.AttemptRepository(session)
    assert repo.claim_transition(attempt.id, models.AttemptStatus.IN_PROGRESS, models.AttemptStatus.SUBMITTED)
    session.commit()
    assert not repo.claim_transition(attempt.id, models.AttemptStatus.IN_PROGRESS, models.AttemptStatus.SUBMITTED)


def test_unknown_question_in_submission_is_rejected(session, student, make_quiz):
    quiz = make_quiz()
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    with pytest.raises(ValidationError):
        svc.submit(attempt.id, student, [AnswerSubmission(question_id=999, answer="A")], now=NOW)
    assert svc.get_for_user(attempt.id, student).status == models.AttemptStatus.IN_PROGRESS


def test_other_learners_cannot_touch_an_attempt(session, student, other_student, make_quiz):
    quiz = make_quiz()
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    with pytest.raises(PermissionDeniedError):
        svc.submit(attempt.id, other_student, now=NOW)


def test_abandon_keeps_zero_score(session, student, make_quiz):
    quiz = make_quiz()
    mc = quiz.questions[0]
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    svc.save_answer(attempt.id, student, AnswerSubmission(question_id=mc.id, answer="A"))
    gone = svc.abandon(attempt.id, student, now=NOW)
    assert gone.status == models.AttemptStatus.ABANDONED
    assert (gone.score, gone.percentage, gone.is_passed) == (0, 0, False)
    assert gone.submitted_at is None
    with pytest.raises(StateError):
        svc.submit(attempt.id, student, now=NOW)
    with pytest.raises(StateError):
        svc.save_answer(attempt.id, student, AnswerSubmission(question_id=mc.id, answer="B"))


def test_expire_overdue_auto_submits_timed_attempts(session, student, other_student, make_quiz):
    timed = make_quiz(time_limit=10)
    untimed = make_quiz()
    svc = AttemptService(session)
    late = svc.start(timed.id, student, now=NOW)
    svc.save_answer(late.id, student, AnswerSubmission(question_id=timed.questions[0].id, answer="A"))
    fresh = svc.start(timed.id, other_student, now=NOW + timedelta(minutes=8))
    open_ended = svc.start(untimed.id, student, now=NOW)

    expired = svc.expire_overdue(now=NOW + timedelta(minutes=11))

    assert expired == [late.id]
    late = svc.get_for_user(late.id, student)
    assert late.status == models.AttemptStatus.AUTO_SUBMITTED
    assert (late.score, late.percentage) == (2, 40)
    assert svc.get_for_user(fresh.id, other_student).status == models.AttemptStatus.IN_PROGRESS
    assert svc.get_for_user(open_ended.id, student).status == models.AttemptStatus.IN_PROGRESS


def test_expire_overdue_only_reaches_own_quizzes(session, instructor, student, make_quiz):
    other = AuthService(session).register("teacher2", "pw", models.Role.INSTRUCTOR)
    admin = AuthService(session).register("root", "pw", models.Role.ADMIN)
    mine = make_quiz(time_limit=5)
    quizzes = QuizService(session)
    theirs = quizzes.create_quiz(other, QuizIn(title="History", questions=capital_questions(),
                                               settings=QuizSettingsIn(time_limit=5)))
    quizzes.set_published(theirs.id, other, True)
    svc = AttemptService(session)
    on_mine = svc.start(mine.id, student, now=NOW)
    on_theirs = svc.start(theirs.id, student, now=NOW)
    later = NOW + timedelta(minutes=6)

    assert svc.expire_overdue(now=later, user=instructor) == [on_mine.id]
    assert svc.get_for_user(on_theirs.id, student).status == models.AttemptStatus.IN_PROGRESS
    with pytest.raises(PermissionDeniedError):
        svc.expire_overdue(now=later, user=student)
    assert svc.expire_overdue(now=later, user=admin) == [on_theirs.id]


def test_results_follow_visibility_policy(session, instructor, student, make_quiz):
    quiz = make_quiz(show_results=models.ResultVisibility.NEVER)
    svc = AttemptService(session)
    attempt = svc.submit(svc.start(quiz.id, student, now=NOW).id, student, now=NOW)
    assert svc.results(attempt, student) is None
    assert svc.results(attempt, instructor)["score"] == 0


def test_results_after_due_date(session, student, make_quiz):
    due = NOW + timedelta(days=2)
    quiz = make_quiz(show_results=models.ResultVisibility.AFTER_DUE_DATE, due_date=due)
    svc = AttemptService(session)
    attempt = svc.submit(svc.start(quiz.id, student, now=NOW).id, student, now=NOW)
    assert svc.results(attempt, student, now=NOW) is None
    assert svc.results(attempt, student, now=due + timedelta(minutes=1)) is not None


def test_results_hide_correct_answers_when_disabled(session, student, make_quiz):
    quiz = make_quiz(show_correct_answers=False)
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    attempt = svc.submit(attempt.id, student, [AnswerSubmission(question_id=quiz.questions[0].id, answer="A")], now=NOW)
    results = svc.results(attempt, student)
    assert results["correct_answers"] == 1
    assert "answers" not in results


def test_results_include_correct_answers(session, student, make_quiz):
    quiz = make_quiz()
    mc, short = quiz.questions
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    attempt = svc.submit(attempt.id, student, [
        AnswerSubmission(question_id=mc.id, answer="B"),
        AnswerSubmission(question_id=short.id, answer="Paris"),
    ], now=NOW)
    items = {i["question_id"]: i for i in svc.results(attempt, student)["answers"]}
    assert items[mc.id]["correct_answer"] == ["4"]
    assert items[short.id]["correct_answer"] == "Paris"
    assert items[short.id]["explanation"].startswith("Paris")


def test_review_essay_regrades_attempt(session, instructor, student, make_quiz):
    quiz = make_quiz(questions=essay_questions())
    essay, short = quiz.questions
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    with pytest.raises(StateError):
        svc.review_answer(attempt.id, instructor, essay.id, 4)
    attempt = svc.submit(attempt.id, student, [
        AnswerSubmission(question_id=essay.id, answer="A function calling itself."),
        AnswerSubmission(question_id=short.id, answer="2"),
    ], now=NOW)
    assert (attempt.score, attempt.percentage, attempt.is_passed) == (1, 20, False)

    with pytest.raises(ValidationError):
        svc.review_answer(attempt.id, instructor, essay.id, 5)
    with pytest.raises(ValidationError):
        svc.review_answer(attempt.id, instructor, 10 ** 6, 1)
    with pytest.raises(PermissionDeniedError):
        svc.review_answer(attempt.id, student, essay.id, 4)

    reviewed = svc.review_answer(attempt.id, instructor, essay.id, 3)
    assert (reviewed.score, reviewed.percentage, reviewed.is_passed) == (4, 80, True)
    assert svc.results(reviewed, student)["answers"][0]["pending_review"] is False


def test_review_overrides_auto_scored_answer(session, instructor, student, make_quiz):
    quiz = make_quiz()
    mc, short = quiz.questions
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    attempt = svc.submit(attempt.id, student, [
        AnswerSubmission(question_id=mc.id, answer="B"),
        AnswerSubmission(question_id=short.id, answer="Paris"),
    ], now=NOW)
    assert (attempt.score, attempt.percentage, attempt.is_passed) == (3, 60, True)

    reviewed = svc.review_answer(attempt.id, instructor, short.id, 1, feedback="Missing the reasoning")
    assert (reviewed.score, reviewed.percentage, reviewed.is_passed) == (1, 20, False)
    reviewed = svc.review_answer(attempt.id, instructor, mc.id, 2)
    assert (reviewed.score, reviewed.percentage) == (3, 60)

    items = {i["question_id"]: i for i in svc.results(reviewed, student)["answers"]}
    assert items[short.id]["is_correct"] is False
    assert items[short.id]["feedback"] == "Missing the reasoning"
    assert items[mc.id]["is_correct"] is True
    with pytest.raises(ValidationError):
        svc.review_answer(attempt.id, instructor, mc.id, 3)


def test_feedback_is_instructor_only(session, instructor, student, make_quiz):
    quiz = make_quiz()
    svc = AttemptService(session)
    attempt = svc.start(quiz.id, student, now=NOW)
    with pytest.raises(PermissionDeniedError):
        svc.add_feedback(attempt.id, student, "great job me")
    assert svc.add_feedback(attempt.id, instructor, "Revise chapter 2").feedback == "Revise chapter 2"


def test_questions_are_frozen_once_attempted(session, instructor, student, make_quiz):
    quiz = make_quiz()
    AttemptService(session).start(quiz.id, student, now=NOW)
    with pytest.raises(StateError):
        QuizService(session).replace_questions(quiz.id, instructor, capital_questions())


def test_paper_hides_answers_and_is_stable(session, student, make_quiz):
    quiz = make_quiz(shuffle_questions=True, shuffle_options=True, questions_per_attempt=1)
    attempt = AttemptService(session).start(quiz.id, student, now=NOW)
    svc = QuizService(session)
    paper = svc.paper_for_attempt(quiz, attempt)
    assert len(paper["questions"]) == 1
    for q in paper["questions"]:
        assert "reference_answer" not in q
        assert all(set(o) == {"key", "text"} for o in q["options"])
    assert svc.paper_for_attempt(quiz, attempt) == paper


def test_quiz_analytics(session, instructor, student, other_student, make_quiz):
    quiz = make_quiz()
    mc, short = quiz.questions
    svc = AttemptService(session)
    a1 = svc.start(quiz.id, student, now=NOW)
    svc.submit(a1.id, student, [
        AnswerSubmission(question_id=mc.id, answer="A", time_spent=10),
        AnswerSubmission(question_id=short.id, answer="Paris", time_spent=20),
    ], now=NOW + timedelta(seconds=60))
    a2 = svc.start(quiz.id, other_student, now=NOW)
    svc.submit(a2.id, other_student, [AnswerSubmission(question_id=mc.id, answer="B", time_spent=30)],
               now=NOW + timedelta(seconds=30))

    stats = AnalyticsService(session).quiz_analytics(quiz.id, instructor)

    assert stats["total_attempts"] == 2
    assert stats["unique_students"] == 2
    assert stats["average_score"] == 50
    assert stats["pass_rate"] == 50
    assert stats["completion_rate"] == 100
    assert stats["average_time_spent"] == 45
    by_q = {q["question_id"]: q for q in stats["questions"]}
    assert by_q[mc.id]["total_answers"] == 2
    assert by_q[mc.id]["correct_rate"] == 50
    assert by_q[mc.id]["average_time_spent"] == 20
    assert by_q[short.id]["correct_rate"] == 100

    with pytest.raises(PermissionDeniedError):
        AnalyticsService(session).quiz_analytics(quiz.id, student)


def test_update_quiz_changes_only_given_fields(session, instructor, make_quiz):
    quiz = make_quiz(max_attempts=3, time_limit=20)
    payload = QuizUpdateIn(title="  Europe  ", settings=QuizSettingsIn(passing_score=80))
    updated = QuizService(session).update_quiz(quiz.id, instructor, payload)
    assert updated.title == "Europe"
    assert updated.passing_score == 80
    assert (updated.max_attempts, updated.time_limit) == (3, 20)
    assert updated.total_points == 5


def test_update_quiz_freezes_settings_once_attempted(session, instructor, student, make_quiz):
    quiz = make_quiz()
    AttemptService(session).start(quiz.id, student, now=NOW)
    svc = QuizService(session)
    with pytest.raises(StateError):
        svc.update_quiz(quiz.id, instructor, QuizUpdateIn(settings=QuizSettingsIn(passing_score=10)))
    with pytest.raises(StateError):
        svc.update_quiz(quiz.id, instructor, QuizUpdateIn(due_date=NOW))
    renamed = svc.update_quiz(quiz.id, instructor, QuizUpdateIn(description="Week 3"))
    assert renamed.description == "Week 3"
    assert renamed.passing_score == 60


def test_update_quiz_is_owner_only(session, student, make_quiz):
    quiz = make_quiz()
    other = AuthService(session).register("teacher2", "pw", models.Role.INSTRUCTOR)
    with pytest.raises(PermissionDeniedError):
        QuizService(session).update_quiz(quiz.id, other, QuizUpdateIn(title="Mine now"))


def test_quiz_listings(session, instructor, student, make_quiz):
    published = make_quiz(course_id=7)
    draft = make_quiz(course_id=7, publish=False)
    elsewhere = make_quiz(course_id=8)
    svc = QuizService(session)

    assert [q.id for q in svc.list_for_instructor(instructor)] == [elsewhere.id, draft.id, published.id]
    with pytest.raises(PermissionDeniedError):
        svc.list_for_instructor(student)

    listed = svc.list_for_course(7)
    assert [q["id"] for q in listed] == [published.id]
    assert listed[0]["total_questions"] == 2
    assert "questions" not in listed[0]


def test_instructor_lists_attempts_with_progress(session, instructor, student, other_student, make_quiz):
    quiz = make_quiz()
    mc = quiz.questions[0]
    svc = AttemptService(session)
    working = svc.start(quiz.id, student, now=NOW)
    svc.save_answer(working.id, student, AnswerSubmission(question_id=mc.id, answer="A"))
    done = svc.submit(svc.start(quiz.id, other_student, now=NOW).id, other_student, now=NOW)

    rows = svc.list_for_quiz(quiz.id, instructor)
    assert [r["attempt"].id for r in rows] == [working.id, done.id]
    progress = rows[0]["progress"]
    assert (progress["questions_answered"], progress["total_questions"]) == (1, 2)
    assert progress["progress_percentage"] == 50

    submitted = svc.list_for_quiz(quiz.id, instructor, status=models.AttemptStatus.SUBMITTED)
    assert [r["attempt"].id for r in submitted] == [done.id]
    assert [r["attempt"].id for r in svc.list_for_quiz(quiz.id, instructor, student_id=student.id)] == [working.id]
    with pytest.raises(PermissionDeniedError):
        svc.list_for_quiz(quiz.id, student)


def test_learner_lists_own_attempts(session, student, other_student, make_quiz):
    geo = make_quiz(course_id=1, max_attempts=3)
    art = make_quiz(course_id=2)
    svc = AttemptService(session)
    first = svc.submit(svc.start(geo.id, student, now=NOW).id, student, now=NOW)
    second = svc.abandon(svc.start(geo.id, student, now=NOW + timedelta(hours=1)).id, student)
    third = svc.start(art.id, student, now=NOW + timedelta(hours=2))
    svc.start(geo.id, other_student, now=NOW)

    page, pagination = svc.list_for_student(student, limit=2)
    assert [a.id for a in page] == [third.id, second.id]
    assert pagination == {'current_page': 1, 'total_pages': 2, 'total_items': 3,
                          'has_next_page': True, 'has_prev_page': False}
    page, pagination = svc.list_for_student(student, page=2, limit=2)
    assert [a.id for a in page] == [first.id]
    assert pagination['has_prev_page'] is True

    in_geo, _ = svc.list_for_student(student, course_id=1)
    assert {a.id for a in in_geo} == {first.id, second.id}
    abandoned, pagination = svc.list_for_student(student, status=models.AttemptStatus.ABANDONED)
    assert [a.id for a in abandoned] == [second.id]
    assert pagination['total_items'] == 1
    empty, pagination = svc.list_for_student(student, course_id=99)
    assert empty == []
    assert pagination['total_pages'] == 0
