"""CLI script to grade an answers file against a quiz definition offline.
Usage: python scripts/grade_file.py QUIZ_JSON ANSWERS_JSON [--policy exact|casefold]

The quiz file holds `passing_score` and a `questions` list (each with an
`id`, `question_type`, `points` and `options` or `reference_answer`).
`total_points` is derived when omitted. The answers file is a list of
`{question_id, answer, time_spent}` objects.
"""
import sys
import json
import argparse
import pathlib
from pydantic import ValidationError
# Ensure `backend/` is on sys.path so `gradebook` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from gradebook import grading
from gradebook.config import MATCH_POLICIES
from gradebook.errors import GradingError
from gradebook.schemas import QuestionSnapshot, QuizSnapshot


def load_quiz(path: pathlib.Path) -> QuizSnapshot:
    """Read a quiz definition and build the snapshot the engine expects."""
    data = json.loads(path.read_text(encoding='utf-8'))
    questions = tuple(QuestionSnapshot.model_validate(q) for q in data.get('questions', []))
    total = data.get('total_points')
    if total is None:
        total = grading.recompute_total_points(questions)
    return QuizSnapshot(
        id=data.get('id'),
        questions=questions,
        total_points=total,
        passing_score=data.get('passing_score', 70),
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Grade quiz answers offline')
    parser.add_argument('quiz', type=pathlib.Path)
    parser.add_argument('answers', type=pathlib.Path)
    parser.add_argument('--policy', choices=MATCH_POLICIES, default='exact')
    args = parser.parse_args(argv)
    try:
        quiz = load_quiz(args.quiz)
        answers = json.loads(args.answers.read_text(encoding='utf-8'))
        result = grading.grade_attempt(quiz, answers, policy=args.policy)
    except (GradingError, ValidationError) as e:
        print(f'error: {e}', file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f'error: invalid JSON: {e}', file=sys.stderr)
        return 1
    except OSError as e:
        print(f'error: cannot read file: {e}', file=sys.stderr)
        return 1
    print(result.model_dump_json(indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
