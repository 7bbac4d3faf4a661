from datetime import datetime, timezone
from fractions import Fraction
from typing import Iterable, Mapping, Sequence, TypeVar

from quizshare.exceptions import ValidationError
from quizshare.models import QuizQuestion

Entry = TypeVar("Entry")

# (minimum percentage, message), checked top down
SCORE_MESSAGES = [
    (100, "Perfect score! Excellent work!"),
    (80, "Great job! You've mastered this topic!"),
    (60, "Good effort! Keep learning!"),
    (40, "Nice try! Review the explanations to improve!"),
    (0, "Keep practicing! Review the material and try again!"),
]


def validate_questions(questions: Sequence[QuizQuestion]) -> None:
    """Reject a question set that cannot be persisted or scored."""
    if not questions:
        raise ValidationError("A quiz needs at least one question")

    for i, q in enumerate(questions):
        if not q.question.strip():
            raise ValidationError(f"Question {i+1} has no text")
        if len(q.options) < 2:
            raise ValidationError(f"Question {i+1} needs at least 2 options")

        correct = sum(1 for o in q.options if o.correct)
        if correct != 1:
            raise ValidationError(
                f"Question {i+1} has {correct} correct answers instead of 1",
                details={"question_index": i},
            )


def calculate_score(questions: Sequence[QuizQuestion], selections: Mapping[int, int]) -> int:
    """
    Count the questions whose selected option is the correct one.
    `selections` maps question index -> option index and must cover every question.
    """
    missing = [i for i in range(len(questions)) if i not in selections]
    if missing:
        raise ValidationError(
            "Please answer every question before submitting",
            details={"unanswered": missing},
        )

    score = 0
    for i, q in enumerate(questions):
        choice = selections[i]
        if 0 <= choice < len(q.options) and q.options[choice].correct:
            score += 1
    return score


def score_percentage(score: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return score * 100 / total


def score_message(score: int, total: int) -> str:
    percentage = score_percentage(score, total)
    for threshold, message in SCORE_MESSAGES:
        if percentage >= threshold:
            return message
    return SCORE_MESSAGES[-1][1]


def _as_utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _rank_key(entry) -> tuple:
    total = entry.total_questions
    if total <= 0:
        # No meaningful percentage: always below every scored entry
        return (0, Fraction(0), _as_utc(entry.timestamp))
    return (1, Fraction(entry.score, total), _as_utc(entry.timestamp))


def rank_leaderboard(entries: Iterable[Entry]) -> list[Entry]:
    """
    Order entries by score percentage descending, ties broken by most recent
    timestamp first. Entries with zero total questions rank last.
    """
    return sorted(entries, key=_rank_key, reverse=True)
