"""Persistence for quizzes and leaderboard scores."""

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from quizshare.exceptions import PersistenceError, ValidationError
from quizshare.models import Quiz, QuizQuestion, Score, ScoreCreate
from quizshare.scoring import validate_questions

logger = logging.getLogger(__name__)

MAX_USERNAME_LENGTH = 50


class QuizStore:
    """Create and look up quizzes. Quizzes are never updated after creation."""

    def __init__(self, session: Session):
        self.session = session

    def create_quiz(self, questions: Sequence[QuizQuestion], creator_name: Optional[str] = None) -> str:
        validate_questions(questions)

        quiz = Quiz(
            creator_name=(creator_name or "").strip() or "Anonymous",
            questions=[q.model_dump() for q in questions],
        )
        try:
            self.session.add(quiz)
            self.session.commit()
            self.session.refresh(quiz)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Failed to save quiz: %s", e)
            raise PersistenceError("Failed to save quiz") from e

        logger.info("Quiz saved with id %s (%d questions)", quiz.id, len(questions))
        return quiz.id

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        """Return the quiz, or None when no quiz has this id."""
        try:
            quiz = self.session.get(Quiz, quiz_id)
        except SQLAlchemyError as e:
            logger.error("Failed to fetch quiz %s: %s", quiz_id, e)
            raise PersistenceError("Failed to fetch quiz") from e

        if quiz is None:
            logger.info("Quiz not found: %s", quiz_id)
        return quiz


class ScoreStore:
    """Append-only leaderboard rows. Resubmission adds a row, it never overwrites."""

    def __init__(self, session: Session):
        self.session = session

    def append_score(self, quiz: Quiz, entry: ScoreCreate) -> Score:
        username = entry.username.strip()
        if not username:
            raise ValidationError("Username cannot be empty")
        if len(username) > MAX_USERNAME_LENGTH:
            raise ValidationError(f"Username too long (max {MAX_USERNAME_LENGTH} chars)")

        question_count = len(quiz.questions)
        if entry.total_questions != question_count:
            raise ValidationError(
                f"Total questions must be {question_count}, got {entry.total_questions}"
            )
        if not 0 <= entry.score <= entry.total_questions:
            raise ValidationError(f"Score must be between 0 and {entry.total_questions}")

        timestamp = entry.timestamp or datetime.now(timezone.utc)
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc)

        score = Score(
            quiz_id=quiz.id,
            username=username,
            score=entry.score,
            total_questions=entry.total_questions,
            timestamp=timestamp,
        )
        try:
            self.session.add(score)
            self.session.commit()
            self.session.refresh(score)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Failed to save score for quiz %s: %s", quiz.id, e)
            raise PersistenceError("Failed to save your score to the leaderboard") from e

        logger.info("Score %d/%d saved for quiz %s", score.score, score.total_questions, quiz.id)
        return score

    def list_scores(self, quiz_id: str) -> list[Score]:
        """All entries for a quiz, unsorted."""
        try:
            return list(self.session.exec(select(Score).where(Score.quiz_id == quiz_id)).all())
        except SQLAlchemyError as e:
            logger.error("Failed to fetch leaderboard for quiz %s: %s", quiz_id, e)
            raise PersistenceError("Failed to fetch leaderboard") from e

    def get_score(self, quiz_id: str, score_id: str) -> Optional[Score]:
        try:
            score = self.session.get(Score, score_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to fetch score") from e
        if score is None or score.quiz_id != quiz_id:
            return None
        return score
