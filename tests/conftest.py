import asyncio
import os
import tempfile
from datetime import datetime, timezone

# Settings are read once; point them at throwaway values before any app import
_tmp_dir = tempfile.mkdtemp(prefix="quizshare-tests-")
os.environ["QUIZSHARE_DB_PATH"] = os.path.join(_tmp_dir, "quiz.db")
os.environ["QUIZSHARE_GEMINI_API_KEY"] = "test-key"
os.environ["QUIZSHARE_PUBLIC_BASE_URL"] = "https://quiz.example"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from quizshare.database import get_session
from quizshare.exceptions import PersistenceError
from quizshare.main import app
from quizshare.models import AnswerOption, LeaderboardEntry, QuizData, QuizQuestion


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def override_session(engine):
    def _get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client(override_session):
    return TestClient(app)


@pytest.fixture
def arithmetic_questions():
    return [
        QuizQuestion(
            question="2+2?",
            options=[
                AnswerOption(text="4", correct=True, explanation="Two plus two is four."),
                AnswerOption(text="5", correct=False),
            ],
        ),
    ]


@pytest.fixture
def capital_questions():
    return [
        QuizQuestion(
            question="Capital of France?",
            options=[
                AnswerOption(text="Lyon"),
                AnswerOption(text="Paris", correct=True, explanation="Paris is the capital."),
                AnswerOption(text="Nice"),
            ],
        ),
        QuizQuestion(
            question="Capital of Italy?",
            options=[
                AnswerOption(text="Rome", correct=True, explanation="Rome is the capital."),
                AnswerOption(text="Milan"),
            ],
        ),
    ]


def make_entry(username, score, total, ts):
    return LeaderboardEntry(
        username=username,
        score=score,
        total_questions=total,
        timestamp=datetime.fromtimestamp(ts, tz=timezone.utc),
    )


class FakeBackend:
    """In-memory stand-in for QuizShareClient."""

    def __init__(self, quiz=None):
        self.quiz = quiz
        self.scores = []
        self.get_calls = 0
        self.list_calls = 0
        self.appended = []
        self.missing_times = 0
        self.get_error = None
        self.list_error = None
        self.append_error = None

    async def get_quiz(self, quiz_id):
        self.get_calls += 1
        if self.get_error is not None:
            raise self.get_error
        if self.missing_times > 0:
            self.missing_times -= 1
            return None
        return self.quiz

    async def append_score(self, quiz_id, entry):
        await asyncio.sleep(0)
        if self.append_error is not None:
            raise self.append_error
        self.appended.append(entry)
        self.scores.append(
            LeaderboardEntry(
                quiz_id=quiz_id,
                username=entry.username,
                score=entry.score,
                total_questions=entry.total_questions,
                timestamp=entry.timestamp,
            )
        )

    async def list_scores(self, quiz_id):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.scores)


@pytest.fixture
def backend(arithmetic_questions):
    return FakeBackend(QuizData(questions=arithmetic_questions))


@pytest.fixture
def entry_factory():
    return make_entry


@pytest.fixture
def persistence_error():
    return PersistenceError("network down")
