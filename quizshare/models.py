import uuid
from datetime import datetime, timezone
from typing import Literal, Optional
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Quiz(SQLModel, table=True):
    __tablename__ = "quizzes"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    creator_name: str = "Anonymous"
    # Ordered list of question dicts, see QuizQuestion
    questions: list[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow)


class Score(SQLModel, table=True):
    __tablename__ = "scores"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    quiz_id: str = Field(foreign_key="quizzes.id", index=True)
    username: str
    score: int = 0
    total_questions: int = 0
    timestamp: datetime = Field(default_factory=_utcnow)


# --- Pydantic request/response schemas ---

Language = Literal["english", "hindi", "hinglish"]


class AnswerOption(SQLModel):
    text: str
    correct: bool = False
    explanation: str = ""


class QuizQuestion(SQLModel):
    question: str
    options: list[AnswerOption]


class QuizData(SQLModel):
    questions: list[QuizQuestion]


class QuizCreate(SQLModel):
    questions: list[QuizQuestion]
    creator_name: Optional[str] = None


class QuizCreated(SQLModel):
    id: str
    share_url: str


class QuizRead(SQLModel):
    id: str
    creator_name: str
    questions: list[QuizQuestion]
    created_at: datetime


class GenerateRequest(SQLModel):
    source: Literal["prompt", "youtube", "image"] = "prompt"
    prompt: Optional[str] = None
    youtube_url: Optional[str] = None
    image_data: Optional[str] = None  # base64, no data: prefix
    image_mime: Optional[str] = None
    extracted_text: Optional[str] = None
    num_questions: Optional[int] = Field(default=None, ge=1, le=20)
    num_options: Optional[int] = Field(default=None, ge=2, le=6)
    language: Language = "english"


class ScoreCreate(SQLModel):
    username: str
    score: int
    total_questions: int
    timestamp: Optional[datetime] = None


class LeaderboardEntry(SQLModel):
    id: Optional[str] = None
    quiz_id: Optional[str] = None
    username: str
    score: int
    total_questions: int
    timestamp: datetime


class SharePayload(SQLModel):
    url: str
    text: str


class ScoreCreated(SQLModel):
    entry: LeaderboardEntry
    share: SharePayload


class LeaderboardResponse(SQLModel):
    entries: list[LeaderboardEntry]
    last_updated: Optional[str] = None


class YouTubeRequest(SQLModel):
    url: str
    language: Language = "english"


class TranscriptResponse(SQLModel):
    video_id: str
    transcript: str


class SummaryResponse(SQLModel):
    video_id: str
    raw: str
    processed: Optional[str] = None


class ImageRequest(SQLModel):
    image_data: str
    image_mime: Optional[str] = None
    language: Language = "english"


class ImageTextResponse(SQLModel):
    extracted_text: str
    processed_text: Optional[str] = None
