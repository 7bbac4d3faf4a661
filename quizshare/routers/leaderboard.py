from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse
from sqlmodel import Session
from quizshare.config import get_settings
from quizshare.database import get_session
from quizshare.models import (
    LeaderboardEntry, LeaderboardResponse, Quiz, ScoreCreate, ScoreCreated,
)
from quizshare.scoring import rank_leaderboard
from quizshare.sharing import build_share_payload, format_results_text, results_filename
from quizshare.store import QuizStore, ScoreStore

settings = get_settings()
router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


def _require_quiz(quiz_id: str, session: Session) -> Quiz:
    quiz = QuizStore(session).get_quiz(quiz_id)
    if not quiz:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quiz


@router.post("/{quiz_id}", response_model=ScoreCreated, status_code=201)
def submit_score(quiz_id: str, data: ScoreCreate, session: Session = Depends(get_session)):
    """Append a leaderboard entry. Every submission creates a new row."""
    quiz = _require_quiz(quiz_id, session)
    score = ScoreStore(session).append_score(quiz, data)
    return ScoreCreated(
        entry=LeaderboardEntry.model_validate(score, from_attributes=True),
        share=build_share_payload(
            settings.public_base_url, quiz_id, score.score, score.total_questions
        ),
    )


@router.get("/{quiz_id}/scores", response_model=list[LeaderboardEntry])
def list_scores(quiz_id: str, session: Session = Depends(get_session)):
    """All entries for a quiz, unsorted."""
    return ScoreStore(session).list_scores(quiz_id)


@router.get("/{quiz_id}", response_model=LeaderboardResponse)
def get_leaderboard(quiz_id: str, session: Session = Depends(get_session)):
    """Get leaderboard sorted by score percentage desc, tie-break by most recent submission."""
    scores = ScoreStore(session).list_scores(quiz_id)
    entries = rank_leaderboard(scores)

    last = max(s.timestamp for s in scores).isoformat() if scores else None

    return LeaderboardResponse(
        entries=[LeaderboardEntry.model_validate(s, from_attributes=True) for s in entries],
        last_updated=last,
    )


@router.get("/{quiz_id}/results/{score_id}", response_class=PlainTextResponse)
def download_results(quiz_id: str, score_id: str, session: Session = Depends(get_session)):
    """Plain-text results sheet for one submission."""
    score = ScoreStore(session).get_score(quiz_id, score_id)
    if not score:
        raise HTTPException(status_code=404, detail="Score not found")

    text = format_results_text(score.username, score.score, score.total_questions, score.timestamp)
    return PlainTextResponse(
        text,
        headers={"Content-Disposition": f'attachment; filename="{results_filename(score.timestamp)}"'},
    )
