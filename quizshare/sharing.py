"""Share links and downloadable result text."""

from datetime import datetime
from typing import Optional

from quizshare.models import SharePayload
from quizshare.scoring import score_percentage


def quiz_share_url(base_url: str, quiz_id: str) -> str:
    return f"{base_url.rstrip('/')}/quiz/{quiz_id}"


def build_share_payload(base_url: str, quiz_id: str, score: int, total: int) -> SharePayload:
    return SharePayload(
        url=quiz_share_url(base_url, quiz_id),
        text=f"I just scored {score}/{total} on this quiz! Try to beat my score!",
    )


def format_results_text(username: str, score: int, total: int, when: Optional[datetime] = None) -> str:
    """Plain-text results sheet offered as a download."""
    when = when or datetime.now()
    lines = [
        f"Quiz Results for {username}",
        "--------------------------",
        f"Score: {score}/{total}",
        f"Percentage: {score_percentage(score, total):.2f}%",
        f"Date: {when.strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    return "\n".join(lines) + "\n"


def results_filename(when: datetime) -> str:
    return f"quiz-results-{when.date().isoformat()}.txt"
