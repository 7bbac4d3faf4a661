import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from quizshare.config import get_settings
from quizshare.database import get_session
from quizshare.models import (
    GenerateRequest, QuizCreate, QuizCreated, QuizData, QuizRead,
)
from quizshare.llm_client import generate_quiz, analyze_image, process_extracted_text
from quizshare.sharing import quiz_share_url
from quizshare.store import QuizStore
from quizshare import youtube

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/quiz", tags=["quiz"])


async def _content_for(data: GenerateRequest) -> str:
    if data.source == "prompt":
        prompt = (data.prompt or "").strip()
        if not prompt:
            raise HTTPException(status_code=400, detail="Please enter a topic or subject")
        return prompt

    if data.source == "youtube":
        if not (data.youtube_url or "").strip():
            raise HTTPException(status_code=400, detail="Please enter a YouTube URL")
        return await youtube.content_for_quiz(data.youtube_url, data.language)

    # image: prefer text extracted in an earlier step
    text = (data.extracted_text or "").strip()
    if text:
        return text
    if not data.image_data:
        raise HTTPException(status_code=400, detail="Please process an image first")
    extracted = await analyze_image(data.image_data, data.image_mime, data.language)
    return await process_extracted_text(extracted, data.language)


@router.post("/generate", response_model=QuizData)
async def generate(data: GenerateRequest):
    """Generate quiz questions from a topic, a YouTube video or an image."""
    content = await _content_for(data)
    return await generate_quiz(content, data.num_questions, data.num_options, data.language)


@router.post("", response_model=QuizCreated, status_code=201)
def create_quiz(data: QuizCreate, session: Session = Depends(get_session)):
    """Persist a generated quiz and return its share id."""
    quiz_id = QuizStore(session).create_quiz(data.questions, data.creator_name)
    return QuizCreated(id=quiz_id, share_url=quiz_share_url(settings.public_base_url, quiz_id))


@router.get("/{quiz_id}", response_model=QuizRead)
def get_quiz(quiz_id: str, session: Session = Depends(get_session)):
    quiz = QuizStore(session).get_quiz(quiz_id)
    if not quiz:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return QuizRead(
        id=quiz.id,
        creator_name=quiz.creator_name,
        questions=quiz.questions,
        created_at=quiz.created_at,
    )
