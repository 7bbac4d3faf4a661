from fastapi import APIRouter
from quizshare.models import (
    ImageRequest, ImageTextResponse, SummaryResponse, TranscriptResponse, YouTubeRequest,
)
from quizshare.llm_client import analyze_image, process_extracted_text
from quizshare import youtube

router = APIRouter(prefix="/api/sources", tags=["sources"])


@router.post("/youtube/transcript", response_model=TranscriptResponse)
async def youtube_transcript(data: YouTubeRequest):
    """Full transcript text of a YouTube video."""
    video_id, transcript = await youtube.get_transcript(data.url)
    return TranscriptResponse(video_id=video_id, transcript=transcript)


@router.post("/youtube/summary", response_model=SummaryResponse)
async def youtube_summary(data: YouTubeRequest):
    """Raw summary API response plus a formatted version."""
    video_id, raw = await youtube.get_video_summary(data.url)
    processed = await youtube.get_processed_summary(raw, data.language)
    return SummaryResponse(video_id=video_id, raw=raw, processed=processed)


@router.post("/image", response_model=ImageTextResponse)
async def image_text(data: ImageRequest):
    """Text found in an uploaded image, raw and cleaned up."""
    extracted = await analyze_image(data.image_data, data.image_mime, data.language)
    processed = await process_extracted_text(extracted, data.language)
    return ImageTextResponse(extracted_text=extracted, processed_text=processed)
