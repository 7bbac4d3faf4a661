"""YouTube transcript and summary fetching used to seed quiz generation."""

import asyncio
import json
import logging
from typing import Optional
from urllib.parse import parse_qs, urlparse

import httpx
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

from quizshare.config import get_settings
from quizshare.exceptions import UpstreamGenerationError, ValidationError
from quizshare.llm_client import format_summary

settings = get_settings()
logger = logging.getLogger(__name__)


def extract_video_id(url: str) -> str:
    """Video id from a youtube.com/watch?v= or youtu.be/ link."""
    url = url.strip()
    if "youtube.com/watch?v=" in url:
        parsed = urlparse(url if "://" in url else f"https://{url}")
        video_id = parse_qs(parsed.query).get("v", [""])[0]
    elif "youtu.be/" in url:
        video_id = url.split("youtu.be/", 1)[1].split("?", 1)[0].split("/", 1)[0]
    else:
        raise ValidationError("Please enter a valid YouTube URL")

    if not video_id:
        raise ValidationError("Could not extract video ID from URL")
    return video_id


def fetch_transcript(video_id: str) -> str:
    """Blocking transcript fetch, joined into one text."""
    try:
        transcript = YouTubeTranscriptApi().fetch(video_id)
    except CouldNotRetrieveTranscript as e:
        logger.warning("No transcript for %s: %s", video_id, e)
        raise UpstreamGenerationError("No transcript available for this video") from e
    except OSError as e:
        logger.error("Transcript request for %s failed: %s", video_id, e)
        raise UpstreamGenerationError("Failed to fetch video transcript") from e

    text = " ".join(snippet.text for snippet in transcript).strip()
    if not text:
        raise UpstreamGenerationError(
            "No transcript available for this video", reason=UpstreamGenerationError.MALFORMED
        )
    return text


async def get_transcript(url: str) -> tuple[str, str]:
    video_id = extract_video_id(url)
    text = await asyncio.to_thread(fetch_transcript, video_id)
    return video_id, text


def summary_api_configured() -> bool:
    return bool(settings.rapidapi_key and settings.rapidapi_host)


async def get_video_summary(url: str, client: Optional[httpx.AsyncClient] = None) -> tuple[str, str]:
    """Raw response body of the transcript summary API."""
    video_id = extract_video_id(url)
    if not summary_api_configured():
        raise UpstreamGenerationError("Video summary service is not configured")

    logger.info("Fetching summary for video %s", video_id)
    request_url = f"https://{settings.rapidapi_host}/api/v1/get-transcript-v2"
    headers = {
        "x-rapidapi-key": settings.rapidapi_key,
        "x-rapidapi-host": settings.rapidapi_host,
    }
    params = {"video_id": video_id, "platform": "youtube"}
    try:
        if client is not None:
            response = await client.get(request_url, params=params, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=settings.llm_timeout) as own:
                response = await own.get(request_url, params=params, headers=headers)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error("Summary API request for %s failed: %s", video_id, e)
        raise UpstreamGenerationError("Failed to fetch video summary") from e
    return video_id, response.text


async def get_processed_summary(
    raw: str, language: str = "english", client: Optional[httpx.AsyncClient] = None
) -> str:
    """Format a raw summary API body with the generative service."""
    content = raw
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        content = data.get("transcript") or data.get("summary") or raw
        if not isinstance(content, str):
            content = json.dumps(content)
    return await format_summary(content, language, client=client)


async def content_for_quiz(url: str, language: str = "english") -> str:
    """Quiz input for a video: processed summary when available, else the transcript."""
    if summary_api_configured():
        try:
            _, raw = await get_video_summary(url)
            return await get_processed_summary(raw, language)
        except UpstreamGenerationError as e:
            logger.warning("Summary unavailable, falling back to transcript: %s", e.message)

    _, transcript = await get_transcript(url)
    return transcript
