import json
import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import yaml
from pydantic import ValidationError as SchemaError

from quizshare.config import get_settings
from quizshare.exceptions import UpstreamGenerationError, ValidationError
from quizshare.models import QuizData
from quizshare.scoring import validate_questions

settings = get_settings()
logger = logging.getLogger(__name__)

_prompts_file = os.path.join(os.path.dirname(__file__), "prompts.yaml")
with open(_prompts_file, "r", encoding="utf-8") as f:
    PROMPTS: dict = yaml.safe_load(f)


def _language_instructions(language: str, kind: str) -> str:
    return (PROMPTS["languages"].get(language) or {}).get(kind, "")


def _extract_json(text: str) -> dict:
    """First JSON object in a model reply: the bare text, a fenced block, or the outermost braces."""
    text = text.strip()
    candidates = [text]
    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if fence_match:
        candidates.append(fence_match.group(1).strip())
    first_brace, last_brace = text.find("{"), text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        candidates.append(text[first_brace : last_brace + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    raise ValueError(f"No JSON object in model response: {text[:200]}...")


def _parse_quiz(data: dict) -> QuizData:
    """Turn parsed JSON into QuizData, enforcing one correct option per question."""
    if not isinstance(data, dict) or "questions" not in data:
        raise ValueError("Missing 'questions' key in response")
    try:
        quiz = QuizData.model_validate(data)
        validate_questions(quiz.questions)
    except (SchemaError, ValidationError) as e:
        raise ValueError(f"Invalid quiz format received from AI: {e}") from e
    return quiz


def _prepare_prompt(prompt: str) -> tuple[str, bool]:
    """A prompt that is a JSON object with a summary is a video summary."""
    try:
        parsed = json.loads(prompt)
    except json.JSONDecodeError:
        return prompt, False
    if isinstance(parsed, dict) and parsed.get("summary"):
        return f"Video Summary: {parsed['summary']}", True
    return prompt, False


@asynccontextmanager
async def _http_client(client: Optional[httpx.AsyncClient]):
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=settings.llm_timeout) as own:
        yield own


async def _generate_content(
    parts: list[dict],
    temperature: float,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Single generateContent call. Returns the first candidate's text."""
    if not settings.gemini_api_key:
        raise UpstreamGenerationError("Generative AI service is not configured")

    url = f"{settings.gemini_base_url}/models/{settings.gemini_model}:generateContent"
    try:
        async with _http_client(client) as http:
            response = await http.post(
                url,
                params={"key": settings.gemini_api_key},
                json={
                    "contents": [{"parts": parts}],
                    "generationConfig": {
                        "temperature": temperature,
                        "maxOutputTokens": 2048,
                    },
                },
            )
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPStatusError as e:
        logger.error("Generative API returned %s: %s", e.response.status_code, e.response.text[:200])
        raise UpstreamGenerationError(
            f"Could not reach the AI service (status {e.response.status_code})"
        ) from e
    except httpx.HTTPError as e:
        logger.error("Generative API request failed: %s", e)
        raise UpstreamGenerationError("Could not reach the AI service") from e
    except json.JSONDecodeError as e:
        raise UpstreamGenerationError(
            "AI service returned a malformed response", reason=UpstreamGenerationError.MALFORMED
        ) from e

    try:
        text = result["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None
    if not text:
        raise UpstreamGenerationError(
            "No content returned from the AI service", reason=UpstreamGenerationError.MALFORMED
        )
    return text


async def generate_quiz(
    prompt: str,
    num_questions: Optional[int] = None,
    num_options: Optional[int] = None,
    language: str = "english",
    client: Optional[httpx.AsyncClient] = None,
) -> QuizData:
    """Ask the generative service for a quiz. Retries only on malformed output."""
    num_questions = num_questions or settings.default_num_questions
    num_options = num_options or settings.default_num_options
    content, is_video_summary = _prepare_prompt(prompt)

    prompt_text = PROMPTS["quiz"].format(
        content=content,
        num_questions=num_questions,
        num_options=num_options,
        video_instructions=PROMPTS["video_instructions"] if is_video_summary else "",
        language_instructions=_language_instructions(language, "quiz"),
    )
    logger.info("Generating quiz (%d questions, %d options, %s)", num_questions, num_options, language)

    attempts = max(1, settings.llm_max_attempts)
    last_error = None
    for attempt in range(attempts):
        raw_text = await _generate_content([{"text": prompt_text}], temperature=0.7, client=client)
        try:
            return _parse_quiz(_extract_json(raw_text))
        except ValueError as e:
            logger.warning("Attempt %d/%d returned an unusable quiz: %s", attempt + 1, attempts, e)
            last_error = e

    raise UpstreamGenerationError(
        "Failed to parse quiz data",
        reason=UpstreamGenerationError.MALFORMED,
        details={"cause": str(last_error)},
    )


async def analyze_image(
    image_data: str,
    mime_type: Optional[str] = None,
    language: str = "english",
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Extract the text shown in a base64-encoded image."""
    prompt_text = PROMPTS["extract"].format(
        language_instructions=_language_instructions(language, "extract")
    )
    parts = [
        {"text": prompt_text},
        {"inline_data": {"mime_type": mime_type or "image/jpeg", "data": image_data}},
    ]
    return await _generate_content(parts, temperature=0.1, client=client)


async def process_extracted_text(
    text: str, language: str = "english", client: Optional[httpx.AsyncClient] = None
) -> str:
    prompt_text = PROMPTS["process"].format(
        content=text, language_instructions=_language_instructions(language, "process")
    )
    return await _generate_content([{"text": prompt_text}], temperature=0.3, client=client)


async def format_summary(
    content: str, language: str = "english", client: Optional[httpx.AsyncClient] = None
) -> str:
    prompt_text = PROMPTS["summary"].format(
        content=content, language_instructions=_language_instructions(language, "summary")
    )
    return await _generate_content([{"text": prompt_text}], temperature=0.3, client=client)
