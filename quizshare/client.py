"""Async HTTP client for the quiz service, used by the session layer."""

import logging
from typing import Optional, Protocol

import httpx

from quizshare.config import get_settings
from quizshare.exceptions import PersistenceError, UpstreamGenerationError, ValidationError
from quizshare.models import (
    GenerateRequest, LeaderboardEntry, QuizCreated, QuizData, QuizQuestion, ScoreCreate, ScoreCreated,
)

logger = logging.getLogger(__name__)


class QuizBackend(Protocol):
    """What the session controller and poller need from the stores."""

    async def get_quiz(self, quiz_id: str) -> Optional[QuizData]: ...

    async def append_score(self, quiz_id: str, entry: ScoreCreate) -> ScoreCreated: ...

    async def list_scores(self, quiz_id: str) -> list[LeaderboardEntry]: ...


def _body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _detail(response: httpx.Response) -> str:
    detail = _body(response).get("detail")
    return detail if isinstance(detail, str) else response.reason_phrase


def _error_code(response: httpx.Response) -> Optional[str]:
    return _body(response).get("error")


def _decode(response: httpx.Response, parse):
    """Apply `parse` to a success body; an unreadable body is a PersistenceError."""
    try:
        return parse(response.json())
    except (TypeError, ValueError) as e:
        logger.error("Malformed response from %s: %s", response.url, e)
        raise PersistenceError("Malformed response from the quiz service") from e


class QuizShareClient:
    """
    Thin wrapper over the HTTP API.

    A 404 on quiz fetch is reported as None; any other failure to talk to the
    service is a PersistenceError, except rejected input (400, 422) which is a
    ValidationError and generation failures (502) which stay UpstreamGenerationErrors.
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if timeout is None:
            timeout = get_settings().client_timeout
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "QuizShareClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise PersistenceError(f"Could not reach the quiz service: {e}") from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        message = _detail(response)
        if response.status_code in (400, 422):
            raise ValidationError(message)
        if response.status_code == 502:
            reason = UpstreamGenerationError.UNREACHABLE
            if _error_code(response) == "UPSTREAM_MALFORMED":
                reason = UpstreamGenerationError.MALFORMED
            raise UpstreamGenerationError(message, reason=reason)
        raise PersistenceError(message, details={"status_code": response.status_code})

    async def create_quiz(self, questions: list[QuizQuestion], creator_name: Optional[str] = None) -> QuizCreated:
        response = await self._request(
            "POST",
            "/api/quiz",
            json={"questions": [q.model_dump() for q in questions], "creator_name": creator_name},
        )
        self._raise_for_status(response)
        return _decode(response, QuizCreated.model_validate)

    async def get_quiz(self, quiz_id: str) -> Optional[QuizData]:
        response = await self._request("GET", f"/api/quiz/{quiz_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return _decode(response, QuizData.model_validate)

    async def append_score(self, quiz_id: str, entry: ScoreCreate) -> ScoreCreated:
        response = await self._request(
            "POST", f"/api/leaderboard/{quiz_id}", json=entry.model_dump(mode="json")
        )
        self._raise_for_status(response)
        return _decode(response, ScoreCreated.model_validate)

    async def list_scores(self, quiz_id: str) -> list[LeaderboardEntry]:
        response = await self._request("GET", f"/api/leaderboard/{quiz_id}/scores")
        self._raise_for_status(response)
        return _decode(response, lambda body: [LeaderboardEntry.model_validate(item) for item in body])

    async def generate_quiz(self, request: GenerateRequest) -> QuizData:
        response = await self._request(
            "POST", "/api/quiz/generate", json=request.model_dump(mode="json", exclude_none=True)
        )
        self._raise_for_status(response)
        return _decode(response, QuizData.model_validate)
