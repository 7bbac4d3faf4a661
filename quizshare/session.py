"""Per-visitor state machine for taking a shared quiz."""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, MutableMapping, Optional, Union

from quizshare.config import get_settings
from quizshare.exceptions import InvalidTransition, QuizShareError, ValidationError
from quizshare.models import LeaderboardEntry, QuizData, ScoreCreate, SharePayload
from quizshare.polling import LeaderboardPoller
from quizshare.scoring import calculate_score, score_message
from quizshare.sharing import build_share_payload
from quizshare.store import MAX_USERNAME_LENGTH

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = (
    "The shared quiz could not be found. Please try a different link or generate a new quiz."
)
LOAD_ERROR_MESSAGE = "There was an error loading the quiz. Please try again later."
SAVE_ERROR_MESSAGE = "Failed to save your score to the leaderboard"


@dataclass(frozen=True)
class AwaitingIdentity:
    pass


@dataclass(frozen=True)
class FetchingQuiz:
    username: str
    attempt: int = 0


@dataclass(frozen=True)
class Answering:
    username: str
    quiz: QuizData
    selections: dict = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return len(self.selections) == len(self.quiz.questions)


@dataclass(frozen=True)
class Scored:
    username: str
    quiz: QuizData
    selections: dict
    score: int
    revealed: frozenset = frozenset()
    submitted: bool = False
    saved: bool = False
    error: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.quiz.questions)

    @property
    def message(self) -> str:
        return score_message(self.score, self.total)


@dataclass(frozen=True)
class Shared(Scored):
    share: Optional[SharePayload] = None


@dataclass(frozen=True)
class QuizUnavailable:
    reason: str  # "not_found" or "error"
    message: str


@dataclass(frozen=True)
class Exited:
    pass


SessionState = Union[AwaitingIdentity, FetchingQuiz, Answering, Scored, QuizUnavailable, Exited]


class QuizSessionController:
    """
    Drives one visitor through identity entry, fetching, answering, scoring
    and sharing for a single quiz id.

    State only changes through `_transition`. Every awaited backend call
    captures the current generation first; if the session was closed or
    restarted while waiting, the result is discarded.
    """

    def __init__(
        self,
        backend,
        quiz_id: str,
        username_cache: Optional[MutableMapping[str, str]] = None,
        share_base_url: Optional[str] = None,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self._backend = backend
        self.quiz_id = quiz_id
        self._usernames = username_cache if username_cache is not None else {}
        self._share_base_url = share_base_url or settings.public_base_url
        self._retries = settings.quiz_fetch_retries if retries is None else retries
        self._retry_delay = settings.quiz_fetch_retry_delay if retry_delay is None else retry_delay
        self._timeout = settings.client_timeout if timeout is None else timeout
        self._sleep = sleep
        self._generation = 0
        self._state: SessionState = AwaitingIdentity()
        self.poller = LeaderboardPoller(
            backend,
            quiz_id,
            interval=settings.leaderboard_poll_interval if poll_interval is None else poll_interval,
            timeout=self._timeout,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def leaderboard(self) -> list[LeaderboardEntry]:
        return self.poller.ranking

    @property
    def cache_key(self) -> str:
        return f"quiz_username_{self.quiz_id}"

    def _transition(self, new_state: SessionState) -> None:
        logger.debug("Quiz %s: %s -> %s", self.quiz_id, type(self._state).__name__, type(new_state).__name__)
        self._state = new_state

    def _require(self, *state_types) -> None:
        if not isinstance(self._state, state_types):
            raise InvalidTransition(
                f"Cannot do that while {type(self._state).__name__}",
                details={"state": type(self._state).__name__},
            )

    # --- identity and fetch ---

    async def start(self) -> None:
        """Skip identity entry when a username is already cached for this quiz."""
        self._require(AwaitingIdentity)
        cached = self._usernames.get(self.cache_key)
        if cached:
            await self._fetch(cached)

    async def submit_username(self, username: str) -> None:
        self._require(AwaitingIdentity)
        name = username.strip()
        if not name:
            raise ValidationError("Please enter your name to continue")
        if len(name) > MAX_USERNAME_LENGTH:
            raise ValidationError(f"Name must be at most {MAX_USERNAME_LENGTH} characters")
        await self._fetch(name)

    async def _fetch(self, username: str) -> None:
        generation = self._generation
        for attempt in range(self._retries + 1):
            self._transition(FetchingQuiz(username=username, attempt=attempt))
            try:
                quiz = await asyncio.wait_for(self._backend.get_quiz(self.quiz_id), self._timeout)
            except (QuizShareError, asyncio.TimeoutError, ValueError) as e:
                if generation != self._generation:
                    return
                logger.error("Error loading quiz %s: %s", self.quiz_id, e)
                self._transition(QuizUnavailable(reason="error", message=LOAD_ERROR_MESSAGE))
                return

            if generation != self._generation:
                return
            if quiz is not None and quiz.questions:
                self._usernames[self.cache_key] = username
                self._transition(Answering(username=username, quiz=quiz))
                self.poller.start()
                return

            if attempt < self._retries:
                logger.info("Quiz %s not found, retrying in %ss", self.quiz_id, self._retry_delay)
                await self._sleep(self._retry_delay)
                if generation != self._generation:
                    return

        logger.warning("Quiz %s unavailable after %d attempts", self.quiz_id, self._retries + 1)
        self._transition(QuizUnavailable(reason="not_found", message=NOT_FOUND_MESSAGE))

    # --- answering ---

    def select_answer(self, question_index: int, option_index: int) -> None:
        self._require(Answering)
        questions = self._state.quiz.questions
        if not 0 <= question_index < len(questions):
            raise ValidationError(f"No question {question_index}")
        if not 0 <= option_index < len(questions[question_index].options):
            raise ValidationError(f"No option {option_index} for question {question_index}")

        selections = dict(self._state.selections)
        selections[question_index] = option_index
        self._transition(replace(self._state, selections=selections))

    def submit_answers(self) -> int:
        self._require(Answering)
        state = self._state
        score = calculate_score(state.quiz.questions, state.selections)
        self._transition(
            Scored(username=state.username, quiz=state.quiz, selections=dict(state.selections), score=score)
        )
        return score

    # --- scored ---

    def toggle_explanation(self, question_index: int) -> None:
        self._require(Scored)
        self._transition(replace(self._state, revealed=self._state.revealed ^ {question_index}))

    async def submit_score(self, share: bool = True) -> bool:
        """
        Post the score once. Repeated calls while a submission is in flight or
        after it succeeded do nothing. A failed submission can be retried.
        """
        self._require(Scored)
        state = self._state
        if state.submitted:
            return False

        generation = self._generation
        self._transition(replace(state, submitted=True, error=None))
        entry = ScoreCreate(
            username=state.username,
            score=state.score,
            total_questions=state.total,
            timestamp=datetime.now(timezone.utc),
        )
        try:
            await asyncio.wait_for(self._backend.append_score(self.quiz_id, entry), self._timeout)
        except (QuizShareError, asyncio.TimeoutError, ValueError) as e:
            if generation != self._generation:
                return False
            logger.error("Error saving score for quiz %s: %s", self.quiz_id, e)
            self._transition(replace(self._state, submitted=False, error=SAVE_ERROR_MESSAGE))
            return False

        if generation != self._generation:
            return False
        await self.poller.refresh()
        if generation != self._generation:
            return True

        current = self._state
        if share:
            payload = build_share_payload(self._share_base_url, self.quiz_id, current.score, current.total)
            self._transition(
                Shared(
                    username=current.username,
                    quiz=current.quiz,
                    selections=current.selections,
                    score=current.score,
                    revealed=current.revealed,
                    submitted=True,
                    saved=True,
                    share=payload,
                )
            )
        else:
            self._transition(replace(current, saved=True))
        return True

    def try_again(self) -> None:
        """Clear answers and go back to answering the same quiz, no refetch."""
        self._require(Scored)
        self._generation += 1
        self._transition(Answering(username=self._state.username, quiz=self._state.quiz))

    def new_quiz(self) -> None:
        """Leave this quiz entirely."""
        self.close()
        self._transition(Exited())

    def close(self) -> None:
        """Tear down: stop polling and ignore any call still in flight."""
        self._generation += 1
        self.poller.stop()
