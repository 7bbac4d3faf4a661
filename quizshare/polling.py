"""Periodic leaderboard refresh for an open quiz view."""

import asyncio
import logging
from typing import Callable, Optional

from quizshare.exceptions import PersistenceError
from quizshare.models import LeaderboardEntry
from quizshare.scoring import rank_leaderboard

logger = logging.getLogger(__name__)


class LeaderboardPoller:
    """
    Re-fetches and re-ranks a quiz's leaderboard every `interval` seconds.

    Each successful tick replaces the ranking wholesale. Failed ticks are logged
    and the previous ranking stays in place. Results that arrive after `stop()`
    or `switch_quiz()` are dropped.
    """

    def __init__(
        self,
        backend,
        quiz_id: str,
        interval: float = 5.0,
        timeout: Optional[float] = None,
        on_update: Optional[Callable[[list[LeaderboardEntry]], None]] = None,
    ):
        self._backend = backend
        self.quiz_id = quiz_id
        self.interval = interval
        self.timeout = timeout
        self._on_update = on_update
        self._ranking: list[LeaderboardEntry] = []
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._issued = 0
        self._applied = 0

    @property
    def ranking(self) -> list[LeaderboardEntry]:
        return list(self._ranking)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Begin polling. Must be called from a running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def switch_quiz(self, quiz_id: str) -> None:
        """Point at another quiz; the old timer is cancelled and the ranking cleared."""
        was_running = self.running
        self.stop()
        self.quiz_id = quiz_id
        self._ranking = []
        if was_running:
            self.start()

    async def _run(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval)

    async def refresh(self) -> bool:
        """One fetch-and-rank cycle. Returns True when the ranking was replaced."""
        quiz_id = self.quiz_id
        generation = self._generation
        self._issued += 1
        ticket = self._issued
        try:
            entries = await asyncio.wait_for(self._backend.list_scores(quiz_id), self.timeout)
        except (PersistenceError, asyncio.TimeoutError) as e:
            logger.warning("Leaderboard refresh for quiz %s failed: %s", quiz_id, e)
            return False
        except Exception:
            logger.exception("Unexpected error refreshing leaderboard for quiz %s", quiz_id)
            return False

        if generation != self._generation or quiz_id != self.quiz_id:
            logger.debug("Dropping stale leaderboard result for quiz %s", quiz_id)
            return False
        if ticket < self._applied:
            # a newer refresh already landed
            return False

        self._applied = ticket
        self._ranking = rank_leaderboard(entries)
        if self._on_update is not None:
            self._on_update(self.ranking)
        return True
