"""Tests for the quiz session state machine, against an in-memory backend."""

import asyncio

import pytest

from quizshare.exceptions import InvalidTransition, ValidationError
from quizshare.session import (
    Answering, AwaitingIdentity, Exited, FetchingQuiz, QuizSessionController, QuizUnavailable,
    Scored, Shared,
)


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_controller(backend, **kwargs):
    kwargs.setdefault("sleep", SleepRecorder())
    kwargs.setdefault("share_base_url", "https://quiz.example")
    kwargs.setdefault("poll_interval", 60)
    return QuizSessionController(backend, "quiz-1", **kwargs)


def run(coro_fn):
    return asyncio.run(coro_fn())


class TestIdentityAndFetch:
    def test_starts_awaiting_identity(self, backend):
        async def go():
            controller = make_controller(backend)
            await controller.start()
            return controller

        controller = run(go)
        assert isinstance(controller.state, AwaitingIdentity)
        assert backend.get_calls == 0

    def test_empty_username_rejected(self, backend):
        async def go():
            controller = make_controller(backend)
            with pytest.raises(ValidationError):
                await controller.submit_username("   ")
            return controller

        controller = run(go)
        assert isinstance(controller.state, AwaitingIdentity)
        assert backend.get_calls == 0

    def test_username_leads_to_answering_and_is_cached(self, backend):
        cache = {}

        async def go():
            controller = make_controller(backend, username_cache=cache)
            await controller.submit_username("  Ada ")
            controller.close()
            return controller

        controller = run(go)
        assert isinstance(controller.state, Answering)
        assert controller.state.username == "Ada"
        assert cache == {"quiz_username_quiz-1": "Ada"}

    def test_cached_username_skips_identity(self, backend):
        async def go():
            controller = make_controller(backend, username_cache={"quiz_username_quiz-1": "Ada"})
            await controller.start()
            controller.close()
            return controller

        controller = run(go)
        assert isinstance(controller.state, Answering)
        assert backend.get_calls == 1

    def test_not_found_retries_then_unavailable(self, backend):
        backend.quiz = None
        sleep = SleepRecorder()

        async def go():
            controller = make_controller(backend, sleep=sleep, retries=2, retry_delay=2.0)
            await controller.submit_username("Ada")
            return controller

        controller = run(go)
        assert isinstance(controller.state, QuizUnavailable)
        assert controller.state.reason == "not_found"
        assert backend.get_calls == 3
        assert sleep.delays == [2.0, 2.0]

    def test_not_found_then_found(self, backend):
        backend.missing_times = 1

        async def go():
            controller = make_controller(backend, retries=2)
            await controller.submit_username("Ada")
            controller.close()
            return controller

        controller = run(go)
        assert isinstance(controller.state, Answering)
        assert backend.get_calls == 2

    def test_overlong_username_rejected(self, backend):
        async def go():
            controller = make_controller(backend)
            with pytest.raises(ValidationError):
                await controller.submit_username("x" * 60)
            return controller

        controller = run(go)
        assert isinstance(controller.state, AwaitingIdentity)
        assert backend.get_calls == 0

    @pytest.mark.parametrize(
        "error", [ValidationError("Bad request"), ValueError("Expecting value: line 1 column 1")]
    )
    def test_unexpected_fetch_failure_is_unavailable(self, backend, error):
        backend.get_error = error

        async def go():
            controller = make_controller(backend)
            await controller.submit_username("Ada")
            return controller

        controller = run(go)
        assert isinstance(controller.state, QuizUnavailable)
        assert controller.state.reason == "error"
        assert backend.get_calls == 1

    def test_persistence_error_is_not_retried(self, backend, persistence_error):
        backend.get_error = persistence_error

        async def go():
            controller = make_controller(backend)
            await controller.submit_username("Ada")
            return controller

        controller = run(go)
        assert isinstance(controller.state, QuizUnavailable)
        assert controller.state.reason == "error"
        assert backend.get_calls == 1

    def test_hung_fetch_times_out(self, backend):
        async def never(quiz_id):
            await asyncio.sleep(3600)

        backend.get_quiz = never

        async def go():
            controller = make_controller(backend, timeout=0.01)
            await controller.submit_username("Ada")
            return controller

        controller = run(go)
        assert isinstance(controller.state, QuizUnavailable)

    def test_result_after_close_is_ignored(self, backend):
        async def go():
            gate = asyncio.Event()
            original = backend.get_quiz

            async def slow(quiz_id):
                await gate.wait()
                return await original(quiz_id)

            backend.get_quiz = slow
            controller = make_controller(backend)
            task = asyncio.ensure_future(controller.submit_username("Ada"))
            await asyncio.sleep(0)
            assert isinstance(controller.state, FetchingQuiz)
            controller.close()
            gate.set()
            await task
            return controller

        controller = run(go)
        assert isinstance(controller.state, FetchingQuiz)
        assert not controller.poller.running


async def _answering(backend, **kwargs):
    controller = make_controller(backend, **kwargs)
    await controller.submit_username("Ada")
    return controller


class TestAnswering:
    def test_two_plus_two_scores_one(self, backend):
        async def go():
            controller = await _answering(backend)
            controller.select_answer(0, 0)
            score = controller.submit_answers()
            controller.close()
            return controller, score

        controller, score = run(go)
        assert score == 1
        assert isinstance(controller.state, Scored)
        assert (controller.state.score, controller.state.total) == (1, 1)
        assert controller.state.message.startswith("Perfect")

    def test_answers_can_change_before_submit(self, backend):
        async def go():
            controller = await _answering(backend)
            controller.select_answer(0, 0)
            controller.select_answer(0, 1)
            score = controller.submit_answers()
            controller.close()
            return score

        assert run(go) == 0

    def test_incomplete_submission_rejected(self, backend):
        async def go():
            controller = await _answering(backend)
            assert not controller.state.complete
            with pytest.raises(ValidationError):
                controller.submit_answers()
            controller.close()
            return controller

        assert isinstance(run(go).state, Answering)

    def test_out_of_range_selection(self, backend):
        async def go():
            controller = await _answering(backend)
            with pytest.raises(ValidationError):
                controller.select_answer(0, 7)
            with pytest.raises(ValidationError):
                controller.select_answer(3, 0)
            controller.close()

        run(go)

    def test_cannot_answer_after_scoring(self, backend):
        async def go():
            controller = await _answering(backend)
            controller.select_answer(0, 0)
            controller.submit_answers()
            with pytest.raises(InvalidTransition):
                controller.select_answer(0, 1)
            controller.close()

        run(go)


async def _scored(backend, option=0, **kwargs):
    controller = await _answering(backend, **kwargs)
    controller.select_answer(0, option)
    controller.submit_answers()
    return controller


class TestScored:
    def test_toggle_explanation(self, backend):
        async def go():
            controller = await _scored(backend)
            controller.toggle_explanation(0)
            shown = controller.state.revealed
            controller.toggle_explanation(0)
            hidden = controller.state.revealed
            controller.close()
            return controller, shown, hidden

        controller, shown, hidden = run(go)
        assert shown == {0}
        assert hidden == frozenset()
        assert isinstance(controller.state, Scored)

    def test_double_submit_appends_once(self, backend):
        async def go():
            controller = await _scored(backend)
            results = await asyncio.gather(controller.submit_score(), controller.submit_score())
            controller.close()
            return controller, results

        controller, results = run(go)
        assert len(backend.appended) == 1
        assert sorted(results) == [False, True]
        assert isinstance(controller.state, Shared)
        assert controller.state.share.url == "https://quiz.example/quiz/quiz-1"
        assert controller.state.share.text == "I just scored 1/1 on this quiz! Try to beat my score!"

    def test_submit_after_shared_is_noop(self, backend):
        async def go():
            controller = await _scored(backend)
            await controller.submit_score()
            again = await controller.submit_score()
            controller.close()
            return again

        assert run(go) is False
        assert len(backend.appended) == 1

    def test_submit_without_share_stays_scored(self, backend):
        async def go():
            controller = await _scored(backend)
            await controller.submit_score(share=False)
            controller.close()
            return controller

        controller = run(go)
        assert type(controller.state) is Scored
        assert controller.state.saved
        assert backend.appended[0].username == "Ada"
        assert backend.appended[0].total_questions == 1

    def test_submission_refreshes_leaderboard(self, backend):
        async def go():
            controller = await _scored(backend)
            await controller.submit_score()
            controller.close()
            return controller

        controller = run(go)
        assert [e.username for e in controller.leaderboard] == ["Ada"]

    def test_failed_submission_can_be_retried(self, backend, persistence_error):
        backend.append_error = persistence_error

        async def go():
            controller = await _scored(backend)
            first = await controller.submit_score()
            failed_state = controller.state
            backend.append_error = None
            second = await controller.submit_score()
            controller.close()
            return controller, first, failed_state, second

        controller, first, failed_state, second = run(go)
        assert first is False
        assert failed_state.error == "Failed to save your score to the leaderboard"
        assert not failed_state.submitted
        assert second is True
        assert isinstance(controller.state, Shared)
        assert len(backend.appended) == 1

    def test_rejected_submission_can_be_retried(self, backend):
        backend.append_error = ValidationError("Username too long")

        async def go():
            controller = await _scored(backend)
            first = await controller.submit_score()
            failed_state = controller.state
            backend.append_error = None
            second = await controller.submit_score()
            controller.close()
            return controller, first, failed_state, second

        controller, first, failed_state, second = run(go)
        assert first is False
        assert not failed_state.submitted
        assert failed_state.error == "Failed to save your score to the leaderboard"
        assert second is True
        assert isinstance(controller.state, Shared)
        assert len(backend.appended) == 1

    def test_try_again_clears_answers_without_refetch(self, backend):
        async def go():
            controller = await _scored(backend, option=1)
            controller.try_again()
            controller.close()
            return controller

        controller = run(go)
        assert isinstance(controller.state, Answering)
        assert controller.state.selections == {}
        assert backend.get_calls == 1

    def test_new_quiz_exits(self, backend):
        async def go():
            controller = await _scored(backend)
            controller.new_quiz()
            return controller

        controller = run(go)
        assert isinstance(controller.state, Exited)
        assert not controller.poller.running

    def test_unavailable_is_terminal(self, backend):
        backend.quiz = None

        async def go():
            controller = make_controller(backend, retries=0)
            await controller.submit_username("Ada")
            with pytest.raises(InvalidTransition):
                await controller.submit_username("Ada")
            with pytest.raises(InvalidTransition):
                controller.submit_answers()
            return controller

        assert isinstance(run(go).state, QuizUnavailable)
