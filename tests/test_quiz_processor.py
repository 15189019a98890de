"""
Tests for quiz answer grading and crediting
"""
import asyncio

import pytest

from progress_service.errors import InvalidInputError, NotFoundError
from progress_service.services.tracker import ProgressTracker


class TestSubmitAnswer:

    @pytest.mark.asyncio
    async def test_correct_answer_credits_points(self, tracker):
        """0-point reader answers a 10-point quiz correctly"""
        response = await tracker.submit_answer("reader-1", 1, 2)

        assert response.result.is_correct is True
        assert response.result.points_earned == 10
        assert response.points_credited is True
        assert response.balance.points == 10
        assert response.balance.level == "Novizio"
        assert response.correct_answer == 2
        assert response.explanation == "La zia arriva con il treno."
        assert [a.achievement_id for a in response.achievements_unlocked] == ['primo_quiz']

    @pytest.mark.asyncio
    async def test_wrong_answer(self, tracker):
        response = await tracker.submit_answer("reader-1", 1, 0)

        assert response.result.is_correct is False
        assert response.result.points_earned == 0
        assert response.points_credited is False
        assert response.balance is None
        assert response.correct_answer == 2
        assert response.achievements_unlocked == []

    @pytest.mark.asyncio
    async def test_same_quiz_correct_twice_credits_once(self, tracker):
        await tracker.submit_answer("reader-1", 1, 2)
        second = await tracker.submit_answer("reader-1", 1, 2)

        assert second.result.is_correct is True
        assert second.points_credited is False
        assert second.balance is None

        balance = await tracker.get_balance("reader-1")
        assert balance.points == 10

        results = await tracker.get_results("reader-1", quiz_id=1)
        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_mixed_attempts_credit_at_most_once(self, tracker):
        for answer in (0, 2, 1, 2, 3, 2):
            await tracker.submit_answer("reader-1", 1, answer)

        balance = await tracker.get_balance("reader-1")
        assert balance.points == 10

    @pytest.mark.asyncio
    async def test_concurrent_correct_answers_credit_once(self, tracker):
        await asyncio.gather(*[tracker.submit_answer("reader-1", 2, 0) for _ in range(3)])

        balance = await tracker.get_balance("reader-1")
        assert balance.points == 25

    @pytest.mark.asyncio
    async def test_every_correct_answer_credits_when_guard_disabled(
        self, session_factory, settings, notifier, clock
    ):
        settings.QUIZ_CREDIT_FIRST_CORRECT_ONLY = False
        tracker = ProgressTracker(session_factory, settings=settings, notifier=notifier, clock=clock)

        await tracker.submit_answer("reader-1", 1, 2)
        second = await tracker.submit_answer("reader-1", 1, 2)

        assert second.points_credited is True
        assert second.balance.points == 20

    @pytest.mark.asyncio
    async def test_points_come_from_quiz(self, tracker):
        response = await tracker.submit_answer("reader-1", 2, 0)
        assert response.result.points_earned == 25
        assert response.balance.points == 25

    @pytest.mark.asyncio
    async def test_quiz_column_default_points(self, tracker):
        """Quizzes stored without points are worth 10"""
        response = await tracker.submit_answer("reader-1", 3, 1)
        assert response.result.points_earned == 10

    @pytest.mark.asyncio
    async def test_quizzes_completed_counts_distinct(self, tracker):
        await tracker.submit_answer("reader-1", 1, 2)
        await tracker.submit_answer("reader-1", 1, 2)
        await tracker.submit_answer("reader-1", 2, 0)

        stats = await tracker.get_stats("reader-1")
        assert stats.completed_quizzes == 2
        assert stats.total_points == 35

    @pytest.mark.asyncio
    async def test_quiz_score_alone_is_not_a_completed_quiz(self, tracker):
        await tracker.upsert_progress("reader-1", 1, {'quiz_score': 90})

        stats = await tracker.get_stats("reader-1")
        assert stats.completed_quizzes == 0

    @pytest.mark.asyncio
    async def test_unknown_quiz(self, tracker):
        with pytest.raises(NotFoundError):
            await tracker.submit_answer("reader-1", 42, 0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", [-1, 4, 100])
    async def test_answer_out_of_range(self, tracker, answer):
        with pytest.raises(InvalidInputError):
            await tracker.submit_answer("reader-1", 1, answer)

        assert await tracker.get_results("reader-1") == []

    @pytest.mark.asyncio
    async def test_unknown_user(self, tracker):
        with pytest.raises(NotFoundError):
            await tracker.submit_answer("ghost", 1, 2)


class TestGetResults:

    @pytest.mark.asyncio
    async def test_most_recent_first(self, tracker, clock):
        await tracker.submit_answer("reader-1", 1, 0)
        clock.advance(minutes=1)
        await tracker.submit_answer("reader-1", 2, 0)
        clock.advance(minutes=1)
        await tracker.submit_answer("reader-1", 1, 2)

        results = await tracker.get_results("reader-1")
        assert [(r.quiz_id, r.selected_answer) for r in results] == [(1, 2), (2, 0), (1, 0)]

    @pytest.mark.asyncio
    async def test_filter_by_quiz(self, tracker):
        await tracker.submit_answer("reader-1", 1, 0)
        await tracker.submit_answer("reader-1", 2, 0)

        results = await tracker.get_results("reader-1", quiz_id=2)
        assert [r.quiz_id for r in results] == [2]
