"""
Progress tracker: wires the engine components together.

Entry points for the HTTP layer. Each mutating call commits first, then
publishes level-up / achievement notifications.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from progress_service import crud
from progress_service.config import Settings, get_settings
from progress_service.core.transactions import TransactionRunner, UserLockRegistry
from progress_service.errors import NotFoundError
from progress_service.logic.achievements import AchievementEvaluator
from progress_service.logic.levels import level_for, level_progress
from progress_service.models import utcnow
from progress_service.notifications import Notifier
from progress_service.schemas import (
    AchievementStatus,
    LedgerBalance,
    LevelProgress,
    ProgressUpdateResponse,
    SubmitAnswerResponse,
    UnlockedAchievement,
    UserStats,
)
from progress_service.services.points_ledger import PointsLedger
from progress_service.services.progress_store import ProgressStore
from progress_service.services.quiz_processor import QuizResultProcessor

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Facade over ProgressStore, QuizResultProcessor, PointsLedger and AchievementEvaluator"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
        locks: Optional[UserLockRegistry] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.settings = settings or get_settings()
        self.clock = clock
        self.notifier = notifier or Notifier(self.settings)
        self.runner = TransactionRunner(
            session_factory,
            max_attempts=self.settings.MAX_CONFLICT_RETRIES,
            locks=locks,
        )
        self.evaluator = AchievementEvaluator(clock=clock)
        self.ledger = PointsLedger(self.runner, self.evaluator)
        self.progress = ProgressStore(
            self.runner,
            self.ledger,
            self.evaluator,
            completion_points=self.settings.CHAPTER_COMPLETION_POINTS,
            clock=clock,
        )
        self.quizzes = QuizResultProcessor(
            self.runner,
            self.ledger,
            self.evaluator,
            first_correct_only=self.settings.QUIZ_CREDIT_FIRST_CORRECT_ONLY,
            clock=clock,
        )

    # ========== MUTATIONS ==========

    async def upsert_progress(self, user_id: str, chapter_id: int, patch=None) -> ProgressUpdateResponse:
        response = await self.progress.upsert_progress(user_id, chapter_id, patch)
        await self._notify(user_id, response.balance, response.achievements_unlocked)
        return response

    async def submit_answer(self, user_id: str, quiz_id: int, selected_answer: int) -> SubmitAnswerResponse:
        response = await self.quizzes.submit_answer(user_id, quiz_id, selected_answer)
        await self._notify(user_id, response.balance, response.achievements_unlocked)
        return response

    async def credit(self, user_id: str, delta: int) -> LedgerBalance:
        balance = await self.ledger.credit(user_id, delta)
        await self._notify(user_id, balance, balance.achievements_unlocked)
        return balance

    async def evaluate(self, user_id: str) -> List[UnlockedAchievement]:
        """Unlock achievements against the user's stored state, read in the same transaction"""
        async def _evaluate(db: AsyncSession) -> List[UnlockedAchievement]:
            if await crud.get_user(db, user_id) is None:
                raise NotFoundError(f"User {user_id} not found")
            return await self.evaluator.evaluate(db, user_id)

        unlocked = await self.runner.run(user_id, _evaluate)
        await self._notify(user_id, None, unlocked)
        return unlocked

    # ========== READS ==========

    async def get_progress(self, user_id: str):
        return await self.progress.get_progress(user_id)

    async def get_results(self, user_id: str, quiz_id: Optional[int] = None):
        return await self.quizzes.get_results(user_id, quiz_id)

    async def get_balance(self, user_id: str):
        return await self.ledger.get_balance(user_id)

    async def list_achievements(self, user_id: str) -> List[UnlockedAchievement]:
        return await self.runner.read(lambda db: self.evaluator.list_unlocked(db, user_id))

    async def list_achievements_with_status(self, user_id: str) -> List[AchievementStatus]:
        return await self.runner.read(lambda db: self.evaluator.list_with_status(db, user_id))

    async def get_stats(self, user_id: str) -> UserStats:
        """
        Aggregate dashboard stats for a user.

        completed_quizzes counts distinct quizzes answered correctly at least
        once, the same metric the quizzes_completed achievements use. It does
        not count chapters with a recorded quiz_score.
        """
        async def _stats(db: AsyncSession) -> UserStats:
            user = await crud.get_user(db, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            joined = user.created_at or self.clock()
            return UserStats(
                user_id=user.id,
                total_points=user.points,
                current_level=level_for(user.points),
                completed_chapters=await crud.count_completed_chapters(db, user_id),
                completed_quizzes=await crud.count_quizzes_completed(db, user_id),
                days_since_joined=max((self.clock() - joined).days, 0),
                level_progress=LevelProgress(**level_progress(user.points)),
            )

        return await self.runner.read(_stats)

    # ========== NOTIFICATIONS ==========

    async def _notify(
        self,
        user_id: str,
        balance: Optional[LedgerBalance],
        unlocked: List[UnlockedAchievement]
    ):
        if balance is not None and balance.level_up:
            await self.notifier.notify_level_up(user_id, balance.level)
        for achievement in unlocked:
            await self.notifier.notify_achievement(user_id, achievement.achievement_id, achievement.title)
