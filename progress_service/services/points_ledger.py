"""
Points ledger: the only writer of user point totals.

Each credit re-reads the user row, writes points + level with a
version-checked UPDATE and raises ConflictRetryableError if another writer
got there first. level is always level_for(points), never set on its own.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from progress_service import crud, models
from progress_service.core.transactions import TransactionRunner
from progress_service.errors import ConflictRetryableError, InvalidInputError, NotFoundError
from progress_service.logic.achievements import AchievementEvaluator
from progress_service.logic.levels import level_for, level_progress, level_rank
from progress_service.schemas import LedgerBalance, LevelProgress, PointsStatus

logger = logging.getLogger(__name__)


class PointsLedger:
    """Credits points and keeps the cached level in sync"""

    def __init__(self, runner: TransactionRunner, evaluator: Optional[AchievementEvaluator] = None):
        self.runner = runner
        self.evaluator = evaluator

    async def credit(self, user_id: str, delta: int) -> LedgerBalance:
        """
        Atomically add ``delta`` (>= 0) points to a user.

        Achievements are evaluated in the same transaction when an
        evaluator is configured.

        Returns:
            LedgerBalance with the new points, level and unlocked achievements
        """
        self._validate_delta(delta)

        async def _credit(db: AsyncSession) -> LedgerBalance:
            balance = await self.apply_credit(db, user_id, delta)
            if self.evaluator is not None:
                balance.achievements_unlocked = await self.evaluator.evaluate(db, user_id)
            return balance

        return await self.runner.run(user_id, _credit)

    async def apply_credit(self, db: AsyncSession, user_id: str, delta: int) -> LedgerBalance:
        """Credit inside an existing transaction (used by the other engine components)"""
        self._validate_delta(delta)

        user = await crud.get_user(db, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        return await self.write_balance(db, user, user.points + delta)

    async def write_balance(self, db: AsyncSession, user: models.User, new_points: int) -> LedgerBalance:
        """
        Persist ``new_points`` for a user row read earlier in this transaction.

        Raises:
            ConflictRetryableError: the row changed since it was read
        """
        previous_level = user.level
        new_level = level_for(new_points)

        updated = await crud.set_points_and_level(
            db, user.id, new_points, new_level, expected_version=user.version
        )
        if not updated:
            logger.warning(f"Version mismatch for user {user.id}: expected {user.version}")
            raise ConflictRetryableError("Concurrent modification detected. Please retry.")

        level_up = self._is_level_up(previous_level, new_level)
        logger.info(
            f"User {user.id} credited {new_points - user.points} points. "
            f"Total: {new_points}, Level: {new_level}"
        )
        if level_up:
            logger.info(f"User {user.id} leveled up to {new_level}!")

        return LedgerBalance(
            user_id=user.id,
            points=new_points,
            level=new_level,
            previous_level=previous_level,
            level_up=level_up,
        )

    async def get_balance(self, user_id: str) -> PointsStatus:
        async def _read(db: AsyncSession) -> PointsStatus:
            user = await crud.get_user(db, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            return PointsStatus(
                user_id=user.id,
                points=user.points,
                level=level_for(user.points),
                level_progress=LevelProgress(**level_progress(user.points)),
            )

        return await self.runner.read(_read)

    @staticmethod
    def _validate_delta(delta: int):
        if delta < 0:
            raise InvalidInputError(f"Credit must be non-negative, got {delta}")

    @staticmethod
    def _is_level_up(previous_level: Optional[str], new_level: str) -> bool:
        if previous_level is None or previous_level == new_level:
            return False
        try:
            return level_rank(new_level) > level_rank(previous_level)
        except ValueError:
            # cached label not in the table (e.g. legacy data)
            return True
