"""
Progress store: per-(user, chapter) reading progress.

Merge semantics of upsert_progress:
- no row yet -> insert the patched fields, is_completed defaults to False
- row exists -> each field present in the patch replaces the stored value,
  absent fields are left untouched
- last_read_at always advances to the call time

The merge is a single INSERT ... ON CONFLICT DO UPDATE, so two writers
patching different fields cannot erase each other's values.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from progress_service import crud
from progress_service.core.transactions import TransactionRunner
from progress_service.errors import InvalidInputError, NotFoundError
from progress_service.logic.achievements import AchievementEvaluator
from progress_service.models import utcnow
from progress_service.schemas import ProgressPatch, ProgressRecord, ProgressUpdateResponse
from progress_service.services.points_ledger import PointsLedger

logger = logging.getLogger(__name__)


def parse_patch(patch: Union[ProgressPatch, Dict[str, Any], None]) -> ProgressPatch:
    """Accept a ProgressPatch or a plain dict; reject unknown or out-of-range fields"""
    if patch is None:
        return ProgressPatch()
    if isinstance(patch, ProgressPatch):
        return patch
    try:
        return ProgressPatch.model_validate(patch)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid progress patch: {e.errors()}") from e


class ProgressStore:
    """Owns user_progress rows"""

    def __init__(
        self,
        runner: TransactionRunner,
        ledger: PointsLedger,
        evaluator: AchievementEvaluator,
        completion_points: int = 0,
        clock: Callable[[], datetime] = utcnow
    ):
        self.runner = runner
        self.ledger = ledger
        self.evaluator = evaluator
        self.completion_points = completion_points
        self.clock = clock

    async def upsert_progress(
        self,
        user_id: str,
        chapter_id: int,
        patch: Union[ProgressPatch, Dict[str, Any], None] = None
    ) -> ProgressUpdateResponse:
        """
        Merge a partial update into the user's progress for a chapter.

        Args:
            user_id: Authenticated user identifier
            chapter_id: Chapter ID
            patch: Any subset of is_completed, reading_time_seconds, quiz_score

        Returns:
            Post-merge record, points awarded for a first completion and
            achievements unlocked by this call
        """
        patch = parse_patch(patch)
        return await self.runner.run(
            user_id, lambda db: self._upsert(db, user_id, chapter_id, patch)
        )

    async def _upsert(
        self,
        db: AsyncSession,
        user_id: str,
        chapter_id: int,
        patch: ProgressPatch
    ) -> ProgressUpdateResponse:
        chapter = await crud.get_chapter(db, chapter_id)
        if chapter is None:
            raise NotFoundError(f"Chapter {chapter_id} not found")

        user = await crud.get_user(db, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        previous = await crud.get_progress_record(db, user_id, chapter_id)
        was_completed_before = previous is not None and previous.completed_at is not None

        fields = patch.present_fields()
        record = await crud.upsert_progress_record(db, user_id, chapter_id, fields, self.clock())
        logger.info(
            f"Progress merged for user {user_id}, chapter {chapter_id}: "
            f"fields={sorted(fields)} completed={record.is_completed}"
        )

        points_awarded = 0
        balance = None
        first_completion = not was_completed_before and record.completed_at is not None
        if first_completion and self.completion_points > 0:
            balance = await self.ledger.apply_credit(db, user_id, self.completion_points)
            points_awarded = self.completion_points

        unlocked = await self.evaluator.evaluate(db, user_id)

        return ProgressUpdateResponse(
            progress=ProgressRecord.model_validate(record),
            points_awarded=points_awarded,
            balance=balance,
            achievements_unlocked=unlocked,
        )

    async def get_progress(self, user_id: str) -> List[ProgressRecord]:
        """All progress records of a user, ordered by chapter_id ascending"""
        async def _read(db: AsyncSession) -> List[ProgressRecord]:
            records = await crud.get_user_progress(db, user_id)
            return [ProgressRecord.model_validate(record) for record in records]

        return await self.runner.read(_read)

    async def get_record(self, user_id: str, chapter_id: int) -> Optional[ProgressRecord]:
        async def _read(db: AsyncSession) -> Optional[ProgressRecord]:
            record = await crud.get_progress_record(db, user_id, chapter_id)
            return ProgressRecord.model_validate(record) if record is not None else None

        return await self.runner.read(_read)
