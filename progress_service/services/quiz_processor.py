"""
Quiz result processing.

Every attempt is stored. Points are credited only for the first correct
attempt per (user, quiz) unless ``first_correct_only`` is turned off, which
restores award-on-every-correct-answer.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from progress_service import crud
from progress_service.core.transactions import TransactionRunner
from progress_service.errors import InvalidInputError, NotFoundError
from progress_service.logic.achievements import AchievementEvaluator
from progress_service.models import utcnow
from progress_service.schemas import QuizResultOut, SubmitAnswerResponse
from progress_service.services.points_ledger import PointsLedger

logger = logging.getLogger(__name__)


class QuizResultProcessor:
    """Grades submitted answers and credits points"""

    def __init__(
        self,
        runner: TransactionRunner,
        ledger: PointsLedger,
        evaluator: AchievementEvaluator,
        first_correct_only: bool = True,
        clock: Callable[[], datetime] = utcnow
    ):
        self.runner = runner
        self.ledger = ledger
        self.evaluator = evaluator
        self.first_correct_only = first_correct_only
        self.clock = clock

    async def submit_answer(self, user_id: str, quiz_id: int, selected_answer: int) -> SubmitAnswerResponse:
        """
        Grade an answer, record the attempt and credit points.

        Args:
            user_id: Authenticated user identifier
            quiz_id: Quiz ID
            selected_answer: Index of the chosen option

        Returns:
            SubmitAnswerResponse with the stored result, credit outcome,
            explanation and newly unlocked achievements

        Raises:
            NotFoundError: unknown quiz or user
            InvalidInputError: selected_answer outside the quiz options
        """
        return await self.runner.run(
            user_id, lambda db: self._submit(db, user_id, quiz_id, selected_answer)
        )

    async def _submit(
        self,
        db: AsyncSession,
        user_id: str,
        quiz_id: int,
        selected_answer: int
    ) -> SubmitAnswerResponse:
        quiz = await crud.get_quiz(db, quiz_id)
        if quiz is None:
            raise NotFoundError(f"Quiz {quiz_id} not found")

        options = quiz.options or []
        if not 0 <= selected_answer < len(options):
            raise InvalidInputError(
                f"selected_answer {selected_answer} out of range for quiz {quiz_id} "
                f"({len(options)} options)"
            )

        user = await crud.get_user(db, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        is_correct = selected_answer == quiz.correct_answer
        points_earned = quiz.points if is_correct else 0

        # checked before this attempt is stored
        already_correct = is_correct and await crud.has_correct_result(db, user_id, quiz_id)

        result = await crud.create_quiz_result(
            db,
            user_id=user_id,
            quiz_id=quiz_id,
            selected_answer=selected_answer,
            is_correct=is_correct,
            points_earned=points_earned,
            created_at=self.clock(),
        )

        should_credit = is_correct and not (self.first_correct_only and already_correct)
        balance = None
        if should_credit:
            balance = await self.ledger.apply_credit(db, user_id, points_earned)
        elif is_correct:
            logger.info(f"User {user_id} already answered quiz {quiz_id} correctly, no points credited")

        unlocked = await self.evaluator.evaluate(db, user_id)

        logger.info(
            f"User {user_id} answered quiz {quiz_id}: correct={is_correct}, "
            f"points_earned={points_earned}, credited={should_credit}"
        )

        return SubmitAnswerResponse(
            result=QuizResultOut.model_validate(result),
            points_credited=should_credit,
            balance=balance,
            correct_answer=quiz.correct_answer,
            explanation=quiz.explanation,
            achievements_unlocked=unlocked,
        )

    async def get_results(self, user_id: str, quiz_id: Optional[int] = None) -> List[QuizResultOut]:
        """A user's attempts, most recent first"""
        async def _read(db: AsyncSession) -> List[QuizResultOut]:
            results = await crud.get_quiz_results(db, user_id, quiz_id=quiz_id)
            return [QuizResultOut.model_validate(r) for r in results]

        return await self.runner.read(_read)
