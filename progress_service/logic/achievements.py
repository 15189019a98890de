"""
Achievement catalog and unlock evaluation.

WORKFLOW (after every progress/points mutation, same transaction):
1. Build the user's snapshot (completed chapters, points, quizzes)
2. Load already unlocked achievements
3. Evaluate conditions of the locked ones in memory
4. Insert the newly satisfied ones (ON CONFLICT DO NOTHING)
"""
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from progress_service import crud
from progress_service.errors import NotFoundError
from progress_service.models import utcnow
from progress_service.schemas import (
    Achievement,
    AchievementCondition,
    AchievementSnapshot,
    AchievementStatus,
    UnlockedAchievement,
)

logger = logging.getLogger(__name__)


# ============= CATALOG =============

ACHIEVEMENTS: List[Achievement] = [
    Achievement(
        achievement_id='primo_capitolo',
        title='Primo Capitolo',
        description='Completa il tuo primo capitolo',
        condition=AchievementCondition(metric='completed_chapters', operator='>=', value=1),
    ),
    Achievement(
        achievement_id='secondo_capitolo',
        title='Secondo Capitolo',
        description='Completa due capitoli',
        condition=AchievementCondition(metric='completed_chapters', operator='>=', value=2),
    ),
    Achievement(
        achievement_id='lettore_costante',
        title='Lettore Costante',
        description='Completa cinque capitoli',
        condition=AchievementCondition(metric='completed_chapters', operator='>=', value=5),
    ),
    Achievement(
        achievement_id='primo_quiz',
        title='Primo Quiz',
        description='Rispondi correttamente al tuo primo quiz',
        condition=AchievementCondition(metric='quizzes_completed', operator='>=', value=1),
    ),
    Achievement(
        achievement_id='mente_acuta',
        title='Mente Acuta',
        description='Rispondi correttamente a dieci quiz diversi',
        condition=AchievementCondition(metric='quizzes_completed', operator='>=', value=10),
    ),
    Achievement(
        achievement_id='studioso',
        title='Studioso',
        description='Guadagna 1000 punti',
        condition=AchievementCondition(metric='total_points', operator='>=', value=1000),
    ),
    Achievement(
        achievement_id='erudito',
        title='Erudito',
        description='Guadagna 5000 punti',
        condition=AchievementCondition(metric='total_points', operator='>=', value=5000),
    ),
]

ACHIEVEMENTS_BY_ID: Dict[str, Achievement] = {a.achievement_id: a for a in ACHIEVEMENTS}


# ============= CONDITION EVALUATION =============

def evaluate_condition(condition: AchievementCondition, snapshot: AchievementSnapshot) -> bool:
    """
    Evaluate if the snapshot meets an unlock condition.

    Pure logic, no I/O.
    """
    current_value = getattr(snapshot, condition.metric)
    required_value = condition.value

    if condition.operator == '>=':
        result = current_value >= required_value
    elif condition.operator == '>':
        result = current_value > required_value
    elif condition.operator == '==':
        result = current_value == required_value
    elif condition.operator == '<=':
        result = current_value <= required_value
    elif condition.operator == '<':
        result = current_value < required_value
    else:
        logger.warning(f"Unknown operator: {condition.operator}")
        return False

    logger.debug(
        f"Condition eval: {condition.metric} {condition.operator} {required_value} "
        f"(current: {current_value}) -> {result}"
    )
    return result


def to_unlocked(achievement: Achievement, unlocked_at: datetime) -> UnlockedAchievement:
    return UnlockedAchievement(
        achievement_id=achievement.achievement_id,
        title=achievement.title,
        description=achievement.description,
        unlocked_at=unlocked_at,
    )


# ============= EVALUATOR =============

class AchievementEvaluator:
    """
    Unlocks catalog achievements whose condition holds for a user.

    Never revokes: rows in user_achievements are append-only.
    """

    def __init__(
        self,
        catalog: Optional[List[Achievement]] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.catalog = catalog if catalog is not None else ACHIEVEMENTS
        self.by_id = {a.achievement_id: a for a in self.catalog}
        self.clock = clock

    async def build_snapshot(self, db: AsyncSession, user_id: str) -> AchievementSnapshot:
        """Read the user's aggregate state inside the current transaction"""
        user = await crud.get_user(db, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        return AchievementSnapshot(
            completed_chapters=await crud.count_completed_chapters(db, user_id),
            total_points=user.points,
            quizzes_completed=await crud.count_quizzes_completed(db, user_id),
        )

    async def evaluate(
        self,
        db: AsyncSession,
        user_id: str,
        snapshot: Optional[AchievementSnapshot] = None
    ) -> List[UnlockedAchievement]:
        """
        Check all locked achievements and unlock the satisfied ones.

        Args:
            db: Session of the enclosing transaction
            user_id: User identifier
            snapshot: Aggregate state; read from storage when omitted

        Returns:
            Achievements unlocked by this call (empty if nothing changed)
        """
        if snapshot is None:
            snapshot = await self.build_snapshot(db, user_id)

        unlocked_rows = await crud.get_user_achievements(db, user_id)
        unlocked_ids = {row.achievement_id for row in unlocked_rows}

        newly_unlocked = []
        for achievement in self.catalog:
            if achievement.achievement_id in unlocked_ids:
                continue
            if not evaluate_condition(achievement.condition, snapshot):
                continue

            unlocked_at = self.clock()
            created = await crud.insert_user_achievement(db, user_id, achievement.achievement_id, unlocked_at)
            if created:
                newly_unlocked.append(to_unlocked(achievement, unlocked_at))
                logger.info(f"User {user_id} unlocked achievement: {achievement.achievement_id}")

        if not newly_unlocked:
            logger.debug(f"No new achievements for user {user_id}")

        return newly_unlocked

    async def list_unlocked(self, db: AsyncSession, user_id: str) -> List[UnlockedAchievement]:
        """Unlocked achievements, most recent first"""
        rows = await crud.get_user_achievements(db, user_id)
        return [
            to_unlocked(self.by_id[row.achievement_id], row.unlocked_at)
            for row in rows
            if row.achievement_id in self.by_id
        ]

    async def list_with_status(self, db: AsyncSession, user_id: str) -> List[AchievementStatus]:
        """Whole catalog with the user's unlock status"""
        rows = await crud.get_user_achievements(db, user_id)
        unlocked_map: Dict[str, Any] = {row.achievement_id: row.unlocked_at for row in rows}

        return [
            AchievementStatus(
                achievement_id=achievement.achievement_id,
                title=achievement.title,
                description=achievement.description,
                condition=achievement.condition,
                unlocked=achievement.achievement_id in unlocked_map,
                unlocked_at=unlocked_map.get(achievement.achievement_id),
            )
            for achievement in self.catalog
        ]
