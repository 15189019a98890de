"""
CRUD operations for progress-service
All functions are async and take a SQLAlchemy AsyncSession
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select, update, func, and_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from progress_service import models


def dialect_insert(db: AsyncSession, model):
    """INSERT with ON CONFLICT support for the session's backend (PostgreSQL or SQLite)"""
    if db.bind.dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


# ==================== CHAPTERS ====================

async def get_chapters(db: AsyncSession, skip: int = 0, limit: int = 100) -> List[models.Chapter]:
    """Chapters ordered by number, paginated"""
    result = await db.execute(
        select(models.Chapter).order_by(models.Chapter.number).offset(skip).limit(limit)
    )
    return result.scalars().all()


async def get_chapter(db: AsyncSession, chapter_id: int) -> Optional[models.Chapter]:
    """Get a chapter by ID"""
    result = await db.execute(select(models.Chapter).where(models.Chapter.id == chapter_id))
    return result.scalar_one_or_none()


# ==================== QUIZZES ====================

async def get_quiz(db: AsyncSession, quiz_id: int) -> Optional[models.Quiz]:
    """Get a quiz by ID"""
    result = await db.execute(select(models.Quiz).where(models.Quiz.id == quiz_id))
    return result.scalar_one_or_none()


async def get_quizzes_by_chapter(db: AsyncSession, chapter_id: int) -> List[models.Quiz]:
    """Quizzes of a chapter"""
    result = await db.execute(
        select(models.Quiz)
        .where(models.Quiz.chapter_id == chapter_id)
        .order_by(models.Quiz.id)
    )
    return result.scalars().all()


# ==================== USERS ====================

async def get_user(db: AsyncSession, user_id: str) -> Optional[models.User]:
    """Get a user by ID, always refreshed from the database"""
    result = await db.execute(
        select(models.User)
        .where(models.User.id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def set_points_and_level(
    db: AsyncSession,
    user_id: str,
    points: int,
    level: str,
    expected_version: Optional[int] = None
) -> bool:
    """
    Persist points and level with optimistic locking.

    When expected_version is given the row is only written if its version
    still matches. Returns False if no row was updated.
    """
    conditions = [models.User.id == user_id]
    if expected_version is not None:
        conditions.append(models.User.version == expected_version)

    stmt = (
        update(models.User)
        .where(and_(*conditions))
        .values(points=points, level=level, version=models.User.version + 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


# ==================== PROGRESS ====================

async def get_progress_record(db: AsyncSession, user_id: str, chapter_id: int) -> Optional[models.UserProgress]:
    result = await db.execute(
        select(models.UserProgress)
        .where(
            models.UserProgress.user_id == user_id,
            models.UserProgress.chapter_id == chapter_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_progress(db: AsyncSession, user_id: str) -> List[models.UserProgress]:
    """User progress ordered by chapter"""
    result = await db.execute(
        select(models.UserProgress)
        .where(models.UserProgress.user_id == user_id)
        .order_by(models.UserProgress.chapter_id)
    )
    return result.scalars().all()


async def upsert_progress_record(
    db: AsyncSession,
    user_id: str,
    chapter_id: int,
    fields: Dict[str, Any],
    now: datetime
) -> models.UserProgress:
    """
    Insert-or-merge the (user, chapter) progress row in one statement.

    Only keys present in ``fields`` overwrite stored values on conflict;
    last_read_at always moves to ``now``. completed_at is stamped the first
    time the row is completed and never cleared.
    """
    completed_now = now if fields.get('is_completed') else None

    stmt = dialect_insert(db, models.UserProgress).values(
        user_id=user_id,
        chapter_id=chapter_id,
        is_completed=fields.get('is_completed', False),
        reading_time_seconds=fields.get('reading_time_seconds'),
        quiz_score=fields.get('quiz_score'),
        last_read_at=now,
        completed_at=completed_now,
    )

    merge = {name: stmt.excluded[name] for name in fields}
    merge['last_read_at'] = stmt.excluded.last_read_at
    merge['completed_at'] = func.coalesce(models.UserProgress.completed_at, stmt.excluded.completed_at)

    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "chapter_id"],
        set_=merge,
    ).returning(models.UserProgress)

    result = await db.execute(stmt, execution_options={"populate_existing": True})
    return result.scalar_one()


async def count_completed_chapters(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(models.UserProgress.id)).where(
            models.UserProgress.user_id == user_id,
            models.UserProgress.is_completed.is_(True),
        )
    )
    return result.scalar_one()


# ==================== QUIZ RESULTS ====================

async def create_quiz_result(
    db: AsyncSession,
    user_id: str,
    quiz_id: int,
    selected_answer: int,
    is_correct: bool,
    points_earned: int,
    created_at=None
) -> models.QuizResult:
    """Record an attempt (append-only)"""
    db_result = models.QuizResult(
        user_id=user_id,
        quiz_id=quiz_id,
        selected_answer=selected_answer,
        is_correct=is_correct,
        points_earned=points_earned,
    )
    if created_at is not None:
        db_result.created_at = created_at
    db.add(db_result)
    await db.flush()
    return db_result


async def has_correct_result(db: AsyncSession, user_id: str, quiz_id: int) -> bool:
    """True if the user already answered this quiz correctly"""
    result = await db.execute(
        select(models.QuizResult.id).where(
            models.QuizResult.user_id == user_id,
            models.QuizResult.quiz_id == quiz_id,
            models.QuizResult.is_correct.is_(True),
        ).limit(1)
    )
    return result.first() is not None


async def count_quizzes_completed(db: AsyncSession, user_id: str) -> int:
    """Distinct quizzes answered correctly at least once"""
    result = await db.execute(
        select(func.count(func.distinct(models.QuizResult.quiz_id))).where(
            models.QuizResult.user_id == user_id,
            models.QuizResult.is_correct.is_(True),
        )
    )
    return result.scalar_one()


async def get_quiz_results(
    db: AsyncSession,
    user_id: str,
    quiz_id: Optional[int] = None,
    limit: int = 100
) -> List[models.QuizResult]:
    """User attempts, most recent first"""
    query = select(models.QuizResult).where(models.QuizResult.user_id == user_id)
    if quiz_id is not None:
        query = query.where(models.QuizResult.quiz_id == quiz_id)
    query = query.order_by(models.QuizResult.created_at.desc(), models.QuizResult.id.desc()).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


# ==================== ACHIEVEMENTS ====================

async def get_user_achievements(db: AsyncSession, user_id: str) -> List[models.UserAchievement]:
    """Unlocked achievements, most recent first"""
    result = await db.execute(
        select(models.UserAchievement)
        .where(models.UserAchievement.user_id == user_id)
        .order_by(models.UserAchievement.unlocked_at.desc(), models.UserAchievement.id.desc())
    )
    return result.scalars().all()


async def insert_user_achievement(db: AsyncSession, user_id: str, achievement_id: str, unlocked_at) -> bool:
    """
    Insert an unlock row unless one already exists.

    Returns True only when this call created the row.
    """
    stmt = (
        dialect_insert(db, models.UserAchievement)
        .values(user_id=user_id, achievement_id=achievement_id, unlocked_at=unlocked_at)
        .on_conflict_do_nothing(index_elements=["user_id", "achievement_id"])
    )
    result = await db.execute(stmt)
    return result.rowcount == 1
