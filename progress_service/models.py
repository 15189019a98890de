from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, Index, CheckConstraint, UniqueConstraint, JSON
from sqlalchemy.orm import relationship
from progress_service.core.db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """Reader account.

    Owned by the account subsystem: this service only increments ``points``
    and rewrites the cached ``level``. ``version`` guards those writes
    against lost updates.
    """
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    points = Column(Integer, nullable=False, default=0)
    level = Column(String(50), nullable=False, default="Novizio")
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_active_at = Column(DateTime, default=utcnow, nullable=True)

    __table_args__ = (
        CheckConstraint("points >= 0", name="check_user_points_non_negative"),
    )


class Chapter(Base):
    """Novel chapter (read-only content)"""
    __tablename__ = "chapters"

    id = Column(Integer, primary_key=True)
    number = Column(Integer, nullable=False, unique=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False, default="")
    estimated_reading_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    quizzes = relationship("Quiz", back_populates="chapter", order_by="Quiz.id")


class Quiz(Base):
    """Multiple-choice question attached to a chapter"""
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True)
    chapter_id = Column(Integer, ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True)
    question = Column(Text, nullable=False)
    options = Column(JSON, nullable=False)  # ["option A", "option B", ...]
    correct_answer = Column(Integer, nullable=False)  # index into options
    points = Column(Integer, nullable=False, default=10)
    explanation = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    chapter = relationship("Chapter", back_populates="quizzes")

    __table_args__ = (
        CheckConstraint("points >= 0", name="check_quiz_points_non_negative"),
    )


class UserProgress(Base):
    """Reading progress per (user, chapter); one row per pair"""
    __tablename__ = "user_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    chapter_id = Column(Integer, ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    reading_time_seconds = Column(Integer, nullable=True)
    quiz_score = Column(Integer, nullable=True)
    last_read_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)  # first completion, never cleared

    __table_args__ = (
        UniqueConstraint("user_id", "chapter_id", name="uq_user_progress_user_chapter"),
        CheckConstraint("quiz_score IS NULL OR (quiz_score >= 0 AND quiz_score <= 100)", name="check_quiz_score_range"),
        CheckConstraint("reading_time_seconds IS NULL OR reading_time_seconds >= 0", name="check_reading_time_non_negative"),
    )


class QuizResult(Base):
    """Quiz answer attempt (append-only)"""
    __tablename__ = "user_quiz_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    selected_answer = Column(Integer, nullable=False)
    is_correct = Column(Boolean, nullable=False)
    points_earned = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_quiz_results_user_quiz", "user_id", "quiz_id"),
    )


class UserAchievement(Base):
    """Unlocked achievement; one row per (user, achievement)"""
    __tablename__ = "user_achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id = Column(String(50), nullable=False)
    unlocked_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )
