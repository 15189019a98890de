"""
Pydantic schemas for progress-service

All schemas use Pydantic v2 syntax with ConfigDict
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Dict, List, Any
from datetime import datetime


# ============= CONTENT SCHEMAS =============

class Chapter(BaseModel):
    """Chapter as exposed to readers"""
    id: int
    number: int
    title: str
    content: str
    estimated_reading_minutes: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class QuizPublic(BaseModel):
    """Quiz without its correct answer (served before submission)"""
    id: int
    chapter_id: int
    question: str
    options: List[str]
    points: int

    model_config = ConfigDict(from_attributes=True)


# ============= PROGRESS SCHEMAS =============

class ProgressPatch(BaseModel):
    """
    Partial progress update.

    Every field is optional: an absent (None) field leaves the stored value
    untouched, a present one replaces it.
    """
    is_completed: Optional[bool] = Field(None, description="Chapter finished")
    reading_time_seconds: Optional[int] = Field(None, ge=0, description="Total reading time in seconds")
    quiz_score: Optional[int] = Field(None, ge=0, le=100, description="Chapter quiz score (0-100)")

    model_config = ConfigDict(extra="forbid")

    def present_fields(self) -> Dict[str, Any]:
        """Fields carried by this patch"""
        return self.model_dump(exclude_none=True)


class ProgressUpsertRequest(ProgressPatch):
    """Request body for POST /progress"""
    chapter_id: int = Field(..., gt=0)

    def to_patch(self) -> ProgressPatch:
        return ProgressPatch(**self.model_dump(exclude={'chapter_id'}))


class ProgressRecord(BaseModel):
    """Post-merge progress record"""
    user_id: str
    chapter_id: int
    is_completed: bool
    reading_time_seconds: Optional[int] = None
    quiz_score: Optional[int] = None
    last_read_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ============= POINTS SCHEMAS =============

class LevelProgress(BaseModel):
    current_level: str
    next_level: Optional[str] = None
    next_level_at: Optional[int] = None
    points_to_next_level: Optional[int] = None


class PointsStatus(BaseModel):
    """Response for GET /points"""
    user_id: str
    points: int
    level: str
    level_progress: LevelProgress


# ============= ACHIEVEMENT SCHEMAS =============

ALLOWED_METRICS = {'completed_chapters', 'total_points', 'quizzes_completed'}
ALLOWED_OPERATORS = {'>=', '>', '==', '<=', '<'}


class AchievementCondition(BaseModel):
    """
    Condition to unlock an achievement.

    Examples:
    - {"metric": "total_points", "operator": ">=", "value": 1000}
    - {"metric": "completed_chapters", "operator": ">=", "value": 2}
    """
    metric: str = Field(..., description="completed_chapters, total_points or quizzes_completed")
    operator: str = Field(default=">=", description="Comparison operator")
    value: int = Field(..., gt=0, description="Required value (must be > 0)")

    @field_validator('metric')
    @classmethod
    def validate_metric(cls, v: str) -> str:
        if v not in ALLOWED_METRICS:
            raise ValueError(f"metric must be one of {sorted(ALLOWED_METRICS)}, got: {v}")
        return v

    @field_validator('operator')
    @classmethod
    def validate_operator(cls, v: str) -> str:
        if v not in ALLOWED_OPERATORS:
            raise ValueError(f"operator must be one of {sorted(ALLOWED_OPERATORS)}, got: {v}")
        return v


class Achievement(BaseModel):
    """Catalog entry"""
    achievement_id: str
    title: str
    description: str
    condition: AchievementCondition


class AchievementSnapshot(BaseModel):
    """Aggregate user state the unlock conditions are checked against"""
    completed_chapters: int = Field(0, ge=0)
    total_points: int = Field(0, ge=0)
    quizzes_completed: int = Field(0, ge=0)


class UnlockedAchievement(BaseModel):
    achievement_id: str
    title: str
    description: str
    unlocked_at: datetime


class AchievementStatus(BaseModel):
    """Catalog entry with the user's unlock status"""
    achievement_id: str
    title: str
    description: str
    condition: AchievementCondition
    unlocked: bool
    unlocked_at: Optional[datetime] = None


# ============= OPERATION RESULTS =============

class LedgerBalance(BaseModel):
    """User points after a credit"""
    user_id: str
    points: int = Field(..., ge=0)
    level: str
    previous_level: Optional[str] = None
    level_up: bool = False
    achievements_unlocked: List[UnlockedAchievement] = Field(default_factory=list)


class ProgressUpdateResponse(BaseModel):
    """Result of upsert_progress"""
    progress: ProgressRecord
    points_awarded: int = 0
    balance: Optional[LedgerBalance] = None
    achievements_unlocked: List[UnlockedAchievement] = Field(default_factory=list)


class QuizSubmission(BaseModel):
    """Request body for POST /quiz-results"""
    quiz_id: int = Field(..., gt=0)
    selected_answer: int = Field(..., description="Index of the chosen option")


class QuizResultOut(BaseModel):
    id: int
    user_id: str
    quiz_id: int
    selected_answer: int
    is_correct: bool
    points_earned: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubmitAnswerResponse(BaseModel):
    """Result of submit_answer"""
    result: QuizResultOut
    points_credited: bool = False
    balance: Optional[LedgerBalance] = None
    correct_answer: int
    explanation: Optional[str] = None
    achievements_unlocked: List[UnlockedAchievement] = Field(default_factory=list)


class UserStats(BaseModel):
    """Response for GET /stats"""
    user_id: str
    total_points: int
    current_level: str
    completed_chapters: int
    completed_quizzes: int = Field(..., description="Distinct quizzes answered correctly at least once")
    days_since_joined: int
    level_progress: LevelProgress
