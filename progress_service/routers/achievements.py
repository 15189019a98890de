"""
Achievement endpoints
"""
from typing import List

from fastapi import APIRouter, Depends

from progress_service import schemas
from progress_service.dependencies import get_current_user_id, get_tracker
from progress_service.services.tracker import ProgressTracker

router = APIRouter(prefix="/api/v1/achievements", tags=["Achievements"])


@router.get("", response_model=List[schemas.UnlockedAchievement])
async def list_unlocked(
    user_id: str = Depends(get_current_user_id),
    tracker: ProgressTracker = Depends(get_tracker)
):
    """Unlocked achievements, newest first"""
    return await tracker.list_achievements(user_id)


@router.get("/catalog", response_model=List[schemas.AchievementStatus])
async def list_catalog(
    user_id: str = Depends(get_current_user_id),
    tracker: ProgressTracker = Depends(get_tracker)
):
    """Whole catalog with the user's unlock status"""
    return await tracker.list_achievements_with_status(user_id)


@router.post("/evaluate", response_model=List[schemas.UnlockedAchievement])
async def evaluate(
    user_id: str = Depends(get_current_user_id),
    tracker: ProgressTracker = Depends(get_tracker)
):
    """
    Unlock every achievement whose condition holds for the user's stored state.

    The state is always read from storage inside the transaction; any request
    body is ignored. Idempotent: a second call returns an empty list.
    """
    return await tracker.evaluate(user_id)
