"""
Points and dashboard stats
"""
from fastapi import APIRouter, Depends

from progress_service import schemas
from progress_service.dependencies import get_current_user_id, get_tracker
from progress_service.services.tracker import ProgressTracker

router = APIRouter(prefix="/api/v1", tags=["Stats"])


@router.get("/points", response_model=schemas.PointsStatus)
async def get_points(
    user_id: str = Depends(get_current_user_id),
    tracker: ProgressTracker = Depends(get_tracker)
):
    """Current points, level and distance to the next level"""
    return await tracker.get_balance(user_id)


@router.get("/stats", response_model=schemas.UserStats)
async def get_stats(
    user_id: str = Depends(get_current_user_id),
    tracker: ProgressTracker = Depends(get_tracker)
):
    return await tracker.get_stats(user_id)
