"""
Reading progress endpoints
"""
from typing import List

from fastapi import APIRouter, Depends

from progress_service import schemas
from progress_service.dependencies import get_current_user_id, get_tracker
from progress_service.services.tracker import ProgressTracker

router = APIRouter(prefix="/api/v1/progress", tags=["Progress"])


@router.get("", response_model=List[schemas.ProgressRecord])
async def get_progress(
    user_id: str = Depends(get_current_user_id),
    tracker: ProgressTracker = Depends(get_tracker)
):
    """All progress records of the user, ordered by chapter"""
    return await tracker.get_progress(user_id)


@router.post("", response_model=schemas.ProgressUpdateResponse)
async def upsert_progress(
    request: schemas.ProgressUpsertRequest,
    user_id: str = Depends(get_current_user_id),
    tracker: ProgressTracker = Depends(get_tracker)
):
    """
    Create or merge the progress record for a chapter.

    Only the fields present in the body are written; the others keep their
    stored value. Completing a chapter for the first time may award points
    and unlock achievements.
    """
    return await tracker.upsert_progress(user_id, request.chapter_id, request.to_patch())
