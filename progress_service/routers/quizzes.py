"""
Quiz answer submission and history
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from progress_service import schemas
from progress_service.dependencies import get_current_user_id, get_tracker
from progress_service.services.tracker import ProgressTracker

router = APIRouter(prefix="/api/v1/quiz-results", tags=["Quiz Results"])


@router.post("", response_model=schemas.SubmitAnswerResponse, status_code=status.HTTP_201_CREATED)
async def submit_answer(
    submission: schemas.QuizSubmission,
    user_id: str = Depends(get_current_user_id),
    tracker: ProgressTracker = Depends(get_tracker)
):
    """Grade an answer. Points are credited once per quiz."""
    return await tracker.submit_answer(user_id, submission.quiz_id, submission.selected_answer)


@router.get("", response_model=List[schemas.QuizResultOut])
async def list_results(
    quiz_id: Optional[int] = Query(None, description="Only attempts for this quiz"),
    user_id: str = Depends(get_current_user_id),
    tracker: ProgressTracker = Depends(get_tracker)
):
    return await tracker.get_results(user_id, quiz_id)
