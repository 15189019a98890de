"""
Read-only chapter and quiz endpoints

Quizzes are served without their correct answer; it is revealed in the
response to POST /quiz-results.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from progress_service import crud, schemas
from progress_service.dependencies import get_db
from progress_service.errors import NotFoundError

router = APIRouter(prefix="/api/v1/chapters", tags=["Chapters"])


@router.get("", response_model=List[schemas.Chapter])
async def list_chapters(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db)
):
    """Lists chapters in reading order"""
    return await crud.get_chapters(db, skip=skip, limit=limit)


@router.get("/{chapter_id}", response_model=schemas.Chapter)
async def get_chapter(chapter_id: int, db: AsyncSession = Depends(get_db)):
    chapter = await crud.get_chapter(db, chapter_id)
    if chapter is None:
        raise NotFoundError(f"Chapter {chapter_id} not found")
    return chapter


@router.get("/{chapter_id}/quizzes", response_model=List[schemas.QuizPublic])
async def list_chapter_quizzes(chapter_id: int, db: AsyncSession = Depends(get_db)):
    if await crud.get_chapter(db, chapter_id) is None:
        raise NotFoundError(f"Chapter {chapter_id} not found")
    return await crud.get_quizzes_by_chapter(db, chapter_id)
