"""
FastAPI dependencies shared by the routers
"""
from functools import lru_cache

from fastapi import Header

from progress_service.core.db import AsyncSessionLocal, get_db  # noqa: F401
from progress_service.services.tracker import ProgressTracker


async def get_current_user_id(
    x_user_id: str = Header(..., alias="X-User-ID", min_length=1, max_length=64)
) -> str:
    """User id forwarded by the API gateway after authentication"""
    return x_user_id


@lru_cache()
def get_tracker() -> ProgressTracker:
    """Process-wide tracker; its lock registry must be shared by all requests"""
    return ProgressTracker(AsyncSessionLocal)
