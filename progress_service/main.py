from contextlib import asynccontextmanager
from fastapi import FastAPI
import logging

from progress_service.config import get_settings
from progress_service.core.db import init_db, close_db
from progress_service.middleware import setup_middleware, add_health_endpoint
from progress_service.routers import achievements as achievements_router
from progress_service.routers import content as content_router
from progress_service.routers import progress as progress_router
from progress_service.routers import quizzes as quizzes_router
from progress_service.routers import stats as stats_router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, dispose the engine on shutdown"""
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})...")
    await init_db()
    logger.info("Database initialized")
    yield
    logger.info(f"Shutting down {settings.APP_NAME}...")
    await close_db()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Reading progress, quiz scoring, points and achievements",
        version=settings.VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )

    setup_middleware(app, settings)
    add_health_endpoint(app, settings)

    app.include_router(content_router.router)
    app.include_router(progress_router.router)
    app.include_router(quizzes_router.router)
    app.include_router(achievements_router.router)
    app.include_router(stats_router.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
