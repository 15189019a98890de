"""
Shared fixtures: a file-backed SQLite database per test (aiosqlite), seeded
with two readers, three chapters and their quizzes.
"""
from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from progress_service import models
from progress_service.config import Settings
from progress_service.core.db import Base, create_engine_for, create_session_factory
from progress_service.dependencies import get_db, get_tracker
from progress_service.main import app
from progress_service.notifications import Notifier
from progress_service.services.tracker import ProgressTracker

JOINED_AT = datetime(2025, 12, 1, 8, 0)


class FakeClock:
    """Deterministic clock; advance() moves it forward"""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 9, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier(Notifier):
    """Notifier that records messages instead of publishing to SNS"""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.sent = []

    async def publish_notification(self, message, subject=None, attributes=None):
        self.sent.append({'message': message, 'subject': subject, 'attributes': attributes or {}})
        return f"msg-{len(self.sent)}"


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        SNS_TOPIC_ARN=None,
        MAX_CONFLICT_RETRIES=3,
        QUIZ_CREDIT_FIRST_CORRECT_ONLY=True,
        CHAPTER_COMPLETION_POINTS=50,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'progress.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    factory = create_session_factory(engine)
    async with factory() as session:
        async with session.begin():
            session.add_all([
                models.User(id="reader-1", email="anna@example.com", first_name="Anna", created_at=JOINED_AT),
                models.User(id="reader-2", email="marco@example.com", first_name="Marco", created_at=JOINED_AT),
                models.Chapter(id=1, number=1, title="L'arrivo", content="...", estimated_reading_minutes=12),
                models.Chapter(id=2, number=2, title="La lettera", content="...", estimated_reading_minutes=15),
                models.Chapter(id=3, number=3, title="Il ritorno", content="...", estimated_reading_minutes=10),
            ])
            await session.flush()
            session.add_all([
                models.Quiz(
                    id=1, chapter_id=1, question="Chi arriva in paese?",
                    options=["Il medico", "Il maestro", "La zia", "Il sindaco"],
                    correct_answer=2, points=10, explanation="La zia arriva con il treno.",
                ),
                models.Quiz(
                    id=2, chapter_id=1, question="In che stagione?",
                    options=["Inverno", "Estate"], correct_answer=0, points=25,
                ),
                models.Quiz(
                    id=3, chapter_id=2, question="Chi scrive la lettera?",
                    options=["Anna", "Marco", "Lucia"], correct_answer=1,
                ),
            ])
    return factory


@pytest.fixture
def notifier(settings):
    return RecordingNotifier(settings)


@pytest.fixture
def tracker(session_factory, settings, notifier, clock):
    return ProgressTracker(session_factory, settings=settings, notifier=notifier, clock=clock)


@pytest.fixture
async def client(session_factory, tracker):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_tracker] = lambda: tracker

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
