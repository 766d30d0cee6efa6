# ============================================================================
# Test Configuration & Fixtures
# ============================================================================
import os

# Must be set before quiz_engine.core.database builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_quiz_engine.db")

import random
import pytest
from typing import AsyncGenerator, Dict, List, Optional
from uuid import uuid4
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

import quiz_engine.models  # noqa: F401
from quiz_engine.main import app
from quiz_engine.core.database import Base, get_db
from quiz_engine.core.locks import InProcessSessionLocks
from quiz_engine.models.curriculum import Module, Question
from quiz_engine.services.quiz.question_selector import QuestionSelector
from quiz_engine.services.quiz.performance_tracker import TopicPerformanceTracker
from quiz_engine.services.quiz.session_manager import QuizSessionManager

# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test_quiz_engine.db"


@pytest.fixture(scope="function")
async def session_maker() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh schema per test; NullPool so every session gets its own connection"""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def locks() -> InProcessSessionLocks:
    return InProcessSessionLocks(wait_seconds=5)


@pytest.fixture
def manager(db_session, locks) -> QuizSessionManager:
    return QuizSessionManager(
        db_session,
        selector=QuestionSelector(db_session, rng=random.Random(7)),
        tracker=TopicPerformanceTracker(db_session),
        locks=locks,
    )


@pytest.fixture(scope="function")
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database"""
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


class QuestionBank:
    """Builds modules and questions for a test"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._counter = 0

    async def module(self, subject: str = "Mathematics", name: str = "Linear Equations") -> Module:
        module = Module(subject=subject, name=name, is_active=True)
        self.db.add(module)
        await self.db.flush()
        return module

    async def questions(
        self,
        module: Optional[Module] = None,
        mix: Optional[Dict[str, int]] = None,
        subject: str = "Mathematics",
        topic: str = "Linear Equations",
        sub_topic: Optional[str] = None,
        **fields
    ) -> List[Question]:
        mix = mix or {"easy": 3, "medium": 4, "hard": 3}
        created = []
        for difficulty, count in mix.items():
            for _ in range(count):
                self._counter += 1
                question = Question(
                    module_id=module.id if module else None,
                    subject=subject,
                    topic=topic,
                    sub_topic=sub_topic,
                    question_text=f"{topic} question {self._counter}?",
                    question_type="multiple_choice",
                    options=["alpha", "beta", "gamma", "delta"],
                    correct_answer="beta",
                    explanation="Because beta.",
                    difficulty=difficulty,
                    **fields
                )
                self.db.add(question)
                created.append(question)
        await self.db.commit()
        return created


@pytest.fixture
def bank(db_session) -> QuestionBank:
    return QuestionBank(db_session)


@pytest.fixture
def student_id():
    return uuid4()
