from __future__ import annotations

import random

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from trivia_duels.core.duel_events import DuelEventBus
from trivia_duels.db.models import Base
from trivia_duels.game.duels.lifecycle import DuelLifecycleController
from trivia_duels.game.duels.matchmaking import Matchmaker
from trivia_duels.game.duels.store import DuelStore
from trivia_duels.game.questions.selector import QuestionSelector
from tests.duel_fixtures import RecordingNotifier, create_sqlite_engine


@pytest.fixture
async def session_factory(tmp_path):
    # File database: every pooled connection sees the same data.
    engine = create_sqlite_engine(tmp_path / "duels.db")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def event_bus() -> DuelEventBus:
    return DuelEventBus()


@pytest.fixture
def store(session_factory, event_bus) -> DuelStore:
    return DuelStore(session_factory, event_bus=event_bus)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def controller(store, notifier) -> DuelLifecycleController:
    return DuelLifecycleController(store, notifier=notifier)


@pytest.fixture
def selector() -> QuestionSelector:
    return QuestionSelector(rng=random.Random(7))


@pytest.fixture
def matchmaker(controller, selector) -> Matchmaker:
    return Matchmaker(controller, selector=selector)
