# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from datetime import datetime, timedelta, timezone
from typing import Generator, List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from ventmatch.core.config import Settings
from ventmatch.core.scheduling import TaskRegistry
from ventmatch.db.session import create_db_engine, create_session_factory, init_db
from ventmatch.schemas.pairing import MatchResult
from ventmatch.schemas.session import ChatSession, Presence
from ventmatch.services.container import ServiceContainer
from ventmatch.services.matching.service import MatchingService
from ventmatch.services.moderation.engine import ModerationEngine, ModerationPolicy
from ventmatch.services.moderation.report_service import ReportService
from ventmatch.services.moderation.repository import ModerationRepository
from ventmatch.services.session.manager import SessionManager
from ventmatch.services.store.local import LocalPairingStore

START_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class SequentialIds:
    """Deterministic id generator: id-1, id-2, ..."""

    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"{self.prefix}-{self.count}"


class RecordingNotifier:
    """Session notifier that records every call."""

    def __init__(self):
        self.matches: List[MatchResult] = []
        self.both_present_calls: List[Tuple[ChatSession, List[Presence]]] = []
        self.joined_calls: List[Tuple[ChatSession, Presence, str]] = []
        self.ended: List[ChatSession] = []

    async def match_found(self, match: MatchResult) -> None:
        self.matches.append(match)

    async def both_present(self, session: ChatSession, presences: List[Presence]) -> None:
        self.both_present_calls.append((session, presences))

    async def participant_joined(
        self, session: ChatSession, presence: Presence, recipient_id: str
    ) -> None:
        self.joined_calls.append((session, presence, recipient_id))

    async def session_ended(self, session: ChatSession) -> None:
        self.ended.append(session)


@pytest.fixture(scope="function")
def test_settings() -> Settings:
    """
    Create test settings with overridden values.
    """
    return Settings(
        _env_file=None,
        PROJECT_NAME="Test Project",
        DATABASE_URL="sqlite://",
        PAIRING_BACKEND="local",
        ENABLE_API_DOCS=False,
        JOIN_DEBOUNCE_SECONDS=0.01,
        REDIS_URL="redis://localhost:6379/1",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture(scope="function")
def test_engine():
    """
    In-memory moderation database with all tables created.
    """
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def test_session_factory(test_engine) -> sessionmaker:
    return create_session_factory(test_engine)


@pytest.fixture
def store(test_settings) -> LocalPairingStore:
    return LocalPairingStore(max_messages=test_settings.CHAT_HISTORY_MAX_MESSAGES)


@pytest.fixture
def tasks() -> Generator[TaskRegistry, None, None]:
    registry = TaskRegistry()
    yield registry
    registry.cancel_all()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def moderation_repository(test_session_factory) -> ModerationRepository:
    return ModerationRepository(test_session_factory)


@pytest.fixture
def moderation_engine(test_settings, moderation_repository, clock, ids) -> ModerationEngine:
    return ModerationEngine(
        moderation_repository,
        ModerationPolicy.from_settings(test_settings),
        clock=clock,
        id_generator=ids,
    )


@pytest.fixture
def session_manager(test_settings, store, tasks, notifier, clock, ids) -> SessionManager:
    return SessionManager(
        store,
        test_settings,
        tasks=tasks,
        notifier=notifier,
        clock=clock,
        id_generator=ids,
    )


@pytest.fixture
def matching_service(
    test_settings, store, session_manager, moderation_engine, tasks, clock, ids
) -> MatchingService:
    service = MatchingService(
        store,
        session_manager,
        test_settings,
        moderation=moderation_engine,
        tasks=tasks,
        clock=clock,
        id_generator=ids,
    )
    service.add_match_listener(session_manager.handle_match)
    return service


@pytest.fixture
def report_service(
    moderation_repository, moderation_engine, session_manager, clock, ids
) -> ReportService:
    return ReportService(
        moderation_repository,
        moderation_engine,
        session_manager,
        clock=clock,
        id_generator=ids,
    )


@pytest.fixture
def container(test_settings, store, test_session_factory) -> ServiceContainer:
    """Service container on the local store and the in-memory database."""
    return ServiceContainer(test_settings, store, test_session_factory)


@pytest.fixture
def test_client(test_settings, container) -> Generator[TestClient, None, None]:
    """
    Create a test client running the application lifespan.
    """
    from ventmatch.main import create_app

    app = create_app(test_settings, services=container)
    with TestClient(app) as client:
        yield client
