"""Shared fixtures: an in-memory engine, sessions on it and HTTP mocking."""

from collections.abc import AsyncGenerator, Iterator

import pytest
from aioresponses import aioresponses as aioresponses_cls

from ui_harness.context import TestContext
from ui_harness.models.project import ProjectConfig
from ui_harness.session import SessionHandle, SessionManager, SessionSettings
from ui_harness.testing.factories import TestUnitFactory
from ui_harness.testing.memory import MemoryEngine, MemoryPage, MemorySite

BASE_URL = "http://memory.test"


@pytest.fixture
def aioresponses() -> Iterator[aioresponses_cls]:
    """Mock every aiohttp request made during the test."""
    with aioresponses_cls() as mocked:
        yield mocked


@pytest.fixture
def site() -> MemorySite:
    """Empty fake site; tests register the pages they need."""
    return MemorySite()


@pytest.fixture
def engine(site: MemorySite) -> MemoryEngine:
    """In-memory engine serving the site."""
    return MemoryEngine(site=site)


@pytest.fixture
def sessions(engine: MemoryEngine) -> SessionManager:
    """Session manager bound to the in-memory engine."""
    return SessionManager(engine=engine)


@pytest.fixture
def project() -> ProjectConfig:
    """Default desktop project."""
    return ProjectConfig(name="Desktop Chrome")


@pytest.fixture
def settings() -> SessionSettings:
    """Short timeouts and fast polling for tests."""
    return SessionSettings(
        base_url=BASE_URL,
        action_timeout_ms=500,
        navigation_timeout_ms=500,
        expect_timeout_ms=500,
        poll_interval_ms=10,
    )


@pytest.fixture
async def handle(
    sessions: SessionManager, project: ProjectConfig, settings: SessionSettings
) -> AsyncGenerator[SessionHandle, None]:
    """Acquired session, released after the test."""
    async with sessions.session(project, settings) as session:
        yield session


@pytest.fixture
def page(handle: SessionHandle) -> MemoryPage:
    """The memory page behind the session."""
    assert isinstance(handle.page, MemoryPage)
    return handle.page


@pytest.fixture
def ctx(handle: SessionHandle) -> TestContext:
    """Test context for an arbitrary unit on the session."""
    return TestContext(session=handle, unit=TestUnitFactory.build())
