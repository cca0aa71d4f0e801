import pytest

from application.task_store import TaskStore
from application.task_sync import TaskSync
from core import PlannerSettings
from fakes import FakeClock, FakeFileStore, InMemoryPersistence


@pytest.fixture
def settings() -> PlannerSettings:
    settings = PlannerSettings.from_dict({"projectsBasePath": ""})
    settings.projects[0].name = "Work"
    return settings


@pytest.fixture
def persistence() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture
def store(persistence, settings) -> TaskStore:
    return TaskStore(persistence, settings)


@pytest.fixture
def file_store() -> FakeFileStore:
    return FakeFileStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sync(store, file_store, settings, clock) -> TaskSync:
    return TaskSync(
        store,
        file_store,
        settings,
        suppression_window=2.0,
        created_read_delay=0,
        initial_sync_pause=0,
        initial_sync_cooldown=300,
        clock=clock,
    )
