"""Shared fixtures: in-memory database, gateways, spies and a deterministic clock."""

import time
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from giftcraft.core.database import create_db_engine, create_session_factory, init_db
from giftcraft.core.exceptions import MediaStorageException
from giftcraft.core.settings_provider import AppSettingsProvider
from giftcraft.repositories.media_repository import MediaRepository
from giftcraft.repositories.project_repository import ProjectRepository
from giftcraft.schemas.project import Project
from giftcraft.services.media import MediaLifecycleManager
from giftcraft.services.persistence import PersistenceGateway
from giftcraft.services.project_store import ProjectStore
from giftcraft.services.validation import ValidationService


class TickingClock:
    """Returns a strictly increasing UTC time on every call."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class SpyMedia(MediaLifecycleManager):
    """Records revocations; optionally fails blob deletion."""

    def __init__(self, repository, fail_deletes: bool = False):
        super().__init__(repository)
        self.fail_deletes = fail_deletes
        self.revoked: List[str] = []

    def revoke_project_preview_urls(self, project_id: str) -> None:
        self.revoked.append(project_id)
        super().revoke_project_preview_urls(project_id)

    async def delete_all_media_for_project(self, project_id: str) -> None:
        if self.fail_deletes:
            raise MediaStorageException("blob store unavailable")
        await super().delete_all_media_for_project(project_id)

    async def delete_project_videos(self, project_id: str) -> None:
        if self.fail_deletes:
            raise MediaStorageException("blob store unavailable")
        await super().delete_project_videos(project_id)


class SpyPersistence(PersistenceGateway):
    """Records every project handed to save_project."""

    def __init__(self, repository, media=None):
        super().__init__(repository, media=media)
        self.saved: List[Project] = []

    def save_project(self, project: Project):
        self.saved.append(project)
        return super().save_project(project)


class SlowDeleteRepository(ProjectRepository):
    """Durable deletes take a while, leaving room for saves to race them."""

    delay = 0.3

    def delete(self, id: str) -> bool:
        time.sleep(self.delay)
        return super().delete(id)


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def project_repository(session_factory):
    return ProjectRepository(session_factory)


@pytest.fixture
def media_repository(session_factory):
    return MediaRepository(session_factory)


@pytest.fixture
def media(media_repository):
    return SpyMedia(media_repository)


@pytest.fixture
def persistence(project_repository, media):
    return SpyPersistence(project_repository, media=media)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store(persistence, media, clock):
    return ProjectStore(persistence, media, ValidationService(), clock=clock)


@pytest.fixture
def settings_provider(tmp_path):
    return AppSettingsProvider(tmp_path / "settings.json")


def stored_project(project_repository, project_id: str):
    """Durable copy of a project, or None."""
    record = project_repository.get_by_id(project_id)
    return Project.model_validate_json(record.payload) if record else None


@pytest.fixture
def slow_delete_repository(session_factory):
    return SlowDeleteRepository(session_factory)
