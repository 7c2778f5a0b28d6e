import asyncio
import base64
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from giftcraft.core.exceptions import MediaStorageException
from giftcraft.models.project import ProjectRecord
from giftcraft.schemas.project import CURRENT_SCHEMA_VERSION, AudioData, AudioFile, Project, ProjectData
from giftcraft.services.persistence import PersistenceGateway, parse_data_url
from tests.conftest import SpyPersistence, stored_project


def _project(project_id="project_1_abc", name="Gift", schema_version=CURRENT_SCHEMA_VERSION, data=None, created=1):
    stamp = datetime(2026, 1, 1, 0, 0, created, tzinfo=timezone.utc)
    return Project(
        id=project_id,
        name=name,
        template_id="romantic",
        schema_version=schema_version,
        data=data or ProjectData(),
        created_at=stamp,
        updated_at=stamp,
    )


def _data_url(payload: bytes, mime="image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode()}"


def test_save_without_loop_writes_synchronously(persistence, project_repository):
    project = _project()

    assert persistence.save_project(project) is None

    assert persistence.pending_count == 0
    assert stored_project(project_repository, project.id) == project


def test_latest_snapshot_wins(persistence, project_repository):
    async def scenario():
        first = persistence.save_project(_project(name="first"))
        second = persistence.save_project(_project(name="second"))
        await asyncio.gather(first, second)

    asyncio.run(scenario())

    assert stored_project(project_repository, "project_1_abc").name == "second"
    assert persistence.pending_count == 0


def test_flush_writes_everything_pending(persistence, project_repository):
    async def scenario():
        persistence.save_project(_project("project_1_a"))
        persistence.save_project(_project("project_1_b"))
        written = persistence.flush_pending_writes()
        await persistence.wait_idle()
        return written

    written = asyncio.run(scenario())

    assert written == 2
    assert stored_project(project_repository, "project_1_a") is not None
    assert stored_project(project_repository, "project_1_b") is not None


def test_delete_drops_pending_write(persistence, project_repository):
    persistence.save_project(_project())

    async def scenario():
        persistence.save_project(_project(name="late edit"))
        await persistence.delete_project("project_1_abc")
        await persistence.wait_idle()

    asyncio.run(scenario())

    assert stored_project(project_repository, "project_1_abc") is None
    assert persistence.pending_count == 0


def test_failed_write_is_requeued(persistence, project_repository, monkeypatch):
    def locked(record):
        raise OperationalError("UPDATE projects", {}, Exception("database is locked"))

    monkeypatch.setattr(project_repository, "upsert", locked)
    persistence.save_project(_project())
    assert persistence.pending_count == 1

    monkeypatch.undo()
    assert persistence.flush_pending_writes() == 1
    assert stored_project(project_repository, "project_1_abc") is not None


def test_load_orders_by_creation_and_skips_unreadable(persistence, project_repository):
    persistence.save_project(_project("project_2_b", created=2))
    persistence.save_project(_project("project_1_a", created=1))
    project_repository.upsert(
        ProjectRecord(
            id="project_3_bad",
            name="Broken",
            template_id="romantic",
            schema_version=2,
            payload="{not json",
            created_at=datetime(2026, 1, 1, 0, 0, 3, tzinfo=timezone.utc),
        )
    )

    loaded = asyncio.run(persistence.load_projects())

    assert [p.id for p in loaded] == ["project_1_a", "project_2_b"]


def test_load_prefers_unwritten_snapshots(persistence, project_repository):
    persistence.save_project(_project(name="stored"))

    async def scenario():
        persistence._pending["project_1_abc"] = _project(name="pending")
        persistence._pending["project_9_new"] = _project("project_9_new", name="never written")
        return await persistence.load_projects()

    loaded = asyncio.run(scenario())

    assert [p.name for p in loaded] == ["pending", "never written"]


def test_load_failure_returns_empty_list(persistence, project_repository, monkeypatch):
    def broken():
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(project_repository, "list_ordered", broken)

    assert asyncio.run(persistence.load_projects()) == []


def test_load_migrates_legacy_rows(persistence, project_repository, media):
    legacy = Project.model_validate(
        {
            "id": "project_1_old",
            "name": "Old",
            "templateId": "romantic",
            "schemaVersion": 1,
            "data": {
                "audio": {
                    "global": {"id": "song", "filename": "song.mp3", "data": _data_url(b"mp3", "audio/mpeg")},
                    "screens": {"s1": {"id": "clip", "data": _data_url(b"ogg", "audio/ogg")}},
                }
            },
        }
    )
    persistence.save_project(legacy)

    async def scenario():
        loaded = await persistence.load_projects()
        return loaded, await media.list_project_media("project_1_old", "audio")

    loaded, stored_audio = asyncio.run(scenario())

    project = loaded[0]
    assert project.schema_version == CURRENT_SCHEMA_VERSION
    assert project.language == "en"
    assert project.data.audio.global_.mime == "audio/mpeg"
    assert "data" not in project.data.audio.global_.model_extra
    assert project.data.audio.screens["s1"].size == 3
    assert sorted(m["id"] for m in stored_audio) == ["clip", "song"]


def test_migration_keeps_inline_media_when_store_fails(project_repository, media, monkeypatch):
    async def refuse(*args, **kwargs):
        raise MediaStorageException("blob store unavailable")

    monkeypatch.setattr(media, "put_media", refuse)
    gateway = PersistenceGateway(project_repository, media=media)
    legacy = _project(
        schema_version=1,
        data=ProjectData(audio=AudioData(global_=AudioFile(id="song", data=_data_url(b"mp3", "audio/mpeg")))),
    )

    migrated = asyncio.run(gateway.migrate_if_needed(legacy))

    assert migrated.schema_version == CURRENT_SCHEMA_VERSION
    assert migrated.data.audio.global_.model_extra["data"].startswith("data:audio/mpeg")


def test_current_schema_is_not_migrated(persistence):
    project = _project()

    assert asyncio.run(persistence.migrate_if_needed(project)) is project


def test_parse_data_url():
    assert parse_data_url(_data_url(b"abc", "image/webp")) == ("image/webp", b"abc")


@pytest.mark.parametrize(
    "value",
    [
        "not a data url",
        "data:image/png,plain-text",
        "data:image/png;base64,***",
    ],
)
def test_parse_data_url_rejects_malformed_input(value):
    with pytest.raises(ValueError):
        parse_data_url(value)


def test_save_during_delete_is_dropped(slow_delete_repository, media):
    gateway = SpyPersistence(slow_delete_repository, media=media)
    gateway.save_project(_project())

    async def scenario():
        deleting = asyncio.ensure_future(gateway.delete_project("project_1_abc"))
        await asyncio.sleep(0.05)
        assert gateway.is_deleting("project_1_abc") is True

        dropped = gateway.save_project(_project(name="late autosave"))
        await deleting
        await gateway.wait_idle()
        return dropped

    assert asyncio.run(scenario()) is None
    assert stored_project(slow_delete_repository, "project_1_abc") is None
    assert gateway.is_deleting("project_1_abc") is False
    assert gateway.pending_count == 0


def test_save_after_delete_writes_again(slow_delete_repository, media):
    gateway = SpyPersistence(slow_delete_repository, media=media)
    gateway.save_project(_project())

    async def scenario():
        await gateway.delete_project("project_1_abc")
        gateway.save_project(_project(name="recreated"))
        await gateway.wait_idle()

    asyncio.run(scenario())

    assert stored_project(slow_delete_repository, "project_1_abc").name == "recreated"
