import pytest
from fastapi.testclient import TestClient

from giftcraft.core.database import create_db_engine
from giftcraft.core.settings_provider import AppSettingsProvider
from giftcraft.main import create_app
from giftcraft.runtime import EditorRuntime


@pytest.fixture
def runtime(tmp_path):
    return EditorRuntime(
        engine=create_db_engine("sqlite://"),
        settings_provider=AppSettingsProvider(tmp_path / "settings.json"),
        autosave_delay_ms=50,
    )


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime)) as client:
        yield client


def _create(client, name="Gift A", template_id="romantic"):
    response = client.post("/api/v1/projects", json={"templateId": template_id, "name": name})
    assert response.status_code == 201
    return response.json()


def test_create_and_list(client):
    created = _create(client)

    listing = client.get("/api/v1/projects").json()

    assert listing["total"] == 1
    assert listing["currentProjectId"] == created["id"]
    assert listing["revision"] == 0
    assert listing["items"][0]["templateId"] == "romantic"


def test_current_project_lifecycle(client):
    created = _create(client)

    patched = client.patch("/api/v1/projects/current", json={"name": "Renamed"})
    assert patched.status_code == 200
    assert patched.json()["name"] == "Renamed"
    assert client.get("/api/v1/projects").json()["revision"] == 1

    saved = client.post("/api/v1/projects/current/save")
    assert saved.status_code == 200

    cleared = client.put("/api/v1/projects/current", json={"projectId": None})
    assert cleared.json() == {"currentProjectId": None, "revision": 0}
    assert client.get("/api/v1/projects/current").status_code == 404
    assert client.patch("/api/v1/projects/current", json={"name": "x"}).status_code == 404

    selected = client.put("/api/v1/projects/current", json={"projectId": created["id"]})
    assert selected.json()["currentProjectId"] == created["id"]
    assert client.get("/api/v1/projects/current").json()["name"] == "Renamed"


def test_select_unknown_project_is_404(client):
    response = client.put("/api/v1/projects/current", json={"projectId": "project_0_missing"})

    assert response.status_code == 404


def test_replace_project(client):
    created = _create(client)
    body = dict(created, name="Replaced")

    response = client.put(f"/api/v1/projects/{created['id']}", json=body)

    assert response.status_code == 200
    assert client.get(f"/api/v1/projects/{created['id']}").json()["name"] == "Replaced"


def test_replace_project_rejects_id_change(client):
    created = _create(client)

    response = client.put(f"/api/v1/projects/{created['id']}", json=dict(created, id="project_0_other"))

    assert response.status_code == 400


def test_replace_project_rejects_invalid_body(client):
    created = _create(client)

    response = client.put(f"/api/v1/projects/{created['id']}", json={"id": created["id"]})

    assert response.status_code == 422


def test_export_and_import(client):
    created = _create(client)

    exported = client.get(f"/api/v1/projects/{created['id']}/export")
    assert exported.status_code == 200
    assert "attachment" in exported.headers["content-disposition"]

    payload = exported.json()
    payload["id"] = "project_1_copy"
    imported = client.post("/api/v1/projects/import", json=payload)

    assert imported.status_code == 201
    assert imported.json()["id"] == "project_1_copy"
    assert client.get("/api/v1/projects").json()["total"] == 2


def test_import_garbage_is_422(client):
    response = client.post("/api/v1/projects/import", json={"garbage": True})

    assert response.status_code == 422
    assert client.get("/api/v1/projects").json()["total"] == 0


def test_delete_project(client):
    created = _create(client)

    assert client.delete(f"/api/v1/projects/{created['id']}").status_code == 204
    assert client.delete(f"/api/v1/projects/{created['id']}").status_code == 204
    assert client.get(f"/api/v1/projects/{created['id']}").status_code == 404
    assert client.get("/api/v1/projects").json()["currentProjectId"] is None


def test_projects_survive_restart(tmp_path):
    database_url = f"sqlite:///{tmp_path / 'giftcraft.db'}"

    def make_runtime():
        return EditorRuntime(
            engine=create_db_engine(database_url),
            settings_provider=AppSettingsProvider(tmp_path / "settings.json"),
            autosave_delay_ms=10_000,
        )

    with TestClient(create_app(make_runtime())) as client:
        created = _create(client)
        client.patch("/api/v1/projects/current", json={"name": "Edited before exit"})

    with TestClient(create_app(make_runtime())) as client:
        project = client.get(f"/api/v1/projects/{created['id']}").json()

    # the armed autosave is flushed on shutdown
    assert project["name"] == "Edited before exit"


def test_settings_endpoints(client):
    assert client.get("/api/v1/settings").json() == {"autosaveEnabled": True, "theme": "light"}

    updated = client.put("/api/v1/settings", json={"autosaveEnabled": False, "theme": "dark"})

    assert updated.json() == {"autosaveEnabled": False, "theme": "dark"}
    assert client.put("/api/v1/settings", json={"theme": "sepia"}).status_code == 422
