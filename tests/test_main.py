import pytest
from fastapi.testclient import TestClient

from docksupervisor.config import Config
from docksupervisor.engine import Instance
from docksupervisor.main import build_registry, create_app
from docksupervisor.persistence import DirectoryPersister, NullPersister
from tests.fakes import FakeEngine


@pytest.fixture
def engine():
    return FakeEngine(
        instances=[Instance(id="abc123", name="/web1", config={"Image": "nginx"}, host_config={})]
    )


@pytest.fixture
def client(engine, registry):
    app = create_app(engine=engine, registry=registry, supervise=False)
    with TestClient(app) as client:
        yield client


def test_list_empty(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == []


def test_register_container(client, registry):
    response = client.post("/", data={"id": "web1"}, follow_redirects=False)

    assert response.status_code == 201
    assert response.headers["location"] == "/web1"
    assert registry.get("web1") == ({"Image": "nginx"}, True)
    assert client.get("/").json() == ["web1"]


def test_register_strips_slashes(client, registry):
    response = client.post("/", data={"id": "/web1/"}, follow_redirects=False)

    assert response.status_code == 201
    assert response.headers["location"] == "/web1"


def test_register_existing_redirects(client, registry):
    registry.add("web1", {"Image": "old"})

    response = client.post("/", data={"id": "web1"}, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/web1"
    assert registry.get("web1") == ({"Image": "old"}, True)


def test_register_without_id_is_bad_request(client):
    response = client.post("/", data={})
    assert response.status_code == 400


def test_register_unknown_container_is_bad_request(client, registry):
    response = client.post("/", data={"id": "missing"})

    assert response.status_code == 400
    assert len(registry) == 0


def test_get_configuration(client, registry):
    registry.add("web1", {"Image": "nginx", "Env": ["A=1"]})

    response = client.get("/web1")

    assert response.status_code == 200
    assert response.json() == {"Image": "nginx", "Env": ["A=1"]}


def test_get_empty_configuration_is_not_404(client, registry):
    registry.add("web1", {})

    response = client.get("/web1")

    assert response.status_code == 200
    assert response.json() == {}


def test_get_missing_configuration(client):
    response = client.get("/web1")
    assert response.status_code == 404
    assert response.json() == {"detail": "Not found"}


def test_delete_configuration(client, registry, engine):
    registry.add("web1", {"Image": "nginx"})

    response = client.delete("/web1")

    assert response.status_code == 200
    assert response.json() == {"status": "deleted", "name": "web1"}
    assert registry.get("web1") == (None, False)
    # unregistering never touches the running container
    assert engine.calls == []


def test_delete_missing_configuration(client):
    response = client.delete("/web1")
    assert response.status_code == 404


def test_status(client, registry):
    registry.add("web1", {"Image": "nginx"})

    response = client.get("/api/status")

    assert response.status_code == 200
    data = response.json()
    assert data["running"] is False
    assert data["supervised"] == 1
    assert data["events"]["restarted"] == 0


def test_build_registry_loads_persisted_state(tmp_path):
    DirectoryPersister(tmp_path).save("web1", {"Image": "nginx"})

    registry = build_registry(Config(persist_dir=tmp_path))

    assert isinstance(registry.persister, DirectoryPersister)
    assert registry.get("web1") == ({"Image": "nginx"}, True)


def test_build_registry_without_persist_dir(tmp_path):
    registry = build_registry(Config(persist_dir=tmp_path / "missing"))

    assert isinstance(registry.persister, NullPersister)
    assert len(registry) == 0


def test_build_registry_sqlite_backend(tmp_path):
    registry = build_registry(Config(persist_dir=tmp_path, persist_backend="sqlite"))
    registry.add("web1", {"Image": "nginx"})

    reloaded = build_registry(Config(persist_dir=tmp_path, persist_backend="SQLite"))

    assert reloaded.get("web1") == ({"Image": "nginx"}, True)
    assert (tmp_path / "containers.db").exists()


def test_unknown_persist_backend_rejected(tmp_path):
    with pytest.raises(ValueError):
        Config(persist_dir=tmp_path, persist_backend="redis")
