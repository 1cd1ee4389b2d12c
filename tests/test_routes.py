import pytest
from fastapi.testclient import TestClient

from capability_adapter.adapter import CapabilityAdapter
from capability_adapter.main import app, get_adapter

from .helpers import CREATE_POST, LIST_ITEMS, UPDATE_POST, StubTransport


@pytest.fixture
def stubs():
    return {
        "sandbox": StubTransport([LIST_ITEMS, CREATE_POST, UPDATE_POST]),
        "production": StubTransport([LIST_ITEMS, CREATE_POST]),
    }


@pytest.fixture
def client(test_settings, stubs, clock):
    adapter = CapabilityAdapter(test_settings, transport_factory=lambda env: stubs[env.value], clock=clock)
    app.dependency_overrides[get_adapter] = lambda: adapter
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert "x-request-id" in r.headers


def test_list_operations(client):
    r = client.get("/operations/sandbox")
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 3
    names = {op["name"]: op["category"] for op in body["operations"]}
    assert names["wordpress-create-post"] == "wordpress"
    assert body["failures"] == {}


def test_unknown_environment_is_rejected(client):
    assert client.get("/operations/staging").status_code == 422


def test_invoke(client, stubs):
    r = client.post("/operations/sandbox/list-items", json={})
    assert r.status_code == 200
    assert r.json()["result"] == {"echo": "list-items", "args": {"perPage": 10}}
    assert stubs["sandbox"].invocations == [("list-items", {"perPage": 10})]


def test_invoke_error_statuses(client, stubs):
    r = client.post("/operations/sandbox/wordpress-create-post", json={"status": "draft"})
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "validation_error"

    assert client.post("/operations/sandbox/nope", json={}).status_code == 404

    stubs["sandbox"].fail_invoke = 10
    for _ in range(3):
        assert client.post("/operations/sandbox/list-items", json={}).status_code == 502
    blocked = client.post("/operations/sandbox/list-items", json={})
    assert blocked.status_code == 503
    assert "retry-after" in blocked.headers


def test_discovery_failure_is_bad_gateway(client, stubs):
    stubs["production"].fail_list = 1
    r = client.get("/operations/production")
    assert r.status_code == 502
    assert r.json()["detail"]["code"] == "generation_error"


def test_sync_flow(client, stubs):
    client.post("/operations/sandbox/wordpress-create-post", json={"title": "Hello"})
    client.post("/operations/sandbox/list-items", json={"perPage": 2})

    changes = client.get("/sync/changes").json()
    assert changes["count"] == 2
    assert [c["ordinal"] for c in changes["changes"]] == [0, 1]

    r = client.post("/sync/apply")
    assert r.status_code == 200
    assert r.json()["applied"] == 2
    assert [n for n, _ in stubs["production"].invocations] == ["wordpress-create-post", "list-items"]
    assert client.get("/sync/changes").json()["count"] == 0


def test_partial_sync_keeps_changes(client, stubs):
    client.post("/operations/sandbox/wordpress-update-post", json={"id": 1})
    client.post("/operations/sandbox/list-items", json={})

    r = client.post("/sync/apply")
    assert r.status_code == 207
    body = r.json()
    assert (body["applied"], body["failed"]) == (1, 1)
    assert client.get("/sync/changes").json()["count"] == 2

    assert client.delete("/sync/changes").json()["cleared"] == 2


def test_cache_invalidate(client, stubs):
    client.get("/operations/sandbox")
    r = client.post("/cache/invalidate", params={"environment": "sandbox"})
    assert r.status_code == 200
    assert r.json()["invalidated"] == {"descriptors": 1, "operations": 1}
    client.get("/operations/sandbox")
    assert stubs["sandbox"].list_calls == 2

    everything = client.post("/cache/invalidate").json()
    assert everything["environment"] == "all"
