import pytest
from fastapi.testclient import TestClient

import api
from ip_locator.providers import create_provider_chain

from .conftest import IPWHO_OK, FakeSession


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("IP_LOCATOR_CACHE_DB", str(tmp_path / "api-cache.db"))
    with TestClient(api.app) as c:
        api.engine.chain = create_provider_chain(
            cache=api.engine.cache, session=FakeSession({"ipwho.is/8.8.8.8": IPWHO_OK})
        )
        yield c


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["batch_running"] is False


def test_locate_rejects_compressed_ipv6(client):
    assert client.get("/locate", params={"ip": "2001:db8::1"}).status_code == 400


def test_locate_and_cache_count(client):
    resp = client.get("/locate", params={"ip": "8.8.8.8"})
    assert resp.status_code == 200
    assert resp.json()["as"] == "AS15169"
    assert client.get("/cache").json() == {"cached_ips": 1}
    assert client.delete("/cache").json() == {"cached_ips": 0}


def test_locate_upstream_failure_is_502(client):
    resp = client.get("/locate", params={"ip": "9.9.9.9"})
    assert resp.status_code == 502


def test_batch_with_no_valid_ips_is_400(client):
    resp = client.post("/locate/batch", json={"ips": "nothing here"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "No valid IP addresses found"


def test_batch_returns_outcomes_clusters_and_options(client):
    resp = client.post("/locate/batch", json={"ips": ["<8.8.8.8, dns>"], "country": "Nowhere"})
    body = resp.json()
    assert resp.status_code == 200
    assert body["ips"] == ["8.8.8.8"]
    assert body["outcomes"] == []
    assert body["clusters"][0]["ips"] == ["8.8.8.8"]
    assert body["filter_options"]["country"] == ["United States"]
    assert body["summary"]["live_calls"] == 1


def test_single_lookup_and_cache_clear_conflict_with_running_batch(client):
    client.get("/locate", params={"ip": "8.8.8.8"})
    assert api.engine._batch_lock.acquire(blocking=False)
    try:
        assert client.get("/locate", params={"ip": "8.8.8.8"}).status_code == 409
        assert client.delete("/cache").status_code == 409
        assert client.post("/locate/batch", json={"ips": ["8.8.8.8"]}).status_code == 409
    finally:
        api.engine._batch_lock.release()
    assert client.get("/cache").json() == {"cached_ips": 1}
    assert client.get("/locate", params={"ip": "8.8.8.8"}).status_code == 200
