import pytest
from fastapi.testclient import TestClient

from api import main
from picklist.persistence import MemoryStore

CSV = "Team Number,Auto EPA,EPA\n254,10,30\n1678,8,33\n971,12,30\n"


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(main.app.state, "store", MemoryStore(), raising=False)
    monkeypatch.setattr(main, "_sessions", {})
    return TestClient(main.app)


@pytest.fixture
def sid(client):
    session_id = client.post("/sessions").json()["session_id"]
    assert client.post(f"/sessions/{session_id}/upload", json={"csv_text": CSV}).status_code == 200
    return session_id


def test_upload_and_table(client, sid):
    body = client.get(f"/sessions/{sid}/table", params={"chart": False}).json()
    assert [r["team"] for r in body["rows"]] == [254, 1678, 971]
    assert body["fields"] == ["Picklist Order", "Team", "Auto EPA", "EPA"]
    assert body["heatmap"] is None


def test_bad_csv_is_a_400(client, sid):
    response = client.post(f"/sessions/{sid}/upload", json={"csv_text": "Number,EPA\n1,2"})
    assert response.status_code == 400
    assert response.json()["type"] == "FormatError"


def test_unknown_session_is_a_404(client):
    assert client.get("/sessions/nope/table").status_code == 404


def test_computed_column_lifecycle(client, sid):
    response = client.post(f"/sessions/{sid}/computed", json={"name": "Score", "formula": "EPA * 2"})
    assert response.status_code == 200
    assert response.json()["fields"][-1] == "Score"

    bad = client.post(f"/sessions/{sid}/computed", json={"name": "Bad", "formula": "Speed + 1"})
    assert bad.status_code == 400
    assert "EPA" in bad.json()["available_columns"]

    assert client.delete(f"/sessions/{sid}/computed/Score").status_code == 200
    assert client.delete(f"/sessions/{sid}/computed/Score").status_code == 404


def test_sort_reorder_and_order_edits(client, sid):
    body = client.post(f"/sessions/{sid}/sort", json={"column": "EPA"}).json()
    assert body["sortDirection"] == "desc"
    assert body["teams"] == [1678, 254, 971]

    assert client.post(f"/sessions/{sid}/reorder", json={"index_from": 0, "index_to": 2}).json()["teams"] == [254, 971, 1678]
    assert client.post(f"/sessions/{sid}/reorder", json={"index_from": 0, "index_to": 9}).status_code == 400

    row = client.put(f"/sessions/{sid}/rows/971/order", json={"picklist_order": 1}).json()
    assert row == {"team": 971, "picklist_order": 1, "active": True}
    assert client.put(f"/sessions/{sid}/rows/42/order", json={"picklist_order": 1}).status_code == 404


def test_deactivate_blocks_order_edits(client, sid):
    assert client.post(f"/sessions/{sid}/rows/254/deactivate").json()["picklist_order"] == 999
    assert client.put(f"/sessions/{sid}/rows/254/order", json={"picklist_order": 2}).status_code == 409
    assert client.post(f"/sessions/{sid}/rows/254/reactivate").json()["picklist_order"] == 1


def test_update_and_export(client, sid):
    assert client.post(f"/sessions/{sid}/update", json={"csv_text": "Team,EPA\n971,40"}).status_code == 200
    response = client.get(f"/sessions/{sid}/export")
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.strip().splitlines()
    assert lines[0] == "Picklist Order,Team,Auto EPA,EPA"
    assert lines[3] == "3,971,12.0,40.0"


def test_saved_picklists(client, sid):
    assert client.post(f"/sessions/{sid}/picklists", json={"name": "has space"}).status_code == 400
    saved = client.post(f"/sessions/{sid}/picklists", json={"name": "quals"})
    assert saved.status_code == 201
    assert saved.json()["teams"] == 3

    listed = client.get(f"/sessions/{sid}/picklists").json()["picklists"]
    assert [p["name"] for p in listed] == ["quals"]
    assert client.post(f"/sessions/{sid}/picklists/quals/load").json()["rows"] == 3
    assert client.delete(f"/sessions/{sid}/picklists/quals").status_code == 200
    assert client.delete(f"/sessions/{sid}/picklists/quals").status_code == 404


def test_reattaching_restores_stored_state(client, sid):
    main._sessions.clear()
    body = client.post("/sessions", params={"session_id": sid}).json()
    assert body == {"session_id": sid, "restored": True}
    assert len(client.get(f"/sessions/{sid}/table").json()["rows"]) == 3


def test_remote_save_without_configuration_is_a_400(client, sid):
    assert client.post(f"/sessions/{sid}/remote", json={"name": "finals"}).status_code == 400


def test_create_session_reuses_a_live_session(client, sid):
    response = client.post("/sessions", params={"session_id": sid})
    assert response.status_code == 200
    assert response.json() == {"session_id": sid, "restored": False}


class _LockWatchingStore(MemoryStore):
    def __init__(self):
        super().__init__()
        self.loads_under_lock = []

    def load(self, key):
        self.loads_under_lock.append(main._sessions_lock.locked())
        return super().load(key)


def test_restore_runs_outside_the_session_registry_lock(client, monkeypatch):
    store = _LockWatchingStore()
    monkeypatch.setattr(main.app.state, "store", store, raising=False)
    assert client.post("/sessions", params={"session_id": "pit"}).status_code == 201
    assert store.loads_under_lock and not any(store.loads_under_lock)
