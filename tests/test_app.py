import os

import pytest

import app as app_module
from config import CFG


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(CFG, "SAVE_OUT", str(tmp_path / "world.json"))
    monkeypatch.setattr(CFG, "PREVIEW_OUT", str(tmp_path / "world_view.html"))
    with app_module.WORLD_LOCK:
        app_module.WORLD.update(app_module._new_world())
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as c:
        yield c


def _tile(state, x, y):
    return state["tiles"][(y - 1) * state["width"] + (x - 1)]


def test_state_starts_empty(client):
    state = client.get("/state").get_json()
    assert state["ok"] is True
    assert state["width"] == CFG.GRID_WIDTH
    assert set(state["tiles"]) == {0}
    assert state["pending"] is False


def test_add_then_remove_road(client):
    resp = client.post("/tiles", json={"x": 3, "y": 4})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["ok"] is True
    assert body["changed"] == [[3, 4]]
    assert body["actions"] == ["build_road"]
    assert _tile(client.get("/state").get_json(), 3, 4) == 16

    body = client.post("/tiles/remove", data={"x": "3", "y": "4"}).get_json()
    assert body["actions"] == ["destroy_road"]

    ticked = client.post("/tick", json={"delta_ms": 10000}).get_json()
    assert [3, 4] in ticked["changed"]
    assert _tile(client.get("/state").get_json(), 3, 4) == 0


@pytest.mark.parametrize("payload", [
    {"x": 0, "y": 1},
    {"y": 1},
    {"x": "a", "y": 1},
    {"x": 1, "y": 1, "tile_id": 9999},
])
def test_bad_edits_are_rejected(client, payload):
    resp = client.post("/tiles", json=payload)
    assert resp.status_code == 400
    assert resp.get_json()["ok"] is False


def test_stepped_edit_is_revealed_by_step(client):
    client.post("/tiles", json={"x": 3, "y": 4})
    body = client.post("/tiles", json={"x": 4, "y": 4, "stepped": True}).get_json()
    assert body["pending"] is True
    assert client.get("/state").get_json()["pending"] is True

    body = client.post("/step", json={"steps": 1000}).get_json()
    assert body["pending"] is False
    assert body["ok"] is True

    state = client.get("/state").get_json()
    assert state["pending"] is False
    assert (_tile(state, 3, 4), _tile(state, 4, 4)) == (4, 2)


def test_step_without_pending_solve(client):
    assert client.post("/step").status_code == 400


def test_save_and_load(client, tmp_path):
    client.post("/tiles", json={"x": 3, "y": 4})
    client.post("/tiles", json={"x": 4, "y": 4})
    saved = client.get("/save").get_json()
    assert saved["ok"] is True
    assert os.path.exists(tmp_path / "world.json")
    before = client.get("/state").get_json()

    with app_module.WORLD_LOCK:
        app_module.WORLD.update(app_module._new_world())
    loaded = client.post("/load", json={"save": saved["save"], "cottage": 5}).get_json()
    assert loaded["tiles"] == before["tiles"]
    assert loaded["seed"] == before["seed"]
    assert loaded["inventory"][str(app_module.CATALOG.lot_by_name("cottage").id)] == 5


def test_load_rejects_bad_documents(client):
    assert client.post("/load", json={"version": 9}).status_code == 400
    assert client.post("/load", data="nope").status_code == 400


def test_restart_with_inventory(client):
    client.post("/tiles", json={"x": 3, "y": 4})
    body = client.post("/restart", json={"inventory": {"shop": 0}}).get_json()
    assert body["ok"] is True
    state = client.get("/state").get_json()
    assert state["inventory"][str(app_module.CATALOG.lot_by_name("shop").id)] == 0


def test_view_and_progress(client, tmp_path):
    client.post("/tiles", json={"x": 3, "y": 4})
    page = client.get("/view")
    assert page.status_code == 200
    assert b"<svg" in page.data
    assert os.path.exists(tmp_path / "world_view.html")

    resp = client.get("/progress")
    assert resp.headers["Cache-Control"] == "no-store, max-age=0"
    snap = resp.get_json()
    assert snap["action"] == "add"
    assert snap["done"] is True
