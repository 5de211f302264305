"""
Tests for the HTTP routes and the WebSocket protocol.
"""

import asyncio
import contextlib

import pytest
from fastapi.testclient import TestClient
from pontinhos_engine import engine
from pontinhos_engine.errors import InvariantViolation
from pontinhos_engine.ws import server
from pontinhos_engine.ws.events import INVALID_EVENT, parse_inbound_event


@pytest.fixture
def client():
    with TestClient(server.app) as test_client:
        yield test_client


def started_room(room_id, players=("p1", "p2")):
    assert engine.create_session(server.store, room_id, list(players)).success
    assert engine.start_round(server.store, room_id, seed=7).success


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_and_fetch_room(client):
    response = client.post("/rooms", json={"room_id": "srv-create", "player_ids": ["p1", "p2", "p3"]})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "lobby"
    assert body["player_order"] == ["p1", "p2", "p3"]
    assert "hand" not in body["players"]["p1"]

    again = client.post("/rooms", json={"room_id": "srv-create", "player_ids": ["p1", "p2"]})
    assert again.status_code == 400
    assert again.json()["detail"]["code"] == "ROOM_EXISTS"

    fetched = client.get("/rooms/srv-create", params={"viewer_id": "p2"})
    assert fetched.status_code == 200
    assert fetched.json()["players"]["p2"]["hand"] == []

    assert client.get("/rooms/srv-missing").status_code == 404


def test_create_room_rejects_bad_players(client):
    duplicate = client.post("/rooms", json={"room_id": "srv-dup", "player_ids": ["p1", "p1"]})
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"]["code"] == "INVALID_PLAYER_COUNT"

    too_few = client.post("/rooms", json={"room_id": "srv-few", "player_ids": ["p1"]})
    assert too_few.status_code == 422


def test_connect_sends_sanitized_state(client):
    started_room("srv-connect")
    with client.websocket_connect("/ws/srv-connect/p1") as ws:
        message = ws.receive_json()
        assert message["type"] == "state_full"
        state = message["state"]
        assert state["status"] == "playing"
        assert state["active_player"] == "p1"
        assert len(state["players"]["p1"]["hand"]) == 9
        assert "hand" not in state["players"]["p2"]
        assert state["players"]["p2"]["hand_count"] == 9

        ws.send_json({"type": "request_state"})
        assert ws.receive_json()["type"] == "state_full"


def test_unknown_player_is_refused(client):
    started_room("srv-refuse")
    with client.websocket_connect("/ws/srv-refuse/ghost") as ws:
        message = ws.receive_json()
        assert message["type"] == "error"
        assert message["code"] == "NOT_IN_ROOM"


def test_illegal_and_malformed_events(client):
    started_room("srv-errors")
    with client.websocket_connect("/ws/srv-errors/p2") as ws:
        ws.receive_json()

        ws.send_json({"type": "draw_stock"})
        message = ws.receive_json()
        assert message["type"] == "error"
        assert message["code"] == "NOT_YOUR_TURN"

        ws.send_json({"type": "fly"})
        assert ws.receive_json()["code"] == INVALID_EVENT

        ws.send_json({"type": "discard", "card": "ZZ"})
        assert ws.receive_json()["code"] == INVALID_EVENT

        ws.send_text("not json")
        assert ws.receive_json()["code"] == INVALID_EVENT


def test_check_go_out_hint(client):
    started_room("srv-hint")
    with client.websocket_connect("/ws/srv-hint/p1") as ws:
        ws.receive_json()
        ws.send_json({"type": "check_go_out"})
        message = ws.receive_json()
        assert message["type"] == "go_out_hint"
        assert isinstance(message["can_go_out"], bool)
        assert (message["scenario"] is None) == (message["reason"] is not None)


def test_commit_is_pushed_to_every_player(client):
    started_room("srv-push")
    with client.websocket_connect("/ws/srv-push/p1") as ws1, \
            client.websocket_connect("/ws/srv-push/p2") as ws2:
        ws1.receive_json()
        ws2.receive_json()

        ws2.send_json({"type": "knock"})

        seen_by_knocker = ws2.receive_json()["state"]
        assert seen_by_knocker["pause"]["player_id"] == "p2"
        assert seen_by_knocker["pause"]["staged_melds"] == []
        assert len(seen_by_knocker["players"]["p2"]["hand"]) == 10

        seen_by_other = ws1.receive_json()["state"]
        assert seen_by_other["pause"]["player_id"] == "p2"
        assert "staged_melds" not in seen_by_other["pause"]


def test_parse_inbound_event():
    event = parse_inbound_event({"type": "lay_down", "melds": [["5s", "6S", "7S"]]})
    assert event.melds == [["5S", "6S", "7S"]]

    with pytest.raises(ValueError):
        parse_inbound_event({"type": "lay_down", "melds": [["5S", "6S"]]})
    with pytest.raises(ValueError):
        parse_inbound_event(["draw_stock"])
    with pytest.raises(ValueError):
        parse_inbound_event({})


def test_reaper_keeps_sweeping_after_a_failure(monkeypatch):
    """One broken sweep is logged; the timer keeps running for every other room."""
    sweeps = []

    def flaky_sweep(session_store, now=None):
        sweeps.append(now)
        if len(sweeps) == 1:
            raise InvariantViolation("room r1 lost a card")
        return []

    monkeypatch.setattr(server.knock, "reap_expired_windows", flaky_sweep)

    async def run_reaper():
        task = asyncio.create_task(server.run_knock_reaper(0))
        for _ in range(1000):
            if len(sweeps) >= 3:
                break
            await asyncio.sleep(0)
        alive = not task.done()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return alive

    assert asyncio.run(run_reaper()) is True
    assert len(sweeps) >= 3
