"""Tests for the FastAPI WebSocket gateway."""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from xoduel.config import Settings
from xoduel.gateway import _pump, create_app


@pytest.fixture
def client():
    app = create_app(Settings(log_level="WARNING"))
    with TestClient(app) as test_client:
        yield test_client


def connected(ws):
    hello = ws.receive_json()
    assert hello["type"] == "connected"
    assert hello["connectionId"]
    return ws


def start_game(host, guest):
    host.send_json({"type": "create-room", "displayName": "Ana"})
    created = host.receive_json()
    assert created["type"] == "room-created"
    code = created["code"]

    guest.send_json({"type": "join-room", "code": code, "displayName": "Bia"})
    assert guest.receive_json()["type"] == "room-joined"
    assert guest.receive_json()["type"] == "game-started"
    assert host.receive_json() == {"type": "opponent-joined", "name": "Bia"}
    assert host.receive_json()["type"] == "game-started"
    return code


def test_create_room_and_inspect(client):
    with client.websocket_connect("/ws") as ws:
        connected(ws)
        ws.send_json({"type": "create-room", "displayName": "Ana"})
        created = ws.receive_json()
        assert created["type"] == "room-created"
        assert created["mark"] == "X"
        code = created["code"]
        assert len(code) == 5 and code.isalpha() and code.isupper()

        inspect = client.get(f"/api/room/{code}")
        assert inspect.status_code == 200
        details = inspect.json()
        assert details["code"] == code
        assert details["phase"] == "waiting-for-guest"
        assert details["available"] is True
        assert details["hostName"] == "Ana"

        health = client.get("/healthz").json()
        assert health == {"status": "ok", "rooms": 1}


def test_inspect_missing_room_returns_404(client):
    missing = client.get("/api/room/INVALID")
    assert missing.status_code == 404


def test_full_game_over_websocket(client):
    with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
        connected(host)
        connected(guest)
        start_game(host, guest)

        for ws, index in ((host, 0), (guest, 3), (host, 1), (guest, 4)):
            ws.send_json({"type": "submit-move", "cellIndex": index})
            for peer in (host, guest):
                applied = peer.receive_json()
                assert applied["type"] == "move-applied"
                assert applied["cellIndex"] == index

        host.send_json({"type": "submit-move", "cellIndex": 2})
        for peer in (host, guest):
            assert peer.receive_json()["type"] == "move-applied"
            ended = peer.receive_json()
            assert ended["type"] == "game-ended"
            assert ended["outcome"] == "win"
            assert ended["winningMark"] == "X"
            assert ended["winnerName"] == "Ana"

        guest.send_json({"type": "request-rematch"})
        assert host.receive_json()["type"] == "rematch-requested"
        host.send_json({"type": "accept-rematch"})
        for peer in (host, guest):
            assert peer.receive_json() == {"type": "room-reset", "firstTurn": "X"}


def test_rejections_go_to_sender_only(client):
    with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
        connected(host)
        connected(guest)
        start_game(host, guest)

        guest.send_json({"type": "submit-move", "cellIndex": 4})
        rejected = guest.receive_json()
        assert rejected["type"] == "error"
        assert rejected["intent"] == "submit-move"
        assert rejected["code"] == "NotYourTurn"

        host.send_json({"type": "submit-move", "cellIndex": 9})
        assert host.receive_json()["code"] == "IllegalCell"

        # the guest saw nothing from the host's rejected move
        host.send_json({"type": "send-chat", "text": "good luck"})
        assert guest.receive_json() == {
            "type": "chat-received",
            "senderName": "Ana",
            "text": "good luck",
        }


def test_join_errors(client):
    with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
        connected(host)
        connected(guest)

        guest.send_json({"type": "join-room", "code": "QQQQQ", "displayName": "Bia"})
        assert guest.receive_json() == {
            "type": "join-error",
            "code": "RoomNotFound",
            "reason": "Room not found",
        }

        code = start_game(host, guest)
        with client.websocket_connect("/ws") as third:
            connected(third)
            third.send_json({"type": "join-room", "code": code, "displayName": "Cris"})
            rejected = third.receive_json()
            assert rejected["type"] == "join-error"
            assert rejected["code"] == "RoomFull"


def test_malformed_payloads_keep_connection_open(client):
    with client.websocket_connect("/ws") as ws:
        connected(ws)
        ws.send_text("not json")
        assert ws.receive_json()["code"] == "InvalidIntent"

        ws.send_json({"type": "teleport"})
        assert ws.receive_json()["code"] == "InvalidIntent"

        ws.send_json({"type": "submit-move", "cellIndex": "4"})
        rejected = ws.receive_json()
        assert rejected["code"] == "InvalidIntent"
        assert rejected["intent"] == "submit-move"

        ws.send_json({"type": "create-room", "displayName": ""})
        assert ws.receive_json()["code"] == "InvalidName"

        ws.send_bytes(b"\x00\x01")
        assert ws.receive_json()["code"] == "InvalidIntent"

        ws.send_json({"type": "create-room", "displayName": "Ana"})
        assert ws.receive_json()["type"] == "room-created"


@pytest.mark.parametrize("leaver", ["host", "guest"])
def test_disconnect_notifies_opponent_and_removes_room(client, leaver):
    with client.websocket_connect("/ws") as staying:
        connected(staying)
        with client.websocket_connect("/ws") as leaving:
            connected(leaving)
            if leaver == "host":
                code = start_game(leaving, staying)
            else:
                code = start_game(staying, leaving)

        assert staying.receive_json() == {"type": "opponent-disconnected"}
        assert client.app.state.registry.find_by_code(code) is None
        assert client.get(f"/api/room/{code}").status_code == 404


def test_leave_room_frees_connection(client):
    with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
        connected(host)
        connected(guest)
        start_game(host, guest)

        guest.send_json({"type": "leave-room"})
        assert host.receive_json() == {"type": "opponent-disconnected"}

        guest.send_json({"type": "create-room", "displayName": "Bia"})
        assert guest.receive_json()["type"] == "room-created"


def test_binary_frame_does_not_end_the_game(client):
    with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
        connected(host)
        connected(guest)
        code = start_game(host, guest)

        guest.send_bytes(b'{"type": "send-chat", "text": "hi"}')
        rejected = guest.receive_json()
        assert rejected["type"] == "error"
        assert rejected["code"] == "InvalidIntent"

        host.send_json({"type": "submit-move", "cellIndex": 4})
        for peer in (host, guest):
            assert peer.receive_json()["type"] == "move-applied"
        assert client.get(f"/api/room/{code}").json()["phase"] == "active"


class _BrokenSocket:
    def __init__(self, exc):
        self.exc = exc
        self.attempts = 0

    async def send_json(self, message):
        self.attempts += 1
        raise self.exc


@pytest.mark.parametrize("exc", [OSError("reset"), RuntimeError("closed")])
def test_writer_stops_quietly_when_send_fails(exc):
    socket = _BrokenSocket(exc)

    async def run():
        queue = asyncio.Queue()
        queue.put_nowait({"type": "connected"})
        queue.put_nowait({"type": "room-created"})
        await _pump(socket, queue)

    asyncio.run(run())
    assert socket.attempts == 1
