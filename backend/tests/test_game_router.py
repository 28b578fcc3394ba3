import pytest
from starlette.websockets import WebSocketDisconnect


def _create(client, game, host="ann", options=None):
    resp = client.post(f"/api/rooms/{game}", json={"host_name": host, "options": options or {}})
    assert resp.status_code == 201
    return resp.json()["room_code"]


def _join(client, game, code, name, **extra):
    resp = client.post(f"/api/rooms/{game}/{code}/join", json={"player_name": name, **extra})
    assert resp.status_code == 200, resp.text
    return resp.json()


def _act(client, game, code, action, player, **args):
    return client.post(f"/api/rooms/{game}/{code}/actions/{action}", json={"player": player, "args": args})


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_create_join_and_read(client):
    code = _create(client, "sketch")
    body = _join(client, "sketch", code.lower(), "bob")
    assert body == {"room_code": code, "player_name": "bob", "attempts": 1}

    room = client.get(f"/api/rooms/sketch/{code}").json()
    assert room["game"] == "sketch"
    assert [p["name"] for p in room["room"]["players"]] == ["ann", "bob"]
    assert room["errors"] == []


def test_unknown_game_and_room(client):
    assert client.post("/api/rooms/poker", json={"host_name": "ann"}).status_code == 404
    assert client.get("/api/rooms/sketch/ZZZZ").status_code == 404
    assert client.post("/api/rooms/sketch/ZZZZ/join", json={"player_name": "bob"}).status_code == 404


def test_action_errors_map_to_status_codes(client):
    code = _create(client, "sketch")
    _join(client, "sketch", code, "bob")
    assert _act(client, "sketch", code, "start_game", "bob").status_code == 403
    assert _act(client, "sketch", code, "fly", "ann").status_code == 404
    assert _act(client, "sketch", code, "next_round", "ann").status_code == 409

    resp = _act(client, "sketch", code, "start_game", "ann")
    assert resp.status_code == 200
    assert resp.json()["room"]["status"] == "playing"


def test_empty_catalog_is_unprocessable(client, make_ctx):
    from main import app
    from routers.game_router import get_action_context

    code = _create(client, "sketch")
    _join(client, "sketch", code, "bob")
    app.dependency_overrides[get_action_context] = lambda: make_ctx(words=lambda: [])
    resp = _act(client, "sketch", code, "start_game", "ann")
    assert resp.status_code == 422
    assert resp.json()["detail"]["reason"] == "empty"


def test_outsider_cards_are_private(client):
    code = _create(client, "outsider")
    for name in ("bob", "cat", "dan"):
        _join(client, "outsider", code, name)
    room = _act(client, "outsider", code, "start_game", "ann").json()["room"]
    assert room["match"]["secret"] is None
    assert "is_outsider" not in room["players"][0]

    cards = {
        name: client.get(f"/api/rooms/outsider/{code}/card", params={"player": name}).json()
        for name in ("ann", "bob", "cat", "dan")
    }
    outsiders = [n for n, c in cards.items() if c["is_outsider"]]
    assert len(outsiders) == 1
    assert cards[outsiders[0]]["all_locations"] == ["Beach", "Bank", "Zoo"]
    insider_locations = {c["location"] for c in cards.values() if not c["is_outsider"]}
    assert len(insider_locations) == 1

    missing = client.get(f"/api/rooms/outsider/{code}/card", params={"player": "zed"})
    assert missing.status_code == 409


def test_reset_and_delete(client):
    code = _create(client, "board_race", options={"teams": ["Red", "Blue"]})
    _join(client, "board_race", code, "bob", team=1)
    assert _act(client, "board_race", code, "start_round", "ann").status_code == 200

    assert client.post(f"/api/rooms/board_race/{code}/reset", json={"player": "bob"}).status_code == 403
    room = client.post(f"/api/rooms/board_race/{code}/reset", json={"player": "ann"}).json()["room"]
    assert room["status"] == "waiting" and room["round"] is None
    assert room["teams"][1]["players"] == ["bob"]

    assert client.delete(f"/api/rooms/board_race/{code}", params={"player": "bob"}).status_code == 403
    assert client.delete(f"/api/rooms/board_race/{code}", params={"player": "ann"}).status_code == 204
    assert client.get(f"/api/rooms/board_race/{code}").status_code == 404


# ── WebSocket ─────────────────────────────────────────────────────────────────

def test_ws_unknown_room_is_closed(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/sketch/ZZZZ?player=ann") as ws:
            ws.receive_json()
    assert exc.value.code == 4404


def test_ws_snapshot_ping_and_errors(client):
    code = _create(client, "sketch")
    _join(client, "sketch", code, "bob")
    with client.websocket_connect(f"/ws/sketch/{code}?player=bob") as ws:
        first = ws.receive_json()
        assert first["type"] == "room_update"
        assert first["room"]["room_code"] == code

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}

        ws.send_json({"type": "dance"})
        assert ws.receive_json()["code"] == "UNKNOWN_TYPE"

        ws.send_json({"type": "action", "data": {"action": "start_game"}})
        assert ws.receive_json()["code"] == "NOT_HOST"


def test_ws_forwards_room_updates(client):
    code = _create(client, "sketch")
    _join(client, "sketch", code, "bob")
    with client.websocket_connect(f"/ws/sketch/{code}?player=bob") as ws:
        ws.receive_json()
        assert _act(client, "sketch", code, "start_game", "ann").status_code == 200
        update = ws.receive_json()
        assert update["type"] == "room_update"
        assert update["room"]["status"] == "playing"


def test_games_listing(client):
    games = client.get("/api/games").json()
    assert set(games) == {"board_race", "word_grid", "sketch", "outsider"}
    assert "freeze_word" in games["board_race"]
    assert "guess_secret" in games["outsider"]


# ── Malformed client input ────────────────────────────────────────────────────

def _word_grid_room(client):
    code = _create(client, "word_grid", options={"host_team": "red", "host_spymaster": True})
    _join(client, "word_grid", code, "bob", team="blue", as_spymaster=True)
    return code


@pytest.mark.parametrize("options", [
    {"mode": "solo"},
    {"host_team": "green"},
    {"turn_duration": "long"},
])
def test_bad_word_grid_options_are_rejected(client, options):
    resp = client.post("/api/rooms/word_grid", json={"host_name": "ann", "options": options})
    assert resp.status_code == 409


@pytest.mark.parametrize("options", [
    {"teams": "Red"},
    {"golden_squares": ["x"]},
    {"host_team": "first"},
])
def test_bad_board_race_options_are_rejected(client, options):
    resp = client.post("/api/rooms/board_race", json={"host_name": "ann", "options": options})
    assert resp.status_code == 409


def test_bad_join_team_is_rejected(client):
    code = _word_grid_room(client)
    resp = client.post(f"/api/rooms/word_grid/{code}/join", json={"player_name": "cat", "team": "green"})
    assert resp.status_code == 409


def test_bad_starting_team_is_rejected(client):
    code = _word_grid_room(client)
    resp = _act(client, "word_grid", code, "start_game", "ann", starting_team="green")
    assert resp.status_code == 409
    assert client.get(f"/api/rooms/word_grid/{code}").json()["room"]["status"] == "setup"


def test_bad_secret_mode_is_rejected(client):
    code = _create(client, "outsider")
    for name in ("bob", "cat"):
        _join(client, "outsider", code, name)
    assert _act(client, "outsider", code, "start_game", "ann", mode="bogus").status_code == 409
    assert _act(client, "outsider", code, "start_game", "ann", outsider_count="many").status_code == 409


def test_bad_strokes_are_rejected(client):
    code = _create(client, "sketch")
    _join(client, "sketch", code, "bob")
    _act(client, "sketch", code, "start_game", "ann")
    resp = _act(client, "sketch", code, "draw", "ann", strokes=[{"points": "nope"}])
    assert resp.status_code == 409
    assert client.get(f"/api/rooms/sketch/{code}").json()["room"]["round"]["drawing"] == []


def test_ws_bad_input_keeps_socket_open(client):
    code = _create(client, "outsider")
    for name in ("bob", "cat"):
        _join(client, "outsider", code, name)
    with client.websocket_connect(f"/ws/outsider/{code}?player=ann") as ws:
        ws.receive_json()

        ws.send_json({"type": "action", "data": {"action": "start_game", "args": {"mode": "bogus"}}})
        error = ws.receive_json()
        assert error["type"] == "error" and error["code"] == "ILLEGAL_TRANSITION"

        ws.send_text("not json")
        assert ws.receive_json()["code"] == "PARSE_ERROR"
        ws.send_json({"type": "action", "data": "start_game"})
        assert ws.receive_json()["code"] == "PARSE_ERROR"

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
