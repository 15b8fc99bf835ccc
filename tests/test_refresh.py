import json

from pronostics.services.refresh_broadcaster import RefreshBroadcaster, refresh_broadcaster


def test_broadcast_reaches_every_subscriber():
    broadcaster = RefreshBroadcaster()
    first = broadcaster.subscribe()
    second = broadcaster.subscribe()

    signal = broadcaster.broadcast()

    assert signal["connected_clients"] == 2
    for client_queue in (first, second):
        message = client_queue.get_nowait()
        assert message["type"] == "refresh_games"
        assert message["signal_id"] == signal["signal_id"]
        assert message["timestamp"]


def test_unsubscribe():
    broadcaster = RefreshBroadcaster()
    client_queue = broadcaster.subscribe()
    broadcaster.unsubscribe(client_queue)

    assert broadcaster.broadcast()["connected_clients"] == 0
    assert client_queue.empty()


def test_full_queue_drops_client():
    broadcaster = RefreshBroadcaster(queue_size=1)
    stuck = broadcaster.subscribe()
    broadcaster.broadcast()

    signal = broadcaster.broadcast()

    assert signal["connected_clients"] == 0
    assert broadcaster.connected_clients == 0
    assert stuck.qsize() == 1


def test_signal_ids_are_unique():
    broadcaster = RefreshBroadcaster()
    assert broadcaster.broadcast()["signal_id"] != broadcaster.broadcast()["signal_id"]


def test_stream_frames():
    broadcaster = RefreshBroadcaster()
    client_queue = broadcaster.subscribe()
    stream = broadcaster.stream(client_queue, keepalive_seconds=0.01)

    assert next(stream) == ":ok\n\n"
    assert next(stream) == ":keep-alive\n\n"

    signal = broadcaster.broadcast()
    frame = next(stream)
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):])["signal_id"] == signal["signal_id"]

    stream.close()
    assert broadcaster.connected_clients == 0


def test_sse_endpoint(client):
    res = client.get("/api/refresh-games-cards")
    assert res.status_code == 200
    assert res.mimetype == "text/event-stream"
    assert res.headers["Cache-Control"] == "no-cache"

    first = next(iter(res.response))
    if isinstance(first, bytes):
        first = first.decode()
    assert first == ":ok\n\n"
    assert refresh_broadcaster.connected_clients >= 1

    res.close()


def test_trigger_refresh_endpoint(client):
    client_queue = refresh_broadcaster.subscribe()
    try:
        res = client.post("/api/trigger-frontend-refresh")
        assert res.status_code == 200
        data = res.get_json()
        assert data["success"] is True
        assert data["connected_clients"] >= 1
        assert client_queue.get_nowait()["signal_id"] == data["signal_id"]
    finally:
        refresh_broadcaster.unsubscribe(client_queue)


def test_socketio_connect_receives_live_games(sio_client):
    received = sio_client.get_received("/scores")
    assert any(event["name"] == "live_games_data" for event in received)


def test_socketio_receives_refresh(client, sio_client):
    sio_client.get_received("/scores")

    res = client.post("/api/trigger-frontend-refresh")
    signal_id = res.get_json()["signal_id"]

    received = sio_client.get_received("/scores")
    refreshes = [event for event in received if event["name"] == "refresh_games"]
    assert refreshes
    assert refreshes[0]["args"][0]["signal_id"] == signal_id


def test_socketio_game_room_gets_score_updates(client, sio_client, football_setup):
    from pronostics.socketio_handlers import broadcast_score_update

    game = football_setup["game"]
    sio_client.emit("subscribe_game", {"game_id": game.id}, namespace="/scores")
    received = sio_client.get_received("/scores")
    assert any(event["name"] == "game_update" for event in received)

    game.mark_live()
    broadcast_score_update(game)

    received = sio_client.get_received("/scores")
    updates = [event for event in received if event["name"] == "score_update"]
    assert updates[0]["args"][0]["status"] == "LIVE"
