import asyncio
import json
import logging

from dealer.models import LobbyConfig
from dealer.session import SessionStore
from lobby.server import ClientSession, LobbyServer


# Stands in for a ServerConnection: replays queued client frames, records replies.
class FakeConnection:
    def __init__(self, frames=()) -> None:
        self.frames = list(frames)
        self.outbox: list[str] = []

    async def send(self, frame: str) -> None:
        self.outbox.append(frame)

    async def __aiter__(self):
        for frame in self.frames:
            yield frame

    def messages(self) -> list[dict]:
        return [json.loads(frame) for frame in self.outbox]


class BrokenConnection(FakeConnection):
    async def send(self, frame: str) -> None:
        if '"publish"' in frame:
            raise RuntimeError("socket write failed")
        await super().send(frame)


def setup_server(seed: int = 42) -> tuple[LobbyServer, ClientSession, FakeConnection]:
    server = LobbyServer(LobbyConfig(seed=seed), store=SessionStore(seed=seed))
    websocket = FakeConnection()
    session = server._open_session(websocket)
    return server, session, websocket


def send(server: LobbyServer, session: ClientSession, message: dict) -> None:
    asyncio.run(server._handle_message(session, message))


def test_join_replies_with_player_and_echoes_id():
    server, session, websocket = setup_server()
    send(server, session, {"type": "join", "name": "A", "id": 7})

    reply = websocket.messages()[-1]
    assert reply["type"] == "result"
    assert reply["op"] == "join"
    assert reply["player"] == {"name": "A", "deck": []}
    assert reply["id"] == 7
    assert reply["v"] == 1
    assert [player.name for player in server.store.players()] == ["A"]


def test_leave_and_players_operations():
    server, session, websocket = setup_server()
    send(server, session, {"type": "join", "name": "A"})
    send(server, session, {"type": "join", "name": "B"})
    send(server, session, {"type": "leave", "name": "A"})
    send(server, session, {"type": "players"})

    leave_reply, players_reply = websocket.messages()[-2:]
    assert leave_reply["op"] == "leave" and leave_reply["ok"] is True
    assert players_reply["op"] == "players"
    assert [entry["name"] for entry in players_reply["players"]] == ["B"]


def test_start_reports_failure_on_empty_lobby():
    server, session, websocket = setup_server()
    send(server, session, {"type": "start"})
    reply = websocket.messages()[-1]
    assert reply["op"] == "start"
    assert reply["ok"] is False


def test_start_deals_through_the_store():
    server, session, websocket = setup_server()
    send(server, session, {"type": "join", "name": "A"})
    send(server, session, {"type": "start"})
    assert websocket.messages()[-1]["ok"] is True
    assert len(server.store.players()[0].deck) == 53


def test_bad_messages_return_error_codes():
    server, session, websocket = setup_server()
    send(server, session, {})
    send(server, session, {"type": "join"})
    send(server, session, {"type": "join", "name": 5, "id": "r1"})
    send(server, session, {"type": "dance"})
    send(server, session, {"type": "subscribe", "channel": "scores"})
    send(server, session, {"type": "unsubscribe", "channel": "players"})

    errors = websocket.messages()
    assert all(msg["type"] == "error" for msg in errors)
    assert [msg["code"] for msg in errors] == [
        "BAD_JSON",
        "BAD_SCHEMA",
        "BAD_SCHEMA",
        "UNKNOWN_TYPE",
        "UNKNOWN_CHANNEL",
        "NOT_SUBSCRIBED",
    ]
    assert errors[2]["id"] == "r1"
    assert server.store.players() == []


def test_decode_rejects_non_objects():
    server, _, _ = setup_server()
    assert server._decode("not json") == {}
    assert server._decode("[1, 2]") == {}
    assert server._decode('{"type": "start"}') == {"type": "start"}


def test_subscription_forwards_roster_publishes():
    async def scenario():
        server, session, websocket = setup_server()
        await server._handle_message(session, {"type": "subscribe", "channel": "players"})
        await server._handle_message(session, {"type": "subscribe", "channel": "players"})
        await server._handle_message(session, {"type": "join", "name": "A"})
        for _ in range(3):
            await asyncio.sleep(0)
        await server._close_session(session)
        return server, websocket.messages()

    server, messages = asyncio.run(scenario())
    types = [msg["type"] for msg in messages]
    assert types[0] == "subscribed"
    assert messages[1]["type"] == "error" and messages[1]["code"] == "ALREADY_SUBSCRIBED"
    published = [msg for msg in messages if msg["type"] == "publish"]
    assert len(published) == 1
    assert published[0]["channel"] == "players"
    assert published[0]["payload"] == {"players": [{"name": "A", "deck": []}]}
    assert server.broadcaster.listener_count() == 0
    assert server.sessions == {}


def test_unsubscribe_stops_forwarding():
    async def scenario():
        server, session, websocket = setup_server()
        await server._handle_message(session, {"type": "subscribe", "channel": "players"})
        await server._handle_message(session, {"type": "unsubscribe", "channel": "players"})
        await server._handle_message(session, {"type": "join", "name": "A"})
        for _ in range(3):
            await asyncio.sleep(0)
        return server, websocket.messages()

    server, messages = asyncio.run(scenario())
    assert [msg["type"] for msg in messages] == ["subscribed", "unsubscribed", "result"]
    assert server.broadcaster.listener_count("players") == 0


def test_connection_lifecycle_cleans_up():
    async def scenario():
        server = LobbyServer(LobbyConfig(seed=1))
        websocket = FakeConnection([
            json.dumps({"type": "subscribe", "channel": "changePlayerDeck"}),
            json.dumps({"type": "join", "name": "A"}),
            json.dumps({"type": "start"}),
        ])
        await server._handle_connection(websocket)
        return server, websocket.messages()

    server, messages = asyncio.run(scenario())
    assert messages[0]["type"] == "welcome"
    assert messages[0]["channels"] == ["players", "changePlayerDeck"]
    assert messages[0]["deck_size"] == 53
    assert [msg.get("op") for msg in messages if msg["type"] == "result"] == ["join", "start"]
    assert not any(msg["type"] == "publish" for msg in messages)
    assert server.sessions == {}
    assert server.broadcaster.listener_count() == 0


def test_undecodable_frames_get_bad_json_and_connection_survives():
    async def scenario():
        server = LobbyServer(LobbyConfig(seed=3))
        websocket = FakeConnection([
            b"\xff\xfe\xfd",
            "[" * 100_000 + "]" * 100_000,
            json.dumps({"type": "players"}),
        ])
        await server._handle_connection(websocket)
        return websocket.messages()

    messages = asyncio.run(scenario())
    assert [msg["type"] for msg in messages] == ["welcome", "error", "error", "result"]
    assert [msg.get("code") for msg in messages[1:3]] == ["BAD_JSON", "BAD_JSON"]
    assert messages[-1]["op"] == "players"


def test_decode_swallows_binary_and_deep_nesting():
    server, _, _ = setup_server()
    assert server._decode(b"\xff\xfe\xfd") == {}
    assert server._decode("[" * 100_000 + "]" * 100_000) == {}


def test_close_session_collects_failed_forwarders(caplog):
    async def scenario():
        server = LobbyServer(LobbyConfig(seed=5))
        websocket = BrokenConnection()
        session = server._open_session(websocket)
        await server._handle_message(session, {"type": "subscribe", "channel": "players"})
        await server._handle_message(session, {"type": "join", "name": "A"})
        for _ in range(3):
            await asyncio.sleep(0)
        forwarder = session.forwarders["players"]
        await server._close_session(session)
        return server, session, forwarder

    with caplog.at_level(logging.ERROR, logger="card_lobby.host"):
        server, session, forwarder = asyncio.run(scenario())

    assert forwarder.done()
    assert session.retired == []
    assert server.sessions == {}
    assert "failed during teardown" in caplog.text
    assert "socket write failed" in caplog.text
