from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import websockets
from websockets.asyncio.server import ServerConnection, serve

from dealer.broadcast import Subscription
from dealer.cards import DECK_SIZE
from dealer.models import Channel, LobbyConfig
from dealer.session import SessionStore

LOGGER = logging.getLogger("card_lobby.host")

# One LobbyServer per process. It owns the only SessionStore and turns socket
# frames into store calls; the store itself never touches a socket.

PROTOCOL_VERSION = 1


class LobbyProtocolError(Exception):
    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg


@dataclass
class ClientSession:
    client_id: int
    websocket: ServerConnection
    subscriptions: Dict[str, Subscription] = field(default_factory=dict)
    forwarders: Dict[str, asyncio.Task] = field(default_factory=dict)
    retired: List[asyncio.Task] = field(default_factory=list)


class LobbyServer:
    def __init__(self, config: LobbyConfig, store: Optional[SessionStore] = None) -> None:
        self.config = config
        self.store = store or SessionStore(seed=config.seed)
        self.broadcaster = self.store.broadcaster
        self.sessions: Dict[int, ClientSession] = {}
        self.client_counter = 0

    async def start(self) -> None:
        async with serve(self._handle_connection, self.config.host, self.config.port):
            LOGGER.info("Lobby server listening on %s:%s", self.config.host, self.config.port)
            # Runs until the process is interrupted.
            await asyncio.Future()

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        session = self._open_session(websocket)
        LOGGER.info("Client %s connected", session.client_id)
        await self._send_json(websocket, "welcome", {
            "client_id": session.client_id,
            "channels": [channel.value for channel in Channel],
            "deck_size": DECK_SIZE,
        })
        try:
            async for raw in websocket:
                await self._handle_message(session, self._decode(raw))
        except websockets.ConnectionClosed:
            pass
        finally:
            await self._close_session(session)
        LOGGER.info("Client %s disconnected", session.client_id)

    def _open_session(self, websocket: ServerConnection) -> ClientSession:
        self.client_counter += 1
        session = ClientSession(client_id=self.client_counter, websocket=websocket)
        self.sessions[session.client_id] = session
        return session

    async def _close_session(self, session: ClientSession) -> None:
        for channel in list(session.subscriptions):
            self._drop_subscription(session, channel)
        self.sessions.pop(session.client_id, None)
        tasks, session.retired = session.retired, []
        if not tasks:
            return
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                LOGGER.error(
                    "Forwarder for client %s failed during teardown: %r",
                    session.client_id,
                    result,
                )

    # Operations ------------------------------------------------------

    async def _handle_message(self, session: ClientSession, message: Dict[str, object]) -> None:
        request_id = message.get("id")
        try:
            msg_type, payload = self._dispatch(session, message)
        except LobbyProtocolError as exc:
            LOGGER.warning(
                "Rejected message from client %s type=%s code=%s",
                session.client_id,
                message.get("type"),
                exc.code,
            )
            await self._send_error(session.websocket, exc.code, exc.msg, request_id)
            return
        if request_id is not None:
            payload["id"] = request_id
        await self._send_json(session.websocket, msg_type, payload)

    def _dispatch(self, session: ClientSession, message: Dict[str, object]) -> Tuple[str, Dict[str, object]]:
        if not message:
            raise LobbyProtocolError("BAD_JSON", "Expected a JSON object")
        msg_type = message.get("type")
        LOGGER.debug("Client %s sent %s", session.client_id, msg_type)
        if msg_type == "join":
            player = self.store.join(self._require_name(message))
            return "result", {"op": "join", "player": player.to_payload()}
        if msg_type == "leave":
            ok = self.store.leave(self._require_name(message))
            return "result", {"op": "leave", "ok": ok}
        if msg_type == "start":
            return "result", {"op": "start", "ok": self.store.start()}
        if msg_type == "players":
            return "result", {"op": "players", **self.store.roster_payload()}
        if msg_type == "subscribe":
            channel = self._require_channel(message)
            self._add_subscription(session, channel)
            return "subscribed", {"channel": channel}
        if msg_type == "unsubscribe":
            channel = self._require_channel(message)
            if channel not in session.subscriptions:
                raise LobbyProtocolError("NOT_SUBSCRIBED", f"Not subscribed to {channel}")
            self._drop_subscription(session, channel)
            return "unsubscribed", {"channel": channel}
        raise LobbyProtocolError("UNKNOWN_TYPE", "Unsupported message type")

    def _require_name(self, message: Dict[str, object]) -> str:
        name = message.get("name")
        if not isinstance(name, str):
            raise LobbyProtocolError("BAD_SCHEMA", "name required")
        return name

    def _require_channel(self, message: Dict[str, object]) -> str:
        raw = message.get("channel")
        try:
            return Channel(raw).value
        except ValueError:
            raise LobbyProtocolError("UNKNOWN_CHANNEL", f"Unknown channel: {raw}") from None

    # Subscriptions ---------------------------------------------------

    def _add_subscription(self, session: ClientSession, channel: str) -> None:
        if channel in session.subscriptions:
            raise LobbyProtocolError("ALREADY_SUBSCRIBED", f"Already subscribed to {channel}")
        subscription = self.broadcaster.subscribe(channel)
        session.subscriptions[channel] = subscription
        session.forwarders[channel] = asyncio.create_task(self._forward(session, subscription))
        LOGGER.info("Client %s subscribed to %s", session.client_id, channel)

    def _drop_subscription(self, session: ClientSession, channel: str) -> None:
        subscription = session.subscriptions.pop(channel, None)
        if subscription:
            subscription.close()
        task = session.forwarders.pop(channel, None)
        if task:
            task.cancel()
            session.retired.append(task)

    async def _forward(self, session: ClientSession, subscription: Subscription) -> None:
        try:
            async for payload in subscription:
                await self._send_json(session.websocket, "publish", {
                    "channel": subscription.channel,
                    "payload": payload,
                })
        finally:
            subscription.close()

    # Wire ------------------------------------------------------------

    async def _send_json(self, websocket: ServerConnection, msg_type: str, payload: Dict[str, object]) -> None:
        frame = self._envelope(msg_type, payload)
        try:
            await websocket.send(frame)
        except websockets.ConnectionClosed:
            LOGGER.debug("Dropped %s frame for a closed connection", msg_type)

    async def _send_error(
        self,
        websocket: ServerConnection,
        code: str,
        msg: str,
        request_id: Optional[object] = None,
    ) -> None:
        payload: Dict[str, object] = {"code": code, "msg": msg}
        if request_id is not None:
            payload["id"] = request_id
        await self._send_json(websocket, "error", payload)

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        stamp = datetime.now(timezone.utc).isoformat()
        return json.dumps({"type": msg_type, "v": PROTOCOL_VERSION, "ts": stamp, **payload})

    def _decode(self, raw) -> Dict[str, object]:
        try:
            message = json.loads(raw)
        except (ValueError, RecursionError):
            # Covers bad JSON, undecodable binary frames and absurd nesting.
            return {}
        return message if isinstance(message, dict) else {}
