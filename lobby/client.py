#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import websockets
from websockets.asyncio.client import ClientConnection, connect

from dealer.cards import parse_card

LOGGER = logging.getLogger("card_lobby.client")

# LobbyClient is a terminal stand-in for a real front end: type commands,
# watch the roster and deals scroll past.

HELP = """Commands:
  join NAME       take a seat in the lobby
  leave NAME      leave the lobby
  start           shuffle and deal to everyone seated
  players         print the current roster
  sub CHANNEL     subscribe to players or changePlayerDeck
  unsub CHANNEL   stop a subscription
  help            show this text
  quit            close the connection"""


def parse_command(line: str) -> Optional[Dict[str, Any]]:
    """Turn a command line into a protocol message. Returns None for blank input."""
    parts = line.strip().split(maxsplit=1)
    if not parts:
        return None
    command = parts[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else ""
    if command in ("join", "leave"):
        if not arg:
            raise ValueError(f"{command} needs a player name")
        return {"type": command, "name": arg}
    if command in ("start", "players"):
        return {"type": command}
    if command in ("sub", "unsub"):
        if not arg:
            raise ValueError(f"{command} needs a channel")
        msg_type = "subscribe" if command == "sub" else "unsubscribe"
        return {"type": msg_type, "channel": arg}
    raise ValueError(f"Unknown command: {command}")


def format_players(players: List[Dict[str, Any]]) -> str:
    if not players:
        return "Lobby: (empty)"
    lines = ["Lobby:"]
    for player in players:
        cards = [parse_card(entry) for entry in player.get("deck", [])]
        hand = " ".join(card.label for card in cards) if cards else "--"
        lines.append(f"  {player['name']} ({len(cards)}): {hand}")
    return "\n".join(lines)


def format_message(msg: Dict[str, Any]) -> str:
    msg_type = msg.get("type", "?")
    header = f">>> {str(msg_type).upper()}"
    if msg_type == "welcome":
        body = f"Client {msg.get('client_id')} | channels: {', '.join(msg.get('channels', []))}"
    elif msg_type == "publish":
        payload = msg.get("payload") or {}
        if msg.get("channel") == "players":
            body = format_players(payload.get("players", []))
        else:
            body = f"{msg.get('channel')}: {json.dumps(payload)}"
    elif msg_type == "result":
        op = msg.get("op")
        if op == "join":
            body = f"Joined as {msg['player']['name']}"
        elif op == "players":
            body = format_players(msg.get("players", []))
        else:
            body = f"{op}: {'ok' if msg.get('ok') else 'refused'}"
    elif msg_type in ("subscribed", "unsubscribed"):
        body = f"{msg_type.capitalize()} {msg.get('channel')}"
    elif msg_type == "error":
        body = f"Error {msg.get('code')}: {msg.get('msg')}"
    else:
        body = json.dumps(msg, indent=2)
    return f"{header}\n{body}"


def render_frame(raw: Any) -> Optional[str]:
    """Format one server frame, or log and return None if it cannot be read."""
    try:
        msg = json.loads(raw)
        if not isinstance(msg, dict):
            raise ValueError("frame is not a JSON object")
        return format_message(msg)
    except (ValueError, KeyError, TypeError) as exc:
        LOGGER.warning("Skipping unreadable server frame: %s", exc)
        return None


class LobbyClient:
    def __init__(self, url: str, channels: List[str]) -> None:
        self.url = url
        self.channels = channels
        self.websocket: Optional[ClientConnection] = None

    async def run(self) -> None:
        async with connect(self.url) as ws:
            self.websocket = ws
            for channel in self.channels:
                await self._send({"type": "subscribe", "channel": channel})
            reader = asyncio.create_task(self._read_loop())
            prompt = asyncio.create_task(self._prompt_loop())
            try:
                await asyncio.wait({reader, prompt}, return_when=asyncio.FIRST_COMPLETED)
                server_gone = reader.done() and not prompt.done()
            finally:
                prompt.cancel()
                reader.cancel()
                results = await asyncio.gather(reader, prompt, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception) and not isinstance(result, EOFError):
                    raise result
            if server_gone:
                # input() still holds the terminal until the next line.
                print("Connection closed; press Enter to exit.")

    async def _read_loop(self) -> None:
        assert self.websocket is not None
        try:
            async for raw in self.websocket:
                text = render_frame(raw)
                if text is not None:
                    print(text)
        except websockets.ConnectionClosed:
            LOGGER.info("Server closed the connection")

    async def _prompt_loop(self) -> None:
        print(HELP)
        while True:
            line = await asyncio.to_thread(input, "> ")
            if line.strip().lower() in ("quit", "exit"):
                break
            if line.strip().lower() == "help":
                print(HELP)
                continue
            try:
                message = parse_command(line)
            except ValueError as exc:
                print(exc)
                continue
            if message is not None:
                if not await self._send(message):
                    break

    async def _send(self, payload: Dict[str, Any]) -> bool:
        assert self.websocket is not None
        try:
            await self.websocket.send(json.dumps({"v": 1, **payload}))
        except websockets.ConnectionClosed:
            LOGGER.info("Connection closed; command not sent")
            return False
        return True


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Card lobby terminal client")
    parser.add_argument("--url", default="ws://127.0.0.1:8000")
    parser.add_argument(
        "--channel",
        action="append",
        default=None,
        help="Channel to subscribe on connect (repeatable, default: players)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO)
    args = parse_args(sys.argv[1:] if argv is None else argv)
    client = LobbyClient(url=args.url, channels=args.channel or ["players"])
    try:
        asyncio.run(client.run())
    except (KeyboardInterrupt, EOFError):
        print("\nSession closed")


if __name__ == "__main__":
    main()
