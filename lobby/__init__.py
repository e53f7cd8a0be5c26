"""Lobby host package: wraps the card session with networking."""

from .server import LobbyProtocolError, LobbyServer

__all__ = ["LobbyProtocolError", "LobbyServer"]
