from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .cards import Card, cards_to_payload


class Channel(str, Enum):
    PLAYERS = "players"
    CHANGE_PLAYER_DECK = "changePlayerDeck"


@dataclass
class LobbyConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    seed: Optional[int] = None


@dataclass
class Player:
    name: str
    deck: List[Card] = field(default_factory=list)

    def reset_for_deal(self) -> None:
        self.deck = []

    def to_payload(self) -> Dict[str, object]:
        return {"name": self.name, "deck": cards_to_payload(self.deck)}


@dataclass
class RosterSnapshot:
    players: List[Dict[str, object]]

    def to_payload(self) -> Dict[str, object]:
        return {"players": list(self.players)}
