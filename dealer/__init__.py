"""Card session core: deck, roster, deal, and change broadcasts."""

from .broadcast import Broadcaster, Subscription
from .cards import DECK_SIZE, MARKS, Card, CardMark, build_deck, shuffle_cards, shuffled_deck
from .models import Channel, LobbyConfig, Player
from .session import SessionStore

__all__ = [
    "Broadcaster",
    "Subscription",
    "DECK_SIZE",
    "MARKS",
    "Card",
    "CardMark",
    "build_deck",
    "shuffle_cards",
    "shuffled_deck",
    "Channel",
    "LobbyConfig",
    "Player",
    "SessionStore",
]
