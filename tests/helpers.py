from __future__ import annotations

from collections import Counter
from typing import Iterable, List, Tuple

from dealer.broadcast import Broadcaster, Subscription
from dealer.cards import Card
from dealer.models import Channel
from dealer.session import SessionStore


class ScriptedRandom:
    """Random source that replays fixed draws, clamped into range."""

    def __init__(self, draws: Iterable[int]) -> None:
        self.draws = list(draws)
        self.calls: List[int] = []

    def randrange(self, stop: int) -> int:
        self.calls.append(stop)
        value = self.draws.pop(0) if self.draws else 0
        return value % stop


class TopRandom:
    """Always draws the last slot, which leaves the deck untouched."""

    def randrange(self, stop: int) -> int:
        return stop - 1


def create_store(
    names: Iterable[str] = (),
    *,
    seed: int = 42,
) -> Tuple[SessionStore, Subscription]:
    """Build a store with a roster listener attached before any player joins."""
    store = SessionStore(Broadcaster(), seed=seed)
    listener = store.broadcaster.subscribe(Channel.PLAYERS.value)
    for name in names:
        store.join(name)
    return store, listener


def all_dealt_cards(store: SessionStore) -> List[Card]:
    cards: List[Card] = []
    for player in store.players():
        cards.extend(player.deck)
    return cards


def hand_sizes(store: SessionStore) -> List[int]:
    return [len(player.deck) for player in store.players()]


def roster_names(payload: object) -> List[str]:
    assert isinstance(payload, dict)
    return [entry["name"] for entry in payload["players"]]


def card_counts(cards: Iterable[Card]) -> Counter:
    return Counter(cards)
