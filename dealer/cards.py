from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Protocol


class CardMark(str, Enum):
    DIAMOND = "DIAMOND"
    HEART = "HEART"
    CLUB = "CLUB"
    SPADE = "SPADE"
    JOKER = "JOKER"


# Deck slots are bucketed 13 per mark in declaration order, so 53 slots give
# four full suits plus a single joker numbered "1".
MARKS = list(CardMark)
RANKS_PER_MARK = 13
DECK_SIZE = 53
NUMBERS = [str(n) for n in range(1, RANKS_PER_MARK + 1)]


class RandomSource(Protocol):
    def randrange(self, stop: int) -> int:
        """Return an integer drawn uniformly from [0, stop)."""
        ...


@dataclass(frozen=True)
class Card:
    mark: CardMark
    number: str

    def __post_init__(self) -> None:
        if not isinstance(self.mark, CardMark):
            raise ValueError(f"Invalid mark: {self.mark}")
        if self.number not in NUMBERS:
            raise ValueError(f"Invalid number: {self.number}")

    @property
    def label(self) -> str:
        return f"{self.mark.value}-{self.number}"

    def to_payload(self) -> Dict[str, str]:
        return {"mark": self.mark.value, "number": self.number}


def build_deck() -> List[Card]:
    return [
        Card(MARKS[i // RANKS_PER_MARK], str(i % RANKS_PER_MARK + 1))
        for i in range(DECK_SIZE)
    ]


def shuffle_cards(cards: List[Card], rng: RandomSource) -> List[Card]:
    """Fisher-Yates pass: walk i from len(cards) down to 2 and swap i-1 with a draw from [0, i)."""
    for i in range(len(cards), 1, -1):
        k = rng.randrange(i)
        cards[k], cards[i - 1] = cards[i - 1], cards[k]
    return cards


def shuffled_deck(rng: Optional[RandomSource] = None, seed: Optional[int] = None) -> List[Card]:
    if rng is None:
        rng = random.Random(seed)
    return shuffle_cards(build_deck(), rng)


def deal_round_robin(cards: List[Card], hands: List[List[Card]]) -> None:
    if not hands:
        raise ValueError("No hands to deal to")
    count = len(hands)
    for i, card in enumerate(cards):
        hands[i % count].append(card)


def cards_to_payload(cards: List[Card]) -> List[Dict[str, str]]:
    return [card.to_payload() for card in cards]


def parse_card(payload: Dict[str, str]) -> Card:
    try:
        mark = CardMark(payload["mark"])
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Invalid card payload: {payload}") from exc
    return Card(mark, str(payload.get("number", "")))
