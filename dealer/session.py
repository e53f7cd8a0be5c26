from __future__ import annotations

import logging
import random
from typing import Dict, List, Optional

from .broadcast import Broadcaster
from .cards import RandomSource, deal_round_robin, shuffled_deck
from .models import Channel, Player, RosterSnapshot

LOGGER = logging.getLogger("card_lobby.session")

# SessionStore keeps the whole lobby in memory. No networking lives here, only
# the roster, the deal, and the publish that follows every mutation.
#
# Every operation is synchronous, so on the event loop each one runs to
# completion before the next starts. That is what makes the linear-scan name
# check in join() safe; a threaded caller would need a keyed check-and-insert.


class SessionStore:
    """Single in-memory card session: roster, deal, and roster broadcasts."""

    def __init__(
        self,
        broadcaster: Optional[Broadcaster] = None,
        rng: Optional[RandomSource] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.broadcaster = broadcaster or Broadcaster()
        self.rng: RandomSource = rng or random.Random(seed)
        self._roster: List[Player] = []
        self.deal_counter = 0

    # Roster management -----------------------------------------------

    def join(self, name: str) -> Player:
        player = self._find_player(name)
        if player is None:
            player = Player(name=name)
            self._roster.append(player)
            LOGGER.info("Player %r joined (roster=%s)", name, len(self._roster))
        else:
            LOGGER.debug("Player %r already seated; join is a no-op", name)
        self._publish_roster()
        return player

    def leave(self, name: str) -> bool:
        before = len(self._roster)
        self._roster = [player for player in self._roster if player.name != name]
        if len(self._roster) != before:
            LOGGER.info("Player %r left (roster=%s)", name, len(self._roster))
        self._publish_roster()
        return True

    def players(self) -> List[Player]:
        return list(self._roster)

    def _find_player(self, name: str) -> Optional[Player]:
        for player in self._roster:
            if player.name == name:
                return player
        return None

    # Deal ------------------------------------------------------------

    def start(self) -> bool:
        if not self._roster:
            LOGGER.info("Start ignored: no players in the lobby")
            return False

        for player in self._roster:
            player.reset_for_deal()

        deck = shuffled_deck(self.rng)
        deal_round_robin(deck, [player.deck for player in self._roster])
        self.deal_counter += 1
        LOGGER.info(
            "Deal %s: %s cards to %s players",
            self.deal_counter,
            len(deck),
            len(self._roster),
        )

        self._publish_roster()
        return True

    # Broadcast -------------------------------------------------------

    def roster_payload(self) -> Dict[str, object]:
        snapshot = RosterSnapshot(players=[player.to_payload() for player in self._roster])
        return snapshot.to_payload()

    def _publish_roster(self) -> None:
        self.broadcaster.publish(Channel.PLAYERS.value, self.roster_payload())
