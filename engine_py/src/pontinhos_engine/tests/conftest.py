"""
Shared fixtures for the engine tests.
"""

from collections import Counter

import pytest
from pontinhos_engine.cards import build_double_deck, parse_cards
from pontinhos_engine.melds import classify_meld
from pontinhos_engine.models import GameStatus, Meld, Player, RoomState
from pontinhos_engine.rules import default_rules
from pontinhos_engine.store import InMemorySessionStore


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def make_room(store):
    """
    Build a dealt, in-progress room with exact hands and store it.

    The stock is whatever is left of the double deck, so the room always
    holds exactly 104 cards.
    """
    def _make_room(
        hands,
        discard="",
        melds=(),
        room_id="room",
        turn_index=0,
        first_pass_complete=True,
        drawn=(),
        scores=None,
        rules=None
    ):
        hand_cards = {pid: parse_cards(cards) for pid, cards in hands.items()}
        discard_cards = parse_cards(discard)
        table = []
        for i, (owner, cards) in enumerate(melds, start=1):
            cards = parse_cards(cards)
            table.append(Meld(id=f"m1-{i}", meld_type=classify_meld(cards), cards=cards, owner_id=owner))

        used = Counter(discard_cards)
        for cards in hand_cards.values():
            used.update(cards)
        for meld in table:
            used.update(meld.cards)
        full = Counter(build_double_deck())
        assert not used - full, "test room uses more copies than the double deck holds"

        scores = scores or {}
        state = RoomState(
            id=room_id,
            status=GameStatus.PLAYING,
            player_order=list(hands),
            players={
                pid: Player(id=pid, score=scores.get(pid, 0), has_drawn_this_turn=pid in drawn)
                for pid in hands
            },
            hands=hand_cards,
            stock=list((full - used).elements()),
            discard=discard_cards,
            melds=table,
            turn_index=turn_index,
            round=1,
            first_pass_complete=first_pass_complete,
            rules=rules or default_rules.model_copy(),
            meld_seq=len(table),
        )
        return store.create(state)

    return _make_room
