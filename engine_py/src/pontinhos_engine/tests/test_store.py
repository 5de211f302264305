"""
Tests for the in-memory session store and change detection.
"""

import copy

import pytest
from pontinhos_engine import errors
from pontinhos_engine.cards import parse_card
from pontinhos_engine.diff import changed_entities
from pontinhos_engine.errors import IllegalMove, TransientConflict
from pontinhos_engine.models import EntityKind, RoomState


def test_create_and_read_returns_copies(store):
    store.create(RoomState(id="r1", player_order=["p1"], hands={"p1": []}))
    state = store.read_session("r1")
    state.hands["p1"].append(parse_card("AS"))
    assert store.read_hand("r1", "p1") == []


def test_create_twice_fails(store):
    store.create(RoomState(id="r1"))
    with pytest.raises(IllegalMove) as exc:
        store.create(RoomState(id="r1"))
    assert exc.value.code == errors.ROOM_EXISTS


def test_unknown_room_and_player(store):
    with pytest.raises(IllegalMove) as exc:
        store.read_session("missing")
    assert exc.value.code == errors.ROOM_NOT_FOUND
    assert "missing" not in store._room_locks

    store.create(RoomState(id="r1"))
    with pytest.raises(IllegalMove):
        store.read_hand("r1", "nobody")


def test_transact_commits_and_bumps_version(make_room, store):
    make_room({"p1": "5S", "p2": "6S"}, discard="2C")

    def draw(state):
        card = state.stock.pop()
        state.hands["p1"].append(card)
        return card

    card = store.transact("room", draw)
    assert store.read_hand("room", "p1")[-1] == card
    assert store.read_session("room").version == 1
    stock, discard = store.read_deck_state("room")
    assert discard == [parse_card("2C")]
    assert len(stock) == 104 - 3 - 1


def test_transact_without_changes_does_not_commit(make_room, store):
    make_room({"p1": "5S", "p2": "6S"})
    assert store.transact("room", lambda state: "read only") == "read only"
    assert store.read_session("room").version == 0


def test_failed_fn_commits_nothing(make_room, store):
    make_room({"p1": "5S", "p2": "6S"})

    def broken(state):
        state.hands["p1"].clear()
        raise IllegalMove(errors.WRONG_PHASE, "nope")

    with pytest.raises(IllegalMove):
        store.transact("room", broken)
    assert len(store.read_hand("room", "p1")) == 1


def test_lost_race_raises_transient_conflict(make_room, store):
    """A commit that lands while fn runs makes the slower transaction fail."""
    make_room({"p1": "5S", "p2": "6S"})

    def slow(state):
        store.transact("room", lambda other: other.hands["p2"].clear())
        state.hands["p1"].clear()

    with pytest.raises(TransientConflict):
        store.transact("room", slow)

    assert store.read_hand("room", "p1") == [parse_card("5S")]
    assert store.read_hand("room", "p2") == []
    assert store.read_session("room").version == 1


def test_subscribe_and_unsubscribe(make_room, store):
    make_room({"p1": "5S", "p2": "6S"})
    seen = []
    unsubscribe = store.subscribe("room", EntityKind.HAND, lambda room_id, kind, state: seen.append(kind))
    melds_seen = []
    store.subscribe("room", EntityKind.MELDS, lambda room_id, kind, state: melds_seen.append(kind))

    store.transact("room", lambda state: state.hands["p1"].append(state.stock.pop()))
    assert seen == [EntityKind.HAND]
    assert melds_seen == []

    unsubscribe()
    store.transact("room", lambda state: state.hands["p1"].append(state.stock.pop()))
    assert seen == [EntityKind.HAND]


def test_changed_entities(make_room, store):
    old = make_room({"p1": "5S", "p2": "6S"})
    assert changed_entities(None, old) == set(EntityKind)
    assert changed_entities(old, copy.deepcopy(old)) == set()

    new = copy.deepcopy(old)
    new.hands["p2"].append(new.stock.pop())
    assert changed_entities(old, new) == {EntityKind.HAND, EntityKind.DECK}

    new = copy.deepcopy(old)
    new.turn_index = 1
    assert changed_entities(old, new) == {EntityKind.SESSION}
