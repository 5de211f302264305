"""
Out-of-turn knock protocol.

A player who is not on turn may grab the discard top and pause the room.
For knock_window_seconds only that player may act: they stage melds and
layoffs and try to go out with the picked card inside a meld. Success ends
the round; giving up or running out of time rolls everything back.

Staged melds and layoffs stay on the PausedBy record until the go-out
commits, so melds on the table never lose cards on rollback.
"""

import logging
import time
from typing import List, Optional, Sequence

from . import errors
from .actions import ActionResult, require, run_action
from .cards import Card
from .errors import IllegalMove, TransientConflict
from .melds import can_add_card_to_meld, resolve_meld, sort_meld_cards, validate_multiple_melds
from .models import GoOutScenario, MeldCandidate, PausedBy, RoomState, ScenarioType
from .scoring import end_round
from .solver import cover_keeping, validate_scenario
from .store import SessionStore
from .validate import remove_cards, validate_cards_in_hand, validate_in_room, validate_playing
from .window import expire_due_window, open_window, rollback_window

logger = logging.getLogger(__name__)


def _require_window_owner(state: RoomState, player_id: str) -> PausedBy:
    require(validate_in_room(state, player_id))
    if not isinstance(state.pause, PausedBy):
        raise IllegalMove(errors.NOT_PAUSED, "No knock window is open")
    if state.pause.player_id != player_id:
        raise IllegalMove(errors.GAME_PAUSED, f"Game is paused by {state.pause.player_id}")
    return state.pause


def stage_melds(state: RoomState, player_id: str, proposed: Sequence[Sequence[Card]]) -> List[MeldCandidate]:
    """Move meld cards from the knocking player's hand into the window's staging."""
    pause = _require_window_owner(state, player_id)
    hand = state.hands[player_id]

    require(validate_cards_in_hand(hand, [c for cards in proposed for c in cards]))
    resolved = [resolve_meld(list(cards)) for cards in proposed]
    if any(m is None for m in resolved):
        raise IllegalMove(errors.INVALID_MELD, "One or more melds are invalid")
    valid, error = validate_multiple_melds(hand, [m.cards for m in resolved])
    if not valid:
        raise IllegalMove(errors.INVALID_MELD, error)

    for meld in resolved:
        remove_cards(hand, meld.cards)
    pause.staged_melds.extend(resolved)
    state.log(f"{player_id} staged {len(resolved)} meld(s) while knocking")
    return resolved


def stage_layoff(state: RoomState, player_id: str, meld_id: str, card: Card) -> None:
    """Stage a layoff onto a table meld; checked against earlier staged layoffs too."""
    pause = _require_window_owner(state, player_id)
    if not state.rules.allow_layoff:
        raise IllegalMove(errors.LAYOFF_DISABLED, "Laying off is disabled in this room")
    meld = state.find_meld(meld_id)
    if meld is None:
        raise IllegalMove(errors.MELD_NOT_FOUND, f"Meld {meld_id} not found")
    require(validate_cards_in_hand(state.hands[player_id], [card]))

    pending = [c for mid, c in pause.staged_layoffs if mid == meld_id]
    grown = MeldCandidate(meld.meld_type, tuple(meld.cards) + tuple(pending))
    if not can_add_card_to_meld(card, grown):
        raise IllegalMove(errors.INVALID_MELD, f"{card} does not fit meld {meld_id}")

    remove_cards(state.hands[player_id], [card])
    pause.staged_layoffs.append((meld_id, card))
    state.log(f"{player_id} staged {card} onto meld {meld_id}")


def _find_knock_scenario(
    hand: List[Card],
    required: Optional[Card],
    scenario: Optional[GoOutScenario]
) -> GoOutScenario:
    if scenario is None:
        if not hand:
            if required is not None:
                raise IllegalMove(errors.INVALID_GO_OUT, "The picked-up card must be used in a meld")
            return GoOutScenario(ScenarioType.PICKUP_DISCARD, ())
        found = cover_keeping(hand, required)
        if found is None:
            raise IllegalMove(
                errors.INVALID_GO_OUT, "Cannot go out using the picked-up card in a meld"
            )
        return found

    if scenario.scenario_type in (ScenarioType.SCENARIO1, ScenarioType.SCENARIO2):
        raise IllegalMove(errors.INVALID_GO_OUT, "The discard top is already in your hand")
    error = validate_scenario(scenario, hand)
    if error:
        raise IllegalMove(errors.INVALID_GO_OUT, error)
    if required is not None and not any(required in m.cards for m in scenario.melds):
        raise IllegalMove(errors.INVALID_GO_OUT, "The picked-up card must be used in a meld")
    return scenario


def knock_go_out(state: RoomState, player_id: str, scenario: Optional[GoOutScenario] = None) -> GoOutScenario:
    """
    Commit a go-out from inside the knock window.

    Staged melds, the scenario's melds and the optional discard must account
    for every card held, and the picked card must sit in one of the melds
    (staged or new). A failed attempt leaves the window open for a retry.
    """
    pause = _require_window_owner(state, player_id)
    hand = state.hands[player_id]
    required = None if pause.picked_card in pause.staged_cards() else pause.picked_card

    found = _find_knock_scenario(list(hand), required, scenario)

    for meld in list(pause.staged_melds) + list(found.melds):
        state.add_meld(meld.meld_type, sort_meld_cards(meld.meld_type, meld.cards), player_id)
    for meld_id, card in pause.staged_layoffs:
        meld = state.find_meld(meld_id)
        meld.cards = sort_meld_cards(meld.meld_type, meld.cards + [card])
    state.hands[player_id] = []
    if found.discard_card is not None:
        state.discard.append(found.discard_card)
        state.last_discard_by = player_id

    logger.info(f"Knock go-out committed in room {state.id} by {player_id}")
    end_round(state, player_id)
    return found


def pause_and_pickup_discard(
    store: SessionStore,
    room_id: str,
    player_id: str,
    now: Optional[float] = None
) -> ActionResult:
    """
    Open a knock window for a player who is not on turn.

    Args:
        store: Session store
        room_id: Room ID
        player_id: Knocking player
        now: Window start time, defaults to time.time()

    Returns:
        ActionResult; data is the picked-up card
    """
    now = time.time() if now is None else now

    def action(state: RoomState) -> Card:
        require(validate_in_room(state, player_id))
        require(validate_playing(state))
        if state.is_paused:
            raise IllegalMove(errors.ALREADY_PAUSED, f"Game is already paused by {state.paused_by}")
        if state.active_player_id == player_id:
            raise IllegalMove(errors.INVALID_GO_OUT, "It is your turn, go out normally instead")
        if not state.discard:
            raise IllegalMove(errors.EMPTY_PILE, "Discard pile is empty")
        return open_window(state, player_id, now)

    return run_action(store, room_id, action, now)


def give_up_knock(
    store: SessionStore,
    room_id: str,
    player_id: str,
    now: Optional[float] = None
) -> ActionResult:
    """Cancel the caller's own knock window and roll it back."""
    def action(state: RoomState) -> bool:
        _require_window_owner(state, player_id)
        return rollback_window(state, "gave up")

    return run_action(store, room_id, action, now)


def expire_knock_window(store: SessionStore, room_id: str, now: Optional[float] = None) -> bool:
    """Roll back the room's window if its deadline has passed. Safe to call repeatedly."""
    now = time.time() if now is None else now
    return expire_due_window(store, room_id, now)


def reap_expired_windows(store: SessionStore, now: Optional[float] = None) -> List[str]:
    """
    Sweep every room for expired knock windows.

    Returns:
        Ids of the rooms whose window this sweep rolled back
    """
    now = time.time() if now is None else now
    rolled_back = []
    for room_id in store.room_ids():
        try:
            if expire_due_window(store, room_id, now):
                rolled_back.append(room_id)
        except TransientConflict:
            # another commit won; the next sweep or action sees the expiry
            logger.info(f"Reaper lost a commit race on room {room_id}, retrying next sweep")
    return rolled_back
