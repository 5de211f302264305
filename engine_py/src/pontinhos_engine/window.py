"""
Knock window bookkeeping: opening, expiry and the rollback procedure.

Rollback is shared by the timeout path, the give-up action and the reaper.
It only acts on an open window, so running it twice is a no-op.
"""

import logging
from typing import Optional

from .cards import Card
from .models import PausedBy, RoomState, Unpaused
from .store import SessionStore
from .validate import check_card_conservation

logger = logging.getLogger(__name__)


def open_window(state: RoomState, player_id: str, now: float) -> Card:
    """Move the discard top into the caller's hand and pause the room for them."""
    hand = state.hands[player_id]
    picked = state.discard.pop()
    state.pause = PausedBy(
        player_id=player_id,
        started_at=now,
        picked_card=picked,
        hand_before=list(hand),
    )
    hand.append(picked)
    state.log(f"{player_id} knocked and picked up {picked}")
    logger.info(f"Knock window opened in room {state.id} by {player_id} at {now}")
    return picked


def window_deadline(state: RoomState) -> Optional[float]:
    if not isinstance(state.pause, PausedBy):
        return None
    return state.pause.started_at + state.rules.knock_window_seconds


def window_expired(state: RoomState, now: float) -> bool:
    deadline = window_deadline(state)
    return deadline is not None and now >= deadline


def rollback_window(state: RoomState, reason: str) -> bool:
    """
    Undo an open knock window.

    The pre-pickup hand comes back (staged melds and layoffs are dropped,
    their cards were part of it), the picked card returns to the top of the
    discard pile as the knocking player's discard, and the room unpauses.
    Turn order and the active player's draw flag are untouched.

    Returns:
        True if a window was rolled back, False if none was open
    """
    pause = state.pause
    if not isinstance(pause, PausedBy):
        return False

    state.hands[pause.player_id] = list(pause.hand_before)
    state.discard.append(pause.picked_card)
    state.last_discard_by = pause.player_id
    state.pause = Unpaused()
    state.log(f"{pause.player_id} did not go out ({reason}), {pause.picked_card} returned to the discard pile")
    logger.info(f"Knock window rolled back in room {state.id} for {pause.player_id}: {reason}")
    return True


def expire_due_window(store: SessionStore, room_id: str, now: float) -> bool:
    """
    Commit the rollback of an expired window, in its own transaction.

    Returns:
        True if this call rolled a window back
    """
    def expire(state: RoomState) -> bool:
        if not window_expired(state, now):
            return False
        rollback_window(state, "time ran out")
        check_card_conservation(state)
        return True

    return store.transact(room_id, expire)
