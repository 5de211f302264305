"""
Precondition checks for turn actions and the card conservation invariant.
"""

import logging
from collections import Counter
from typing import Iterable, List, Optional

from . import errors
from .cards import Card, build_double_deck
from .errors import InvariantViolation
from .models import GameStatus, RoomState

logger = logging.getLogger(__name__)

FULL_DECK = Counter(build_double_deck())


class ValidationResult:
    """Result of a precondition check."""

    def __init__(
        self,
        valid: bool,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None
    ):
        self.valid = valid
        self.error_code = error_code
        self.error_message = error_message

    def __bool__(self) -> bool:
        return self.valid

    @classmethod
    def success(cls) -> 'ValidationResult':
        return cls(valid=True)

    @classmethod
    def error(cls, error_code: str, error_message: str) -> 'ValidationResult':
        return cls(valid=False, error_code=error_code, error_message=error_message)


def validate_in_room(state: RoomState, player_id: str) -> ValidationResult:
    if player_id not in state.players:
        return ValidationResult.error(errors.NOT_IN_ROOM, "Player is not in this room")
    return ValidationResult.success()


def validate_playing(state: RoomState) -> ValidationResult:
    if state.status != GameStatus.PLAYING:
        return ValidationResult.error(
            errors.WRONG_PHASE, f"Action not allowed while the room is {state.status.value}"
        )
    return ValidationResult.success()


def validate_not_paused_by_other(state: RoomState, player_id: str) -> ValidationResult:
    """While a knock window is open nobody but its owner may act."""
    if state.is_paused and state.paused_by != player_id:
        return ValidationResult.error(
            errors.GAME_PAUSED, f"Game is paused by {state.paused_by}"
        )
    return ValidationResult.success()


def validate_turn(state: RoomState, player_id: str) -> ValidationResult:
    """
    Common guard for in-turn actions.

    Checks, in order: membership, phase, knock window exclusivity and turn
    ownership.
    """
    for result in (
        validate_in_room(state, player_id),
        validate_playing(state),
        validate_not_paused_by_other(state, player_id),
    ):
        if not result:
            return result
    if state.active_player_id != player_id:
        return ValidationResult.error(errors.NOT_YOUR_TURN, "It is not your turn")
    return ValidationResult.success()


def validate_can_draw(state: RoomState, player_id: str) -> ValidationResult:
    result = validate_turn(state, player_id)
    if not result:
        return result
    if state.players[player_id].has_drawn_this_turn:
        return ValidationResult.error(errors.ALREADY_DREW, "You already drew this turn")
    if len(state.hands[player_id]) >= state.rules.max_hand_size:
        return ValidationResult.error(
            errors.HAND_FULL, f"Hand already holds {state.rules.max_hand_size} cards"
        )
    return ValidationResult.success()


def validate_can_act(state: RoomState, player_id: str) -> ValidationResult:
    """The active player has drawn and may discard, meld, lay off or go out."""
    result = validate_turn(state, player_id)
    if not result:
        return result
    if not state.players[player_id].has_drawn_this_turn:
        return ValidationResult.error(errors.MUST_DRAW_FIRST, "You must draw a card first")
    return ValidationResult.success()


def validate_cards_in_hand(hand: List[Card], cards: Iterable[Card]) -> ValidationResult:
    """Multiset containment: two copies requested need two copies held."""
    held = Counter(hand)
    for card, count in Counter(cards).items():
        if held[card] < count:
            return ValidationResult.error(errors.CARD_NOT_IN_HAND, f"You don't hold {card}")
    return ValidationResult.success()


def remove_cards(hand: List[Card], cards: Iterable[Card]) -> None:
    """Remove one physical copy per listed card. Callers validate first."""
    for card in cards:
        hand.remove(card)


def cards_in_play(state: RoomState) -> Counter:
    """Every card of the round: stock, discard, hands, melds and knock staging."""
    cards = Counter(state.stock)
    cards.update(state.discard)
    for hand in state.hands.values():
        cards.update(hand)
    for meld in state.melds:
        cards.update(meld.cards)
    if state.is_paused:
        cards.update(state.pause.staged_cards())
    return cards


def check_card_conservation(state: RoomState) -> None:
    """
    Raise InvariantViolation unless the room holds exactly the double deck.

    Rooms that have never been dealt (round 0) hold no cards and are skipped.
    """
    if state.round == 0:
        return
    in_play = cards_in_play(state)
    if in_play == FULL_DECK:
        return
    missing = FULL_DECK - in_play
    extra = in_play - FULL_DECK
    message = (
        f"Card conservation broken in room {state.id}: "
        f"missing {sorted(map(str, missing.elements()))}, "
        f"extra {sorted(map(str, extra.elements()))}"
    )
    logger.error(message)
    raise InvariantViolation(message)
