"""Game engine: session lifecycle and the turn state machine"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

from . import errors
from .actions import ActionResult, require, run_action
from .cards import Card, build_double_deck
from .errors import IllegalMove
from .knock import knock_go_out, stage_layoff, stage_melds
from .melds import can_add_card_to_meld, resolve_meld, sort_meld_cards, validate_multiple_melds
from .models import GameStatus, GoOutScenario, Player, RoomState, ScenarioType, Unpaused
from .rules import RuleConfig, default_rules
from .scoring import apply_round_scores, end_round, players_in_contention
from .shuffle import deal_cards, shuffle_deck
from .solver import can_go_out_with_scenarios, check_discard_set_shape, cover_keeping, validate_scenario
from .store import SessionStore
from .validate import (
    remove_cards, validate_can_act, validate_can_draw, validate_cards_in_hand,
    validate_in_room
)

logger = logging.getLogger(__name__)


def create_session(
    store: SessionStore,
    room_id: str,
    player_ids: List[str],
    rules: Optional[RuleConfig] = None
) -> ActionResult:
    """
    Create a lobby session for a fixed list of players.

    Args:
        store: Session store
        room_id: New room ID
        player_ids: Players in seat order
        rules: Room rules, defaults to default_rules

    Returns:
        ActionResult with the stored session
    """
    rules = rules or default_rules.model_copy()
    if len(set(player_ids)) != len(player_ids):
        return ActionResult.failure(errors.INVALID_PLAYER_COUNT, "Player ids must be unique")
    if not rules.validate_player_count(len(player_ids)):
        return ActionResult.failure(
            errors.INVALID_PLAYER_COUNT,
            f"Need {rules.min_players}-{rules.max_players} players, got {len(player_ids)}"
        )

    state = RoomState(
        id=room_id,
        player_order=list(player_ids),
        players={pid: Player(id=pid) for pid in player_ids},
        hands={pid: [] for pid in player_ids},
        rules=rules,
    )
    state.log(f"Room created for {', '.join(player_ids)}")
    try:
        stored = store.create(state)
    except IllegalMove as e:
        return ActionResult.failure(e.code, e.message)
    return ActionResult.ok(stored)


def start_round(
    store: SessionStore,
    room_id: str,
    seed: Optional[int] = None,
    now: Optional[float] = None
) -> ActionResult:
    """
    Shuffle the double deck, deal and turn the first discard.

    Scores carry over; everything else about the round is reset.
    """
    def action(state: RoomState) -> int:
        if state.status != GameStatus.LOBBY:
            raise IllegalMove(errors.WRONG_PHASE, f"Cannot start a round while {state.status.value}")

        deck = shuffle_deck(build_double_deck(), seed=seed)
        hands, stock = deal_cards(deck, state.player_order, state.rules.hand_size)

        state.hands = hands
        state.discard = [stock.pop()]
        state.stock = stock
        state.melds = []
        state.meld_seq = 0
        state.round += 1
        state.turn_index = 0
        state.first_pass_complete = False
        state.pause = Unpaused()
        state.last_discard_by = None
        state.went_out_id = None
        state.winner_id = None
        for player in state.players.values():
            player.has_drawn_this_turn = False
            player.is_blocked = False
        state.status = GameStatus.PLAYING

        state.log(f"Round {state.round} started, {state.active_player_id} plays first")
        logger.info(f"Round {state.round} started in room {state.id}")
        return state.round

    return run_action(store, room_id, action, now)


def draw_from_stock(store: SessionStore, room_id: str, player_id: str, now: Optional[float] = None) -> ActionResult:
    def action(state: RoomState) -> Card:
        require(validate_can_draw(state, player_id))
        if not state.stock:
            raise IllegalMove(errors.EMPTY_PILE, "Stock is empty")
        card = state.stock.pop()
        state.hands[player_id].append(card)
        state.players[player_id].has_drawn_this_turn = True
        state.log(f"{player_id} drew from the stock")
        return card

    return run_action(store, room_id, action, now)


def draw_from_discard(store: SessionStore, room_id: str, player_id: str, now: Optional[float] = None) -> ActionResult:
    def action(state: RoomState) -> Card:
        require(validate_can_draw(state, player_id))
        if not state.discard:
            raise IllegalMove(errors.EMPTY_PILE, "Discard pile is empty")
        card = state.discard.pop()
        state.hands[player_id].append(card)
        state.players[player_id].has_drawn_this_turn = True
        state.log(f"{player_id} picked up {card} from the discard pile")
        return card

    return run_action(store, room_id, action, now)


def _advance_turn(state: RoomState, player_id: str):
    state.players[player_id].has_drawn_this_turn = False
    next_index = (state.turn_index + 1) % len(state.player_order)
    state.turn_index = next_index
    state.players[state.player_order[next_index]].has_drawn_this_turn = False
    if next_index == 0:
        state.first_pass_complete = True


def discard(
    store: SessionStore,
    room_id: str,
    player_id: str,
    card: Card,
    now: Optional[float] = None
) -> ActionResult:
    """
    Discard a card and pass the turn.

    The hand left behind may not hold more than hand_size cards. Discarding
    the last card ends the round with the player as the one who went out.
    """
    def action(state: RoomState) -> Optional[str]:
        require(validate_can_act(state, player_id))
        hand = state.hands[player_id]
        require(validate_cards_in_hand(hand, [card]))
        if len(hand) - 1 > state.rules.hand_size:
            raise IllegalMove(
                errors.HAND_FULL,
                f"After discarding you may hold at most {state.rules.hand_size} cards, lay down melds first"
            )

        hand.remove(card)
        state.discard.append(card)
        state.last_discard_by = player_id
        state.log(f"{player_id} discarded {card}")

        if not hand:
            return end_round(state, player_id)
        _advance_turn(state, player_id)
        return None

    return run_action(store, room_id, action, now)


def lay_down_melds(
    store: SessionStore,
    room_id: str,
    player_id: str,
    melds: Sequence[Sequence[Card]],
    now: Optional[float] = None
) -> ActionResult:
    """
    Lay one or more melds from hand onto the table.

    Each selection may hold extra cards that extend a base meld. While the
    caller owns a knock window the melds are staged instead.

    Returns:
        ActionResult; data is the list of resolved melds
    """
    def action(state: RoomState):
        if state.paused_by == player_id:
            return stage_melds(state, player_id, melds)

        require(validate_can_act(state, player_id))
        if not state.first_pass_complete:
            raise IllegalMove(
                errors.FIRST_PASS_INCOMPLETE,
                "Melds can be laid down once every player has had a turn this round"
            )
        hand = state.hands[player_id]
        require(validate_cards_in_hand(hand, [c for cards in melds for c in cards]))

        resolved = [resolve_meld(list(cards)) for cards in melds]
        if not resolved or any(m is None for m in resolved):
            raise IllegalMove(errors.INVALID_MELD, "One or more melds are invalid")
        valid, error = validate_multiple_melds(hand, [m.cards for m in resolved])
        if not valid:
            raise IllegalMove(errors.INVALID_MELD, error)

        for meld in resolved:
            remove_cards(hand, meld.cards)
            state.add_meld(meld.meld_type, list(meld.cards), player_id)
        state.log(f"{player_id} laid down {len(resolved)} meld(s)")

        if not hand:
            end_round(state, player_id)
        return resolved

    return run_action(store, room_id, action, now)


def layoff_card(
    store: SessionStore,
    room_id: str,
    player_id: str,
    meld_id: str,
    card: Card,
    now: Optional[float] = None
) -> ActionResult:
    """Add a card from hand to a meld on the table (staged during the caller's knock window)."""
    def action(state: RoomState) -> None:
        if state.paused_by == player_id:
            stage_layoff(state, player_id, meld_id, card)
            return

        require(validate_can_act(state, player_id))
        if not state.rules.allow_layoff:
            raise IllegalMove(errors.LAYOFF_DISABLED, "Laying off is disabled in this room")
        meld = state.find_meld(meld_id)
        if meld is None:
            raise IllegalMove(errors.MELD_NOT_FOUND, f"Meld {meld_id} not found")
        hand = state.hands[player_id]
        require(validate_cards_in_hand(hand, [card]))
        if not can_add_card_to_meld(card, meld):
            raise IllegalMove(errors.INVALID_MELD, f"{card} does not fit meld {meld_id}")

        hand.remove(card)
        meld.cards = sort_meld_cards(meld.meld_type, meld.cards + [card])
        state.log(f"{player_id} added {card} to meld {meld_id}")

        if not hand:
            end_round(state, player_id)

    return run_action(store, room_id, action, now)


def _resolve_go_out(state: RoomState, player_id: str, scenario: Optional[GoOutScenario]) -> GoOutScenario:
    hand = state.hands[player_id]
    top = state.discard_top

    if scenario is None:
        found = can_go_out_with_scenarios(hand, top, off_turn=False)
        if isinstance(found, str):
            raise IllegalMove(errors.INVALID_GO_OUT, found)
        return found

    if scenario.scenario_type == ScenarioType.PICKUP_DISCARD:
        raise IllegalMove(errors.INVALID_GO_OUT, "Picking up the discard to go out is only for knocking")
    available = list(hand)
    if scenario.uses_discard_top:
        if top is None:
            raise IllegalMove(errors.EMPTY_PILE, "Discard pile is empty")
        shape_error = check_discard_set_shape(scenario, hand, top)
        if shape_error:
            raise IllegalMove(errors.INVALID_GO_OUT, shape_error)
        available.append(top)
    error = validate_scenario(scenario, available)
    if error:
        raise IllegalMove(errors.INVALID_GO_OUT, error)
    return scenario


def go_out(
    store: SessionStore,
    room_id: str,
    player_id: str,
    scenario: Optional[GoOutScenario] = None,
    now: Optional[float] = None
) -> ActionResult:
    """
    Empty the hand in one step and end the round.

    Without a scenario the solver picks one. Scenario1 and Scenario2 take
    the discard top into the set. The owner of a knock window goes out
    through the knock path instead.

    Returns:
        ActionResult; data is the scenario that was applied
    """
    def action(state: RoomState) -> GoOutScenario:
        if state.paused_by == player_id:
            return knock_go_out(state, player_id, scenario)

        require(validate_can_act(state, player_id))
        found = _resolve_go_out(state, player_id, scenario)

        if found.uses_discard_top:
            state.discard.pop()
        for meld in found.melds:
            state.add_meld(meld.meld_type, sort_meld_cards(meld.meld_type, meld.cards), player_id)
        state.hands[player_id] = []
        if found.discard_card is not None:
            state.discard.append(found.discard_card)
            state.last_discard_by = player_id

        end_round(state, player_id)
        return found

    return run_action(store, room_id, action, now)


def check_go_out(store: SessionStore, room_id: str, player_id: str, now: Optional[float] = None) -> ActionResult:
    """
    Read-only hint: can this player go out right now, and how?

    Off-turn players are searched with the discard top picked up; the owner
    of a knock window is searched with the picked card kept in a meld.

    Returns:
        ActionResult; data is a dict with 'scenario' or 'reason'
    """
    def action(state: RoomState) -> Dict:
        require(validate_in_room(state, player_id))
        hand = state.hands[player_id]
        if state.paused_by == player_id:
            pause = state.pause
            required = None if pause.picked_card in pause.staged_cards() else pause.picked_card
            found = cover_keeping(hand, required) or "Cannot go out using the picked-up card in a meld"
        elif state.active_player_id != player_id:
            # off turn the only way out is a knock, so only the pickup search applies
            top = state.discard_top
            found = cover_keeping(list(hand) + [top], top) if top is not None else None
            found = found or "Cannot go out with the discard top in a meld"
        else:
            found = can_go_out_with_scenarios(hand, state.discard_top)
        if isinstance(found, str):
            return {"scenario": None, "reason": found}
        return {"scenario": found, "reason": None}

    return run_action(store, room_id, action, now)


def settle_round(store: SessionStore, room_id: str, now: Optional[float] = None) -> ActionResult:
    """
    Score a finished round.

    Everyone but the declared winner adds the points left in their hand.
    The game is over once at most one player is still below the
    elimination threshold.

    Returns:
        ActionResult; data is the points added per player
    """
    def action(state: RoomState) -> Dict[str, int]:
        if state.status != GameStatus.ROUND_END:
            raise IllegalMove(errors.WRONG_PHASE, "No finished round to settle")
        added = apply_round_scores(state.players, state.hands, state.winner_id, state.rules)
        contenders = players_in_contention(state.players, state.rules.elimination_threshold)
        state.status = GameStatus.FINISHED if len(contenders) <= 1 else GameStatus.LOBBY

        summary = ", ".join(f"{pid} +{points}" for pid, points in added.items())
        state.log(f"Round {state.round} settled: {summary}")
        if state.status == GameStatus.FINISHED:
            logger.info(f"Game finished in room {state.id}")
        return added

    return run_action(store, room_id, action, now)


def reset_scores(store: SessionStore, room_id: str, now: Optional[float] = None) -> ActionResult:
    """Start a fresh game in the same room: scores to zero, no cards dealt."""
    def action(state: RoomState) -> None:
        if state.status == GameStatus.PLAYING:
            raise IllegalMove(errors.WRONG_PHASE, "Cannot reset scores during a round")
        for player in state.players.values():
            player.score = 0
            player.has_drawn_this_turn = False
            player.is_blocked = False
        state.hands = {pid: [] for pid in state.player_order}
        state.stock = []
        state.discard = []
        state.melds = []
        state.meld_seq = 0
        state.round = 0
        state.turn_index = 0
        state.first_pass_complete = False
        state.went_out_id = None
        state.winner_id = None
        state.last_discard_by = None
        state.status = GameStatus.LOBBY
        state.log("Scores reset")

    return run_action(store, room_id, action, now)


def reorder_hand(
    store: SessionStore,
    room_id: str,
    player_id: str,
    new_order: List[Card],
    now: Optional[float] = None
) -> ActionResult:
    """Rearrange a hand. Allowed at any time; the cards themselves must not change."""
    def action(state: RoomState) -> None:
        require(validate_in_room(state, player_id))
        if Counter(new_order) != Counter(state.hands[player_id]):
            raise IllegalMove(errors.CARD_NOT_IN_HAND, "New order must hold exactly the cards in hand")
        state.hands[player_id] = list(new_order)

    return run_action(store, room_id, action, now)
