"""
Card points, round settlement and winner determination.
"""

import logging
from typing import Dict, Iterable, List, Optional

from .cards import Card, Rank
from .models import GameStatus, Player, RoomState, Unpaused
from .rules import RuleConfig, default_rules

logger = logging.getLogger(__name__)

FACE_RANKS = (Rank.TEN, Rank.JACK, Rank.QUEEN, Rank.KING)


def get_card_points(card: Card, rules: RuleConfig = default_rules) -> int:
    """A = ace_value, T/J/Q/K = 10, everything else its face value."""
    if card.rank == Rank.ACE:
        return rules.ace_value
    if card.rank in FACE_RANKS:
        return 10
    return int(card.rank.value)


def calculate_hand_points(cards: Iterable[Card], rules: RuleConfig = default_rules) -> int:
    return sum(get_card_points(c, rules) for c in cards)


def determine_round_winner(
    players: Dict[str, Player],
    player_order: List[str],
    went_out_id: str,
    threshold: int
) -> str:
    """
    Decide who wins a round once a player has emptied their hand.

    The player who went out wins unless their cumulative score has already
    reached the threshold. In that case the player below the threshold with
    the lowest score wins; when nobody is below it, the lowest score overall
    wins. Ties go to the earliest seat.

    Args:
        players: Players by id, with cumulative scores
        player_order: Seat order used to break ties
        went_out_id: Player who emptied their hand
        threshold: Elimination threshold

    Returns:
        Id of the declared winner
    """
    if players[went_out_id].score < threshold:
        return went_out_id

    eligible = [pid for pid in player_order if players[pid].score < threshold]
    pool = eligible or list(player_order)
    # min() keeps the first of equal scores, i.e. the earliest seat
    winner = min(pool, key=lambda pid: players[pid].score)
    logger.info(
        f"Winner reassigned from {went_out_id} (score {players[went_out_id].score}) "
        f"to {winner} (score {players[winner].score})"
    )
    return winner


def apply_round_scores(
    players: Dict[str, Player],
    hands: Dict[str, List[Card]],
    winner_id: Optional[str],
    rules: RuleConfig = default_rules
) -> Dict[str, int]:
    """
    Add the points left in hand to every player except the winner.

    Returns:
        Points added this round by player id
    """
    added = {}
    for player_id, player in players.items():
        if player_id == winner_id:
            added[player_id] = 0
            continue
        points = calculate_hand_points(hands.get(player_id, []), rules)
        player.score += points
        added[player_id] = points
    return added


def players_in_contention(players: Dict[str, Player], threshold: int) -> List[str]:
    return [pid for pid, p in players.items() if p.score < threshold]


def end_round(state: RoomState, went_out_id: str) -> str:
    """
    Close the round after went_out_id emptied their hand.

    Clears any knock window and the draw flags, and records the declared
    winner. Returns the winner id.
    """
    winner_id = determine_round_winner(
        state.players, state.player_order, went_out_id, state.rules.elimination_threshold
    )
    state.status = GameStatus.ROUND_END
    state.went_out_id = went_out_id
    state.winner_id = winner_id
    state.pause = Unpaused()
    for player in state.players.values():
        player.has_drawn_this_turn = False

    if winner_id == went_out_id:
        state.log(f"{went_out_id} went out and wins round {state.round}")
    else:
        state.log(f"{went_out_id} went out, {winner_id} wins round {state.round}")
    logger.info(f"Round {state.round} ended in room {state.id}: out={went_out_id} winner={winner_id}")
    return winner_id
