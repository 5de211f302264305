"""
Card shuffling and dealing utilities.
"""

import random
from typing import Dict, List, Optional, Tuple

from .cards import Card


def shuffle_deck(
    deck: List[Card],
    seed: Optional[int] = None,
    rng: Optional[random.Random] = None
) -> List[Card]:
    """
    Fisher-Yates shuffle of a copy of the deck.

    Args:
        deck: Cards to shuffle
        seed: Optional seed for deterministic shuffling
        rng: Optional random source; takes precedence over seed

    Returns:
        Shuffled copy of the deck
    """
    if rng is None:
        rng = random.Random(seed) if seed is not None else random.Random()

    deck_copy = list(deck)
    for i in range(len(deck_copy) - 1, 0, -1):
        j = rng.randrange(i + 1)
        deck_copy[i], deck_copy[j] = deck_copy[j], deck_copy[i]
    return deck_copy


def deal_cards(
    deck: List[Card],
    player_order: List[str],
    hand_size: int
) -> Tuple[Dict[str, List[Card]], List[Card]]:
    """
    Deal hand_size consecutive cards to each player in seat order.

    Args:
        deck: Shuffled deck of cards
        player_order: Player ids in seat order
        hand_size: Cards per player

    Returns:
        Tuple of (hands by player id, remaining cards for the stock)
    """
    needed = hand_size * len(player_order)
    if needed > len(deck):
        raise ValueError(f"Cannot deal {hand_size} cards to {len(player_order)} players")

    hands = {
        player_id: deck[i * hand_size:(i + 1) * hand_size]
        for i, player_id in enumerate(player_order)
    }
    return hands, deck[needed:]
