"""
Meld validation, discovery and expansion.

All functions are pure and treat card collections as multisets: the double
deck means two equal Card values are two different physical cards.
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .cards import ACE_HIGH_VALUE, RANKS, SUITS, Card, Rank, rank_from_order, rank_order
from .models import Meld, MeldCandidate, MeldType

MIN_MELD_SIZE = 3

MeldLike = Union[Meld, MeldCandidate]


def _ace_low(rank: Rank) -> int:
    return rank_order(rank)


def _ace_high(rank: Rank) -> int:
    return ACE_HIGH_VALUE if rank == Rank.ACE else rank_order(rank)


def _is_consecutive(values: List[int]) -> bool:
    values = sorted(values)
    return all(b - a == 1 for a, b in zip(values, values[1:]))


def is_valid_sequence(cards: Sequence[Card]) -> bool:
    """
    Check whether cards form a run: 3+ cards, one suit, consecutive ranks.

    The Ace is tried both low (A-2-3) and high (Q-K-A). A repeated rank
    makes the run invalid.
    """
    if len(cards) < MIN_MELD_SIZE:
        return False
    suit = cards[0].suit
    if any(c.suit != suit for c in cards):
        return False
    ranks = [c.rank for c in cards]
    if len(set(ranks)) != len(ranks):
        return False
    return (
        _is_consecutive([_ace_low(r) for r in ranks])
        or _is_consecutive([_ace_high(r) for r in ranks])
    )


def is_valid_set(cards: Sequence[Card]) -> bool:
    """3+ cards of the same rank. Suits may repeat."""
    if len(cards) < MIN_MELD_SIZE:
        return False
    rank = cards[0].rank
    return all(c.rank == rank for c in cards)


def classify_meld(cards: Sequence[Card]) -> Optional[MeldType]:
    """Return SEQUENCE, SET or None when the cards are not a meld. Sequence wins ties."""
    if is_valid_sequence(cards):
        return MeldType.SEQUENCE
    if is_valid_set(cards):
        return MeldType.SET
    return None


def sort_meld_cards(meld_type: MeldType, cards: Iterable[Card]) -> List[Card]:
    """Order a meld for display; sequences run low to high with an ace-high run ending in A."""
    cards = list(cards)
    if meld_type != MeldType.SEQUENCE:
        return cards
    ranks = [c.rank for c in cards]
    if Rank.ACE in ranks and Rank.KING in ranks:
        return sorted(cards, key=lambda c: _ace_high(c.rank))
    return sorted(cards, key=lambda c: _ace_low(c.rank))


def can_add_card_to_meld(card: Card, meld: MeldLike) -> bool:
    """
    Check whether a card may be laid off onto a meld.

    Sequences only grow at either end, with no gaps, and only in their own
    suit; K may be followed by A and A may be followed by 2. Sets accept any
    card of their rank.
    """
    if meld.meld_type == MeldType.SEQUENCE:
        return is_valid_sequence(list(meld.cards) + [card])
    return bool(meld.cards) and meld.cards[0].rank == card.rank


def _suit_runs(cards: Sequence[Card]) -> Dict[object, List[int]]:
    """Distinct rank values per suit, ace counted both low and high."""
    by_suit = {}
    for suit in SUITS:
        values = {_ace_low(c.rank) for c in cards if c.suit == suit}
        if 1 in values:
            values.add(ACE_HIGH_VALUE)
        by_suit[suit] = sorted(values)
    return by_suit


def _consecutive_runs(values: List[int]) -> List[List[int]]:
    runs = []
    for v in values:
        if runs and v == runs[-1][-1] + 1:
            runs[-1].append(v)
        else:
            runs.append([v])
    return runs


def find_all_melds(cards: Sequence[Card]) -> List[MeldCandidate]:
    """
    Enumerate candidate melds inside a multiset of cards.

    Sequences: every window of 3+ consecutive ranks per suit (an Ace is never
    used at both ends of the same window). Sets: the full group of each rank
    holding 3+ cards.
    """
    melds = []

    for suit, values in _suit_runs(cards).items():
        for run in _consecutive_runs(values):
            for start in range(len(run) - MIN_MELD_SIZE + 1):
                for end in range(start + MIN_MELD_SIZE, len(run) + 1):
                    window = run[start:end]
                    if 1 in window and ACE_HIGH_VALUE in window:
                        continue
                    seq = tuple(Card(rank_from_order(v), suit) for v in window)
                    melds.append(MeldCandidate(MeldType.SEQUENCE, seq))

    for rank in RANKS:
        group = tuple(c for c in cards if c.rank == rank)
        if is_valid_set(group):
            melds.append(MeldCandidate(MeldType.SET, group))

    return melds


def decompose_into_melds(cards: Sequence[Card]) -> Optional[List[MeldCandidate]]:
    """
    Cover every card with disjoint melds, or return None.

    Greedy: candidates from find_all_melds, longest first, each taken for as
    long as enough unused copies of its cards remain. This can miss covers
    that exist.
    """
    if not cards:
        return None
    available = Counter(cards)
    chosen = []
    candidates = sorted(find_all_melds(cards), key=lambda m: len(m.cards), reverse=True)
    for meld in candidates:
        need = Counter(meld.cards)
        while all(available[c] >= n for c, n in need.items()):
            available.subtract(need)
            chosen.append(meld)
    if +available:
        return None
    return chosen


def find_expandable_meld(cards: Sequence[Card]) -> Optional[MeldCandidate]:
    """
    Accept a selection larger than a minimal meld.

    Finds a base meld of 3 cards inside the selection and appends the
    remaining cards one at a time, each append keeping the meld valid.
    Returns the expanded meld when every selected card was absorbed.
    """
    if len(cards) < MIN_MELD_SIZE:
        return None

    for base in find_all_melds(cards):
        if len(base.cards) != MIN_MELD_SIZE and base.meld_type == MeldType.SEQUENCE:
            continue
        base_cards = list(base.cards[:MIN_MELD_SIZE])
        remaining = Counter(cards)
        remaining.subtract(Counter(base_cards))
        if any(n < 0 for n in remaining.values()):
            continue
        pending = list((+remaining).elements())
        meld = MeldCandidate(base.meld_type, tuple(base_cards))

        progressed = True
        while pending and progressed:
            progressed = False
            for card in list(pending):
                if can_add_card_to_meld(card, meld):
                    meld = MeldCandidate(meld.meld_type, meld.cards + (card,))
                    pending.remove(card)
                    progressed = True

        if not pending:
            return MeldCandidate(meld.meld_type, tuple(sort_meld_cards(meld.meld_type, meld.cards)))

    return None


def resolve_meld(cards: Sequence[Card]) -> Optional[MeldCandidate]:
    """Classify a selection as-is, falling back to base-plus-extras expansion."""
    meld_type = classify_meld(cards)
    if meld_type is not None:
        return MeldCandidate(meld_type, tuple(sort_meld_cards(meld_type, cards)))
    return find_expandable_meld(cards)


def validate_multiple_melds(
    selected_cards: Sequence[Card],
    proposed: Sequence[Sequence[Card]]
) -> Tuple[bool, Optional[str]]:
    """
    Check that every proposed meld is valid and that together they fit in
    selected_cards, respecting duplicate counts.

    Returns:
        Tuple of (valid, error message)
    """
    if not proposed:
        return False, "No melds given"

    for meld_cards in proposed:
        if classify_meld(list(meld_cards)) is None:
            return False, "One or more melds are invalid"

    needed = Counter(c for meld_cards in proposed for c in meld_cards)
    available = Counter(selected_cards)
    for card, count in needed.items():
        if available[card] < count:
            return False, f"Not enough copies of {card} for these melds"

    return True, None


def suggest_melds(cards: Sequence[Card]) -> List[MeldCandidate]:
    """Greedy grouping hint: longest run per suit first, then sets from what is left."""
    melds = []
    unused = Counter(cards)

    for suit, values in _suit_runs(cards).items():
        for run in _consecutive_runs(values):
            if 1 in run and ACE_HIGH_VALUE in run:
                run = [v for v in run if v != 1]
            if len(run) >= MIN_MELD_SIZE:
                seq = tuple(Card(rank_from_order(v), suit) for v in run)
                melds.append(MeldCandidate(MeldType.SEQUENCE, seq))
                unused.subtract(Counter(seq))

    leftover = list((+unused).elements())
    for rank in RANKS:
        group = tuple(c for c in leftover if c.rank == rank)
        if is_valid_set(group):
            melds.append(MeldCandidate(MeldType.SET, group))

    return melds


def can_go_out_with_layoff(hand: Sequence[Card], melds: Sequence[MeldLike]) -> bool:
    """True when all but at most one card of the hand fit onto existing melds."""
    if not hand:
        return False
    if len(hand) == 1:
        return True
    fitting = sum(1 for card in hand if any(can_add_card_to_meld(card, m) for m in melds))
    return fitting >= len(hand) - 1
