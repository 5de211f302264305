"""Card model, double deck and card boundary helpers"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Union


class Suit(str, Enum):
    HEARTS = 'H'
    DIAMONDS = 'D'
    CLUBS = 'C'
    SPADES = 'S'


class Rank(str, Enum):
    ACE = 'A'
    TWO = '2'
    THREE = '3'
    FOUR = '4'
    FIVE = '5'
    SIX = '6'
    SEVEN = '7'
    EIGHT = '8'
    NINE = '9'
    TEN = 'T'
    JACK = 'J'
    QUEEN = 'Q'
    KING = 'K'


SUITS = [Suit.HEARTS, Suit.DIAMONDS, Suit.CLUBS, Suit.SPADES]
RANKS = list(Rank)

SUIT_SYMBOLS = {Suit.HEARTS: '♥', Suit.DIAMONDS: '♦', Suit.CLUBS: '♣', Suit.SPADES: '♠'}
SUIT_COLORS = {Suit.HEARTS: 'red', Suit.DIAMONDS: 'red', Suit.CLUBS: 'black', Suit.SPADES: 'black'}

ACE_HIGH_VALUE = 14


@dataclass(frozen=True)
class Card:
    rank: Rank
    suit: Suit

    def __str__(self) -> str:
        return format_card(self)

    def __repr__(self) -> str:
        return f"Card({format_card(self)})"


def rank_order(rank: Rank) -> int:
    """Ace-low value 1..13 used for sequence adjacency."""
    return RANKS.index(rank) + 1


def rank_from_order(value: int) -> Rank:
    """Inverse of rank_order; 14 maps back to the Ace (ace-high)."""
    if value == ACE_HIGH_VALUE:
        return Rank.ACE
    return RANKS[value - 1]


def parse_card(card_id: str) -> Card:
    """Parse the two-character form used at the boundary, e.g. 'TD' or '5S'."""
    if len(card_id) != 2:
        raise ValueError(f"Invalid card: {card_id!r}")
    try:
        return Card(Rank(card_id[0].upper()), Suit(card_id[1].upper()))
    except ValueError:
        raise ValueError(f"Invalid card: {card_id!r}")


def parse_cards(cards: Union[str, Iterable[str]]) -> List[Card]:
    """Parse a whitespace separated string or an iterable of card ids."""
    if isinstance(cards, str):
        cards = cards.split()
    return [parse_card(c) for c in cards]


def format_card(card: Card) -> str:
    return f"{card.rank.value}{card.suit.value}"


def format_cards(cards: Iterable[Card]) -> List[str]:
    return [format_card(c) for c in cards]


def display_card(card: Card) -> str:
    rank = '10' if card.rank == Rank.TEN else card.rank.value
    return f"{rank}{SUIT_SYMBOLS[card.suit]}"


def card_color(card: Card) -> str:
    return SUIT_COLORS[card.suit]


def create_deck() -> List[Card]:
    return [Card(rank, suit) for suit in SUITS for rank in RANKS]


def build_double_deck() -> List[Card]:
    """Two standard decks, 104 cards. Duplicate values are distinct physical cards."""
    return create_deck() + create_deck()


def sort_cards(cards: Iterable[Card]) -> List[Card]:
    """Sort by suit (H, D, C, S) then ace-low rank."""
    return sorted(cards, key=lambda c: (SUITS.index(c.suit), rank_order(c.rank)))
