"""
Tests for the card model, shuffling, dealing and rule configuration.
"""

from collections import Counter

import pytest
from pydantic import ValidationError
from pontinhos_engine.cards import (
    Card, Rank, Suit, build_double_deck, card_color, create_deck, display_card,
    format_card, parse_card, parse_cards, rank_from_order, rank_order, sort_cards
)
from pontinhos_engine.rules import RuleConfig, create_rules, default_rules
from pontinhos_engine.shuffle import deal_cards, shuffle_deck


def test_double_deck_has_two_copies_of_each_card():
    """The double deck holds 104 cards, two of every value."""
    deck = build_double_deck()
    assert len(deck) == 104
    counts = Counter(deck)
    assert len(counts) == 52
    assert all(n == 2 for n in counts.values())


def test_parse_and_format_card():
    card = parse_card("TD")
    assert card == Card(Rank.TEN, Suit.DIAMONDS)
    assert format_card(card) == "TD"
    assert str(card) == "TD"
    assert parse_card("as") == Card(Rank.ACE, Suit.SPADES)


@pytest.mark.parametrize("bad", ["", "10D", "1S", "AX", "A"])
def test_parse_card_rejects_bad_input(bad):
    with pytest.raises(ValueError):
        parse_card(bad)


def test_parse_cards_accepts_string_or_list():
    assert parse_cards("5S 6S") == parse_cards(["5S", "6S"])
    assert parse_cards("") == []


def test_display_and_color():
    assert display_card(parse_card("TD")) == "10♦"
    assert display_card(parse_card("AS")) == "A♠"
    assert card_color(parse_card("2H")) == "red"
    assert card_color(parse_card("2C")) == "black"


def test_rank_order_ace_low_and_high():
    assert rank_order(Rank.ACE) == 1
    assert rank_order(Rank.KING) == 13
    assert rank_from_order(1) == Rank.ACE
    assert rank_from_order(14) == Rank.ACE
    assert rank_from_order(10) == Rank.TEN


def test_sort_cards_by_suit_then_rank():
    cards = parse_cards("KS 2H AS TD 3H")
    assert [format_card(c) for c in sort_cards(cards)] == ["2H", "3H", "TD", "AS", "KS"]


def test_shuffle_is_a_seeded_permutation():
    """Same seed, same order; the multiset never changes and the input is untouched."""
    deck = build_double_deck()
    first = shuffle_deck(deck, seed=42)
    second = shuffle_deck(deck, seed=42)
    assert first == second
    assert Counter(first) == Counter(deck)
    assert deck == build_double_deck()
    assert shuffle_deck(deck, seed=7) != first


def test_deal_cards_in_seat_order():
    deck = create_deck() + create_deck()
    hands, stock = deal_cards(deck, ["p1", "p2", "p3"], 9)
    assert hands["p1"] == deck[0:9]
    assert hands["p2"] == deck[9:18]
    assert hands["p3"] == deck[18:27]
    assert stock == deck[27:]


def test_deal_cards_needs_enough_cards():
    with pytest.raises(ValueError):
        deal_cards(create_deck()[:10], ["p1", "p2"], 9)


def test_default_rules():
    assert default_rules.ace_value == 15
    assert default_rules.hand_size == 9
    assert default_rules.max_hand_size == 10
    assert default_rules.knock_window_seconds == 40
    assert default_rules.elimination_threshold == 100
    assert default_rules.validate_player_count(2)
    assert default_rules.validate_player_count(4)
    assert not default_rules.validate_player_count(5)


def test_rules_validation():
    """Aces cost 11 or 15, and the player range must be ordered."""
    assert create_rules(ace_value=11).ace_value == 11
    with pytest.raises(ValidationError):
        RuleConfig(ace_value=12)
    with pytest.raises(ValidationError):
        RuleConfig(min_players=4, max_players=3)
    with pytest.raises(ValidationError):
        RuleConfig(hand_size=9, max_hand_size=9)
