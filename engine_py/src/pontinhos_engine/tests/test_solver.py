"""
Tests for the go-out scenario solver.
"""

from collections import Counter

from pontinhos_engine.cards import parse_card, parse_cards
from pontinhos_engine.models import GoOutScenario, MeldCandidate, MeldType, ScenarioType
from pontinhos_engine.solver import (
    can_go_out_with_scenarios, cover_keeping, scenario_cards, validate_scenario
)


def meld_cards(scenario):
    return Counter(c for m in scenario.melds for c in m.cards)


def test_scenario1_pair_plus_discard_top():
    """Two 4s in hand and a 4 on the discard pile: out with nothing to discard."""
    result = can_go_out_with_scenarios(parse_cards("4S 4H"), parse_card("4D"))
    assert isinstance(result, GoOutScenario)
    assert result.scenario_type == ScenarioType.SCENARIO1
    assert len(result.melds) == 1
    assert result.melds[0].meld_type == MeldType.SET
    assert meld_cards(result) == Counter(parse_cards("4S 4H 4D"))
    assert result.discard_card is None
    assert result.uses_discard_top


def test_scenario1_needs_matching_top():
    result = can_go_out_with_scenarios(parse_cards("4S 4H"), parse_card("5D"))
    assert isinstance(result, str)


def test_scenario2_third_card_is_discarded():
    result = can_go_out_with_scenarios(parse_cards("KD 4S 4H"), parse_card("4D"))
    assert result.scenario_type == ScenarioType.SCENARIO2
    assert meld_cards(result) == Counter(parse_cards("4S 4H 4D"))
    assert result.discard_card == parse_card("KD")


def test_normal_melds_plus_one_discard():
    result = can_go_out_with_scenarios(parse_cards("5S 6S 7S 9H 9D 9C KD"), None)
    assert result.scenario_type == ScenarioType.NORMAL
    assert result.discard_card == parse_card("KD")
    assert meld_cards(result) == Counter(parse_cards("5S 6S 7S 9H 9D 9C"))
    assert not result.uses_discard_top


def test_all_in_without_discard():
    result = can_go_out_with_scenarios(parse_cards("5S 6S 7S"), parse_card("2C"))
    assert result.scenario_type == ScenarioType.NORMAL
    assert result.discard_card is None


def test_failure_reason():
    assert isinstance(can_go_out_with_scenarios(parse_cards("2C 5D 9H KS"), None), str)
    assert can_go_out_with_scenarios([], parse_card("2C")) == "Hand is empty"


def test_pickup_discard_only_off_turn():
    """The 7 of spades on the pile completes 5-6-7, but only an off-turn search may take it."""
    hand = parse_cards("5S 6S 9H 9D 9C")
    top = parse_card("7S")

    assert isinstance(can_go_out_with_scenarios(hand, top), str)

    result = can_go_out_with_scenarios(hand, top, off_turn=True)
    assert result.scenario_type == ScenarioType.PICKUP_DISCARD
    assert meld_cards(result) == Counter(parse_cards("5S 6S 7S 9H 9D 9C"))
    assert result.discard_card is None


def test_cover_keeping_requires_card_in_meld():
    """The required card cannot be borrowed just to be thrown back."""
    cards = parse_cards("5S 6S 7S KD")
    assert cover_keeping(cards, parse_card("KD")) is None

    result = cover_keeping(cards, None)
    assert result.discard_card == parse_card("KD")


def test_cover_keeping_single_card_is_discarded():
    result = cover_keeping(parse_cards("2C"), None)
    assert result.melds == ()
    assert result.discard_card == parse_card("2C")
    assert cover_keeping(parse_cards("2C"), parse_card("2C")) is None


def test_scenario_cards_and_validation():
    scenario = GoOutScenario(
        ScenarioType.NORMAL,
        (MeldCandidate(MeldType.SEQUENCE, tuple(parse_cards("5S 6S 7S"))),),
        discard_card=parse_card("KD")
    )
    assert scenario_cards(scenario) == Counter(parse_cards("5S 6S 7S KD"))
    assert validate_scenario(scenario, parse_cards("KD 7S 6S 5S")) is None
    assert validate_scenario(scenario, parse_cards("KD 7S 6S 5S 2C")) is not None

    broken = GoOutScenario(
        ScenarioType.NORMAL,
        (MeldCandidate(MeldType.SEQUENCE, tuple(parse_cards("5S 6S 8S"))),),
    )
    assert validate_scenario(broken, parse_cards("5S 6S 8S")) is not None
