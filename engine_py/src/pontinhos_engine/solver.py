"""
Go-out scenario solver.

Given a hand and the visible discard top, find a legal way to empty the
hand. Nothing here mutates state; the engine turns the returned scenario
into a transition.
"""

from collections import Counter
from typing import List, Optional, Sequence, Tuple, Union

from .cards import Card
from .melds import classify_meld, decompose_into_melds, is_valid_set
from .models import GoOutScenario, MeldCandidate, MeldType, ScenarioType

SolverResult = Union[GoOutScenario, str]


def _scenario1(hand: Sequence[Card], discard_top: Card) -> Optional[GoOutScenario]:
    if len(hand) != 2:
        return None
    set_cards = (hand[0], hand[1], discard_top)
    if is_valid_set(set_cards):
        return GoOutScenario(ScenarioType.SCENARIO1, (MeldCandidate(MeldType.SET, set_cards),))
    return None


def _scenario2(hand: Sequence[Card], discard_top: Card) -> Optional[GoOutScenario]:
    if len(hand) != 3:
        return None
    for i in range(3):
        for j in range(i + 1, 3):
            set_cards = (hand[i], hand[j], discard_top)
            if is_valid_set(set_cards):
                leftover = hand[3 - i - j]
                return GoOutScenario(
                    ScenarioType.SCENARIO2,
                    (MeldCandidate(MeldType.SET, set_cards),),
                    discard_card=leftover
                )
    return None


def _without_one(cards: Sequence[Card], card: Card) -> List[Card]:
    rest = list(cards)
    rest.remove(card)
    return rest


def _normal(hand: Sequence[Card]) -> Optional[Tuple[Tuple[MeldCandidate, ...], Card]]:
    """First discard choice (in hand order) that leaves a fully covered hand."""
    tried = set()
    for card in hand:
        if card in tried:
            continue
        tried.add(card)
        melds = decompose_into_melds(_without_one(hand, card))
        if melds is not None:
            return tuple(melds), card
    return None


def _contains(melds: Sequence[MeldCandidate], card: Card) -> bool:
    return any(card in m.cards for m in melds)


def cover_keeping(cards: Sequence[Card], required: Optional[Card]) -> Optional[GoOutScenario]:
    """
    Search used for an off-turn go-out: melds covering every card, with or
    without one card thrown away, where `required` must end up inside a meld
    (never as the card thrown back). No requirement when required is None.
    """
    def acceptable(melds):
        return melds is not None and (required is None or _contains(melds, required))

    def cover(rest):
        return decompose_into_melds(rest) if rest else []

    if not cards:
        return None

    melds = decompose_into_melds(cards)
    if acceptable(melds):
        return GoOutScenario(ScenarioType.PICKUP_DISCARD, tuple(melds))

    tried = set()
    for card in cards:
        if card in tried:
            continue
        tried.add(card)
        melds = cover(_without_one(cards, card))
        # a duplicate of the required card may be thrown back, one copy still melds
        if acceptable(melds):
            return GoOutScenario(ScenarioType.PICKUP_DISCARD, tuple(melds), discard_card=card)
    return None


def can_go_out_with_scenarios(
    hand: Sequence[Card],
    discard_top: Optional[Card],
    off_turn: bool = False
) -> SolverResult:
    """
    Find a way to go out with the given hand.

    Tries, in order: Scenario1 (pair + discard top, nothing discarded),
    Scenario2 (pair + discard top, third card discarded), Normal (melds plus
    one discard), all-in (melds only) and, when off_turn is set, PickupDiscard.

    Args:
        hand: Cards in hand
        discard_top: Visible top of the discard pile, if any
        off_turn: Allow the out-of-turn PickupDiscard search

    Returns:
        A GoOutScenario, or a human-readable reason string on failure
    """
    if not hand:
        return "Hand is empty"

    if discard_top is not None:
        scenario = _scenario1(hand, discard_top) or _scenario2(hand, discard_top)
        if scenario is not None:
            return scenario

    if len(hand) >= 4:
        found = _normal(hand)
        if found is not None:
            melds, discard_card = found
            return GoOutScenario(ScenarioType.NORMAL, melds, discard_card=discard_card)

    if len(hand) >= 3:
        melds = decompose_into_melds(hand)
        if melds is not None:
            return GoOutScenario(ScenarioType.NORMAL, tuple(melds))

    if off_turn and discard_top is not None:
        scenario = cover_keeping(list(hand) + [discard_top], discard_top)
        if scenario is not None:
            return scenario

    return "Cards do not form valid melds to go out"


def scenario_cards(scenario: GoOutScenario) -> Counter:
    """Multiset of every card a scenario places on the table or discards."""
    cards = Counter(c for meld in scenario.melds for c in meld.cards)
    if scenario.discard_card is not None:
        cards[scenario.discard_card] += 1
    return cards


def check_discard_set_shape(
    scenario: GoOutScenario,
    hand: Sequence[Card],
    discard_top: Card
) -> Optional[str]:
    """
    Scenario1 and Scenario2 are one set of three: the discard top plus two
    hand cards. Scenario1 holds exactly 2 cards, Scenario2 exactly 3 with
    the third one discarded.

    Returns:
        None when the shape fits, otherwise the reason it does not
    """
    hand_size = 2 if scenario.scenario_type == ScenarioType.SCENARIO1 else 3
    if len(hand) != hand_size:
        return f"{scenario.scenario_type.value} needs exactly {hand_size} cards in hand"
    if len(scenario.melds) != 1:
        return f"{scenario.scenario_type.value} lays down exactly one set"
    meld = scenario.melds[0]
    if len(meld.cards) != 3 or not is_valid_set(meld.cards):
        return f"{scenario.scenario_type.value} lays down a set of three cards"
    if discard_top not in meld.cards:
        return "The discard top must be part of the set"
    return None


def validate_scenario(scenario: GoOutScenario, available: Sequence[Card]) -> Optional[str]:
    """
    Check a caller-supplied scenario.

    Every meld must be valid and the scenario must use exactly the
    available cards, no more and no fewer.

    Returns:
        None when acceptable, otherwise the reason it is not
    """
    for meld in scenario.melds:
        if classify_meld(list(meld.cards)) is None:
            return f"Invalid meld: {' '.join(str(c) for c in meld.cards)}"
    if scenario.scenario_type == ScenarioType.SCENARIO1 and scenario.discard_card is not None:
        return "Scenario1 does not discard"
    if scenario.scenario_type == ScenarioType.SCENARIO2 and scenario.discard_card is None:
        return "Scenario2 needs a discard card"
    if scenario_cards(scenario) != Counter(available):
        return "Melds and discard must use exactly the cards in hand"
    return None
