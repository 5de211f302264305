"""
State serialization and sanitization utilities.
"""

from typing import Any, Dict, Optional

from .cards import format_card, format_cards
from .models import GoOutScenario, Meld, PausedBy, RoomState
from .rules import RuleConfig


def sanitize_state(state: RoomState, viewer_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Sanitize room state for transmission to clients.

    Args:
        state: Room state to sanitize
        viewer_id: ID of the player viewing the state (to show their cards)

    Returns:
        Sanitized state dictionary safe for JSON transmission
    """
    sanitized = {
        "id": state.id,
        "version": state.version,
        "status": state.status.value,
        "round": state.round,
        "player_order": list(state.player_order),
        "turn_index": state.turn_index,
        "active_player": state.active_player_id,
        "turn_phase": state.turn_phase.value if state.turn_phase else None,
        "first_pass_complete": state.first_pass_complete,
        "discard_top": format_card(state.discard_top) if state.discard_top else None,
        "discard_count": len(state.discard),
        "stock_count": len(state.stock),
        "melds": [_serialize_meld(m) for m in state.melds],
        "pause": _serialize_pause(state, viewer_id),
        "last_action": state.last_action,
        "last_discard_by": state.last_discard_by,
        "went_out_id": state.went_out_id,
        "winner_id": state.winner_id,
        "players": {},
        "rules": _serialize_rule_config(state.rules),
    }

    for player_id in state.player_order:
        player = state.players[player_id]
        hand = state.hands.get(player_id, [])
        sanitized_player = {
            "id": player.id,
            "score": player.score,
            "has_drawn_this_turn": player.has_drawn_this_turn,
            "hand_count": len(hand),
        }

        # Show full hand only to the viewer
        if player_id == viewer_id:
            sanitized_player["hand"] = format_cards(hand)

        sanitized["players"][player_id] = sanitized_player

    return sanitized


def _serialize_meld(meld: Meld) -> Dict[str, Any]:
    return {
        "id": meld.id,
        "type": meld.meld_type.value,
        "cards": format_cards(meld.cards),
        "owner_id": meld.owner_id,
    }


def _serialize_pause(state: RoomState, viewer_id: Optional[str]) -> Optional[Dict[str, Any]]:
    pause = state.pause
    if not isinstance(pause, PausedBy):
        return None
    data = {
        "player_id": pause.player_id,
        "started_at": pause.started_at,
        "expires_at": pause.started_at + state.rules.knock_window_seconds,
        "picked_card": format_card(pause.picked_card),
    }
    # staging is private to the knocking player
    if viewer_id == pause.player_id:
        data["staged_melds"] = [format_cards(m.cards) for m in pause.staged_melds]
        data["staged_layoffs"] = [
            {"meld_id": meld_id, "card": format_card(card)}
            for meld_id, card in pause.staged_layoffs
        ]
    return data


def _serialize_rule_config(rules: RuleConfig) -> Dict[str, Any]:
    return rules.model_dump()


def serialize_scenario(scenario: GoOutScenario) -> Dict[str, Any]:
    return {
        "type": scenario.scenario_type.value,
        "melds": [
            {"type": m.meld_type.value, "cards": format_cards(m.cards)}
            for m in scenario.melds
        ],
        "discard_card": format_card(scenario.discard_card) if scenario.discard_card else None,
    }
