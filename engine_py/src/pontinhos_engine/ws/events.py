"""
WebSocket event models and validation.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..cards import parse_card


class EventType(str, Enum):
    """Inbound event types."""
    REQUEST_STATE = "request_state"
    START_ROUND = "start_round"
    DRAW_STOCK = "draw_stock"
    DRAW_DISCARD = "draw_discard"
    DISCARD = "discard"
    LAY_DOWN = "lay_down"
    LAYOFF = "layoff"
    GO_OUT = "go_out"
    KNOCK = "knock"
    GIVE_UP = "give_up"
    CHECK_GO_OUT = "check_go_out"
    REORDER = "reorder"
    SETTLE_ROUND = "settle_round"


class OutboundEventType(str, Enum):
    """Outbound event types."""
    STATE_FULL = "state_full"
    ERROR = "error"
    GO_OUT_HINT = "go_out_hint"


# Transport-level codes; engine failures reuse the engine's error codes
INVALID_EVENT = "INVALID_EVENT"
INTERNAL = "INTERNAL"


def _check_card(card: str) -> str:
    parse_card(card)
    return card.upper()


# Inbound event models
class BaseEvent(BaseModel):
    """Base event model."""
    type: EventType


class RequestStateEvent(BaseEvent):
    type: EventType = EventType.REQUEST_STATE


class StartRoundEvent(BaseEvent):
    type: EventType = EventType.START_ROUND
    seed: Optional[int] = None


class DrawStockEvent(BaseEvent):
    type: EventType = EventType.DRAW_STOCK


class DrawDiscardEvent(BaseEvent):
    type: EventType = EventType.DRAW_DISCARD


class DiscardEvent(BaseEvent):
    """Discard one card, e.g. {"type": "discard", "card": "TD"}."""
    type: EventType = EventType.DISCARD
    card: str

    @field_validator('card')
    @classmethod
    def validate_card(cls, v):
        return _check_card(v)


class LayDownEvent(BaseEvent):
    """One or more melds; each selection may carry extra fitting cards."""
    type: EventType = EventType.LAY_DOWN
    melds: List[List[str]] = Field(..., min_length=1)

    @field_validator('melds')
    @classmethod
    def validate_melds(cls, v):
        if any(len(cards) < 3 for cards in v):
            raise ValueError("Every meld needs at least 3 cards")
        return [[_check_card(c) for c in cards] for cards in v]


class LayoffEvent(BaseEvent):
    type: EventType = EventType.LAYOFF
    meld_id: str = Field(..., min_length=1)
    card: str

    @field_validator('card')
    @classmethod
    def validate_card(cls, v):
        return _check_card(v)


class GoOutEvent(BaseEvent):
    type: EventType = EventType.GO_OUT


class KnockEvent(BaseEvent):
    type: EventType = EventType.KNOCK


class GiveUpEvent(BaseEvent):
    type: EventType = EventType.GIVE_UP


class CheckGoOutEvent(BaseEvent):
    type: EventType = EventType.CHECK_GO_OUT


class ReorderEvent(BaseEvent):
    type: EventType = EventType.REORDER
    cards: List[str]

    @field_validator('cards')
    @classmethod
    def validate_cards(cls, v):
        return [_check_card(c) for c in v]


class SettleRoundEvent(BaseEvent):
    type: EventType = EventType.SETTLE_ROUND


# Union type for all inbound events
InboundEvent = Union[
    RequestStateEvent,
    StartRoundEvent,
    DrawStockEvent,
    DrawDiscardEvent,
    DiscardEvent,
    LayDownEvent,
    LayoffEvent,
    GoOutEvent,
    KnockEvent,
    GiveUpEvent,
    CheckGoOutEvent,
    ReorderEvent,
    SettleRoundEvent,
]


# Outbound event models
class StateFullEvent(BaseModel):
    """Full state event, sanitized for the receiving player."""
    type: OutboundEventType = OutboundEventType.STATE_FULL
    state: Dict[str, Any]
    timestamp: float


class ErrorEvent(BaseModel):
    """Error event."""
    type: OutboundEventType = OutboundEventType.ERROR
    code: str
    message: str
    timestamp: float


class GoOutHintEvent(BaseModel):
    """Answer to check_go_out."""
    type: OutboundEventType = OutboundEventType.GO_OUT_HINT
    can_go_out: bool
    scenario: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    timestamp: float


EVENT_MAP = {
    EventType.REQUEST_STATE: RequestStateEvent,
    EventType.START_ROUND: StartRoundEvent,
    EventType.DRAW_STOCK: DrawStockEvent,
    EventType.DRAW_DISCARD: DrawDiscardEvent,
    EventType.DISCARD: DiscardEvent,
    EventType.LAY_DOWN: LayDownEvent,
    EventType.LAYOFF: LayoffEvent,
    EventType.GO_OUT: GoOutEvent,
    EventType.KNOCK: KnockEvent,
    EventType.GIVE_UP: GiveUpEvent,
    EventType.CHECK_GO_OUT: CheckGoOutEvent,
    EventType.REORDER: ReorderEvent,
    EventType.SETTLE_ROUND: SettleRoundEvent,
}


def parse_inbound_event(data: Dict[str, Any]) -> InboundEvent:
    """
    Parse raw event data into appropriate event model.

    Args:
        data: Raw event data from WebSocket

    Returns:
        Parsed event model

    Raises:
        ValueError: If event type is invalid or data is malformed
    """
    if not isinstance(data, dict):
        raise ValueError("Event must be a JSON object")
    event_type = data.get("type")

    if not event_type:
        raise ValueError("Missing event type")

    try:
        event_type = EventType(event_type)
    except ValueError:
        raise ValueError(f"Invalid event type: {event_type}")

    try:
        return EVENT_MAP[event_type](**data)
    except Exception as e:
        raise ValueError(f"Invalid event data: {str(e)}")


def create_error_event(code: str, message: str) -> ErrorEvent:
    return ErrorEvent(code=code, message=message, timestamp=time.time())


def create_state_full_event(state: Dict[str, Any]) -> StateFullEvent:
    return StateFullEvent(state=state, timestamp=time.time())


def create_go_out_hint_event(scenario: Optional[Dict[str, Any]], reason: Optional[str]) -> GoOutHintEvent:
    return GoOutHintEvent(
        can_go_out=scenario is not None,
        scenario=scenario,
        reason=reason,
        timestamp=time.time()
    )
