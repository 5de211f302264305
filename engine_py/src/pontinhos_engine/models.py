"""Game models and data structures"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from .cards import Card
from .rules import RuleConfig, default_rules


class GameStatus(str, Enum):
    LOBBY = 'lobby'
    PLAYING = 'playing'
    ROUND_END = 'round_end'
    FINISHED = 'finished'


class TurnPhase(str, Enum):
    AWAITING_DRAW = 'awaiting_draw'
    AWAITING_ACTION = 'awaiting_action'
    ROUND_END = 'round_end'


class MeldType(str, Enum):
    SEQUENCE = 'sequence'
    SET = 'set'


class ScenarioType(str, Enum):
    NORMAL = 'normal'
    SCENARIO1 = 'scenario1'  # two hand cards + discard top make a set, nothing discarded
    SCENARIO2 = 'scenario2'  # as scenario1, a third hand card becomes the discard
    PICKUP_DISCARD = 'pickup_discard'  # off-turn, discard top must end up inside a meld


class EntityKind(str, Enum):
    SESSION = 'session'
    HAND = 'hand'
    MELDS = 'melds'
    DECK = 'deck'


@dataclass(frozen=True)
class MeldCandidate:
    """A proposed group of cards, not yet on the table."""
    meld_type: MeldType
    cards: Tuple[Card, ...]


@dataclass
class Meld:
    """A laid-down meld. Cards may be added (layoff), never removed."""
    id: str
    meld_type: MeldType
    cards: List[Card]
    owner_id: str


@dataclass(frozen=True)
class GoOutScenario:
    scenario_type: ScenarioType
    melds: Tuple[MeldCandidate, ...]
    discard_card: Optional[Card] = None

    @property
    def uses_discard_top(self) -> bool:
        return self.scenario_type in (
            ScenarioType.SCENARIO1, ScenarioType.SCENARIO2, ScenarioType.PICKUP_DISCARD
        )


@dataclass(frozen=True)
class Unpaused:
    pass


@dataclass
class PausedBy:
    """An open knock window owned by one non-active player."""
    player_id: str
    started_at: float
    picked_card: Card
    hand_before: List[Card]
    staged_melds: List[MeldCandidate] = field(default_factory=list)
    staged_layoffs: List[Tuple[str, Card]] = field(default_factory=list)

    def staged_cards(self) -> List[Card]:
        cards = [c for meld in self.staged_melds for c in meld.cards]
        cards.extend(card for _, card in self.staged_layoffs)
        return cards


PauseState = Union[Unpaused, PausedBy]


@dataclass
class Player:
    id: str
    score: int = 0
    has_drawn_this_turn: bool = False
    is_blocked: bool = False  # legacy flag, reset at round start only


@dataclass
class RoomState:
    id: str
    version: int = 0
    status: GameStatus = GameStatus.LOBBY
    player_order: List[str] = field(default_factory=list)
    players: Dict[str, Player] = field(default_factory=dict)
    hands: Dict[str, List[Card]] = field(default_factory=dict)
    stock: List[Card] = field(default_factory=list)
    discard: List[Card] = field(default_factory=list)
    melds: List[Meld] = field(default_factory=list)
    turn_index: int = 0
    round: int = 0
    first_pass_complete: bool = False
    pause: PauseState = field(default_factory=Unpaused)
    last_action: Optional[str] = None
    last_discard_by: Optional[str] = None
    went_out_id: Optional[str] = None  # player who emptied their hand
    winner_id: Optional[str] = None  # declared winner after reassignment
    rules: RuleConfig = field(default_factory=lambda: default_rules.model_copy())
    game_log: List[str] = field(default_factory=list)
    meld_seq: int = 0

    @property
    def discard_top(self) -> Optional[Card]:
        return self.discard[-1] if self.discard else None

    @property
    def active_player_id(self) -> Optional[str]:
        if not self.player_order:
            return None
        return self.player_order[self.turn_index]

    @property
    def is_paused(self) -> bool:
        return isinstance(self.pause, PausedBy)

    @property
    def paused_by(self) -> Optional[str]:
        return self.pause.player_id if isinstance(self.pause, PausedBy) else None

    @property
    def pause_started_at(self) -> Optional[float]:
        return self.pause.started_at if isinstance(self.pause, PausedBy) else None

    @property
    def turn_phase(self) -> Optional[TurnPhase]:
        if self.status == GameStatus.ROUND_END:
            return TurnPhase.ROUND_END
        if self.status != GameStatus.PLAYING:
            return None
        active = self.players[self.active_player_id]
        return TurnPhase.AWAITING_ACTION if active.has_drawn_this_turn else TurnPhase.AWAITING_DRAW

    def find_meld(self, meld_id: str) -> Optional[Meld]:
        return next((m for m in self.melds if m.id == meld_id), None)

    def next_meld_id(self) -> str:
        self.meld_seq += 1
        return f"m{self.round}-{self.meld_seq}"

    def add_meld(self, meld_type: MeldType, cards: List[Card], owner_id: str) -> Meld:
        meld = Meld(id=self.next_meld_id(), meld_type=meld_type, cards=list(cards), owner_id=owner_id)
        self.melds.append(meld)
        return meld

    def log(self, message: str, keep: int = 200):
        self.last_action = message
        self.game_log.append(message)
        del self.game_log[:-keep]
