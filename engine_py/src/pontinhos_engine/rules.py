"""
Game rule configuration and validation.
"""

from pydantic import BaseModel, Field, field_validator


class RuleConfig(BaseModel):
    """Configuration for game rules and settings."""

    ace_value: int = Field(
        default=15,
        description="Points an Ace left in hand costs at round end (11 or 15)"
    )
    allow_layoff: bool = Field(
        default=True,
        description="Allow adding cards to melds already on the table"
    )
    min_players: int = Field(
        default=2,
        ge=2,
        le=4,
        description="Minimum number of players required to start"
    )
    max_players: int = Field(
        default=4,
        ge=2,
        le=4,
        description="Maximum number of players allowed"
    )
    hand_size: int = Field(
        default=9,
        ge=3,
        le=12,
        description="Cards dealt to each player at round start"
    )
    max_hand_size: int = Field(
        default=10,
        ge=4,
        le=13,
        description="A player holding this many cards may not draw"
    )
    knock_window_seconds: float = Field(
        default=40.0,
        gt=0,
        le=600,
        description="How long an out-of-turn knock may hold the room paused"
    )
    elimination_threshold: int = Field(
        default=100,
        ge=1,
        description="Cumulative score at which a player is out of contention"
    )

    @field_validator('ace_value')
    @classmethod
    def validate_ace_value(cls, v):
        """Aces are worth either 11 or 15 points."""
        if v not in (11, 15):
            raise ValueError(f'ace_value must be 11 or 15, got {v}')
        return v

    @field_validator('max_players')
    @classmethod
    def validate_max_players(cls, v, info):
        """Validate maximum players doesn't fall below minimum."""
        min_players = info.data.get('min_players', 2)
        if v < min_players:
            raise ValueError(f'max_players ({v}) must be >= min_players ({min_players})')
        return v

    @field_validator('max_hand_size')
    @classmethod
    def validate_max_hand_size(cls, v, info):
        hand_size = info.data.get('hand_size', 9)
        if v <= hand_size:
            raise ValueError(f'max_hand_size ({v}) must be > hand_size ({hand_size})')
        return v

    def validate_player_count(self, player_count: int) -> bool:
        """Check if a player count is valid for this configuration."""
        return self.min_players <= player_count <= self.max_players


# Default configuration instance
default_rules = RuleConfig()


def create_rules(**overrides) -> RuleConfig:
    """Create a RuleConfig with optional overrides."""
    config_dict = default_rules.model_dump()
    config_dict.update(overrides)
    return RuleConfig(**config_dict)
