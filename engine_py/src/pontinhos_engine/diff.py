"""
Change detection between two committed room snapshots.
"""

from typing import Optional, Set

from .models import EntityKind, RoomState

SESSION_FIELDS = [
    "status", "player_order", "players", "turn_index", "round",
    "first_pass_complete", "pause", "last_action", "last_discard_by",
    "went_out_id", "winner_id", "rules", "game_log",
]


def changed_entities(old: Optional[RoomState], new: RoomState) -> Set[EntityKind]:
    """
    Compute which entity kinds differ between two snapshots.

    Args:
        old: Previous snapshot, or None for a newly created room
        new: Snapshot about to be committed

    Returns:
        Set of changed entity kinds; empty when nothing changed
    """
    if old is None:
        return set(EntityKind)

    changed = set()
    if any(getattr(old, f) != getattr(new, f) for f in SESSION_FIELDS):
        changed.add(EntityKind.SESSION)
    if old.hands != new.hands:
        changed.add(EntityKind.HAND)
    if old.melds != new.melds:
        changed.add(EntityKind.MELDS)
    if old.stock != new.stock or old.discard != new.discard:
        changed.add(EntityKind.DECK)
    return changed
