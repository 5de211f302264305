"""
Transaction wrapper shared by every state-changing operation.
"""

import time
from typing import Any, Callable, Optional

from .errors import IllegalMove
from .models import RoomState
from .store import SessionStore
from .validate import ValidationResult, check_card_conservation
from .window import expire_due_window


class ActionResult:
    """Outcome of a game operation."""

    def __init__(
        self,
        success: bool,
        state: Optional[RoomState] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        data: Any = None
    ):
        self.success = success
        self.state = state
        self.error_code = error_code
        self.error_message = error_message
        self.data = data

    @classmethod
    def ok(cls, state: RoomState, data: Any = None) -> 'ActionResult':
        return cls(success=True, state=state, data=data)

    @classmethod
    def failure(cls, error_code: str, error_message: str) -> 'ActionResult':
        return cls(success=False, error_code=error_code, error_message=error_message)

    def __repr__(self) -> str:
        if self.success:
            return f"ActionResult(success=True, data={self.data!r})"
        return f"ActionResult(success=False, error_code={self.error_code!r})"


def require(result: ValidationResult) -> None:
    """Turn a failed precondition into an IllegalMove."""
    if not result.valid:
        raise IllegalMove(result.error_code, result.error_message)


def run_action(
    store: SessionStore,
    room_id: str,
    action: Callable[[RoomState], Any],
    now: Optional[float] = None
) -> ActionResult:
    """
    Run one operation as a single transaction.

    A knock window that is already past its deadline is rolled back first,
    in its own transaction, so the operation sees the post-expiry state.
    Card conservation is checked before the operation's commit.

    IllegalMove becomes a failed ActionResult. TransientConflict and
    InvariantViolation propagate to the caller.

    Args:
        store: Session store
        room_id: Room to act on
        action: Mutates the snapshot it is given; raises IllegalMove to abort
        now: Current wall-clock time, defaults to time.time()

    Returns:
        ActionResult with the committed state and whatever action returned
    """
    now = time.time() if now is None else now

    def transaction(state: RoomState):
        data = action(state)
        check_card_conservation(state)
        return state, data

    try:
        expire_due_window(store, room_id, now)
        state, data = store.transact(room_id, transaction)
    except IllegalMove as e:
        return ActionResult.failure(e.code, e.message)
    return ActionResult.ok(state, data)
