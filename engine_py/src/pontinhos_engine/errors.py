# engine_py/src/pontinhos_engine/errors.py

class GameError(Exception):
    """Base exception for game-related errors."""
    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class IllegalMove(GameError):
    """The action violates a precondition. Reported to the caller, never retried."""


class TransientConflict(GameError):
    """A concurrent write won the race. The caller must re-read and retry."""
    def __init__(self, message: str = "Concurrent update, please retry"):
        super().__init__(TRANSIENT_CONFLICT, message)


class InvariantViolation(GameError):
    """Shared state is inconsistent. Always a bug; the transaction is aborted."""
    def __init__(self, message: str):
        super().__init__(INVARIANT_VIOLATION, message)


# Specific error codes
ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
ROOM_EXISTS = "ROOM_EXISTS"
INVALID_PLAYER_COUNT = "INVALID_PLAYER_COUNT"
WRONG_PHASE = "WRONG_PHASE"
NOT_YOUR_TURN = "NOT_YOUR_TURN"
NOT_IN_ROOM = "NOT_IN_ROOM"
GAME_PAUSED = "GAME_PAUSED"
MUST_DRAW_FIRST = "MUST_DRAW_FIRST"
ALREADY_DREW = "ALREADY_DREW"
EMPTY_PILE = "EMPTY_PILE"
HAND_FULL = "HAND_FULL"
CARD_NOT_IN_HAND = "CARD_NOT_IN_HAND"
INVALID_MELD = "INVALID_MELD"
FIRST_PASS_INCOMPLETE = "FIRST_PASS_INCOMPLETE"
LAYOFF_DISABLED = "LAYOFF_DISABLED"
MELD_NOT_FOUND = "MELD_NOT_FOUND"
INVALID_GO_OUT = "INVALID_GO_OUT"
ALREADY_PAUSED = "ALREADY_PAUSED"
NOT_PAUSED = "NOT_PAUSED"
TRANSIENT_CONFLICT = "TRANSIENT_CONFLICT"
INVARIANT_VIOLATION = "INVARIANT_VIOLATION"
