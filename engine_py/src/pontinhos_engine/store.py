"""
Session persistence with optimistic transactions and change subscriptions.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from . import errors
from .cards import Card
from .diff import changed_entities
from .errors import IllegalMove, TransientConflict
from .models import EntityKind, Meld, RoomState

logger = logging.getLogger(__name__)

T = TypeVar('T')
Callback = Callable[[str, EntityKind, RoomState], None]


class SessionStore(ABC):
    """
    Storage collaborator for room sessions.

    Every mutation goes through transact(); readers get copies and never a
    reference to the stored state.
    """

    @abstractmethod
    def create(self, state: RoomState) -> RoomState:
        """Store a new room. Fails when the id is taken."""

    @abstractmethod
    def read_session(self, room_id: str) -> RoomState:
        """Snapshot of the whole room."""

    @abstractmethod
    def transact(self, room_id: str, fn: Callable[[RoomState], T]) -> T:
        """
        Run fn on a consistent snapshot and commit its writes atomically.

        fn mutates the snapshot it receives. If fn raises, nothing is
        committed. If another commit landed first, TransientConflict is
        raised and nothing is committed.
        """

    @abstractmethod
    def subscribe(self, room_id: str, kind: EntityKind, callback: Callback) -> Callable[[], None]:
        """Call callback(room_id, kind, state) after each commit changing kind. Returns an unsubscribe function."""

    @abstractmethod
    def room_ids(self) -> List[str]:
        pass

    def read_hand(self, room_id: str, player_id: str) -> List[Card]:
        state = self.read_session(room_id)
        if player_id not in state.hands:
            raise IllegalMove(errors.NOT_IN_ROOM, f"Player {player_id} is not in room {room_id}")
        return state.hands[player_id]

    def read_melds(self, room_id: str) -> List[Meld]:
        return self.read_session(room_id).melds

    def read_deck_state(self, room_id: str) -> Tuple[List[Card], List[Card]]:
        state = self.read_session(room_id)
        return state.stock, state.discard


class InMemorySessionStore(SessionStore):
    """
    Process-local store. Commits compare the snapshot version with the
    stored version under a per-room lock; fn itself runs unlocked.
    """

    def __init__(self):
        self._rooms: Dict[str, RoomState] = {}
        self._room_locks = defaultdict(threading.Lock)
        self._subscribers: Dict[Tuple[str, EntityKind], List[Callback]] = defaultdict(list)
        self._subscribers_lock = threading.Lock()

    def create(self, state: RoomState) -> RoomState:
        with self._room_locks[state.id]:
            if state.id in self._rooms:
                raise IllegalMove(errors.ROOM_EXISTS, f"Room {state.id} already exists")
            stored = copy.deepcopy(state)
            self._rooms[state.id] = stored
        self._notify(state.id, changed_entities(None, stored), stored)
        return copy.deepcopy(stored)

    def read_session(self, room_id: str) -> RoomState:
        # rooms are never removed, so only known ids get a lock
        if room_id not in self._rooms:
            raise IllegalMove(errors.ROOM_NOT_FOUND, f"Room {room_id} not found")
        with self._room_locks[room_id]:
            return copy.deepcopy(self._rooms[room_id])

    def transact(self, room_id: str, fn: Callable[[RoomState], T]) -> T:
        snapshot = self.read_session(room_id)
        before = copy.deepcopy(snapshot)

        result = fn(snapshot)

        changed = changed_entities(before, snapshot)
        if not changed:
            return result

        with self._room_locks[room_id]:
            current = self._rooms.get(room_id)
            if current is None or current.version != before.version:
                logger.info(f"Commit conflict on room {room_id} at version {before.version}")
                raise TransientConflict()
            snapshot.version = before.version + 1
            committed = copy.deepcopy(snapshot)
            self._rooms[room_id] = committed

        self._notify(room_id, changed, committed)
        return result

    def subscribe(self, room_id: str, kind: EntityKind, callback: Callback) -> Callable[[], None]:
        key = (room_id, kind)
        with self._subscribers_lock:
            self._subscribers[key].append(callback)

        def unsubscribe():
            with self._subscribers_lock:
                if callback in self._subscribers.get(key, []):
                    self._subscribers[key].remove(callback)

        return unsubscribe

    def room_ids(self) -> List[str]:
        return list(self._rooms)

    def _notify(self, room_id: str, kinds, state: RoomState):
        for kind in EntityKind:
            if kind not in kinds:
                continue
            with self._subscribers_lock:
                callbacks = list(self._subscribers.get((room_id, kind), []))
            for callback in callbacks:
                try:
                    callback(room_id, kind, copy.deepcopy(state))
                except Exception as e:
                    logger.error(f"Subscriber for {room_id}/{kind.value} failed: {e}")


def get_room_or_none(store: SessionStore, room_id: str) -> Optional[RoomState]:
    try:
        return store.read_session(room_id)
    except IllegalMove:
        return None
