"""
FastAPI WebSocket server for the 100 Pontinhos game.

Clients act over /ws/{room_id}/{player_id}. State pushes are driven by store
subscriptions, so every commit (including a knock window expiring in the
background reaper) reaches every connected player.
"""

import asyncio
import logging
import os
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional

import orjson
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .. import engine, errors, knock
from ..actions import ActionResult
from ..cards import parse_card, parse_cards
from ..errors import InvariantViolation, TransientConflict
from ..models import EntityKind, RoomState
from ..rules import RuleConfig
from ..serialization import sanitize_state, serialize_scenario
from ..store import InMemorySessionStore, SessionStore, get_room_or_none
from .events import (
    INTERNAL, INVALID_EVENT, CheckGoOutEvent, DiscardEvent, DrawDiscardEvent,
    DrawStockEvent, GiveUpEvent, GoOutEvent, KnockEvent, LayDownEvent, LayoffEvent,
    ReorderEvent, RequestStateEvent, SettleRoundEvent, StartRoundEvent,
    create_error_event, create_go_out_hint_event, create_state_full_event,
    parse_inbound_event
)

logger = logging.getLogger(__name__)

KNOCK_REAPER_INTERVAL = float(os.getenv("KNOCK_REAPER_INTERVAL", "1.0"))

store: SessionStore = InMemorySessionStore()


def _dumps(event) -> str:
    return orjson.dumps(event.model_dump(mode="json")).decode()


class ConnectionManager:
    """Tracks sockets per room and pushes state when the store reports a commit."""

    def __init__(self, session_store: SessionStore):
        self.store = session_store
        self.room_connections: Dict[str, Dict[WebSocket, str]] = defaultdict(dict)
        self._unsubscribe: Dict[str, List[Callable[[], None]]] = {}
        self._pending: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._pending = asyncio.Queue()

    async def connect(self, websocket: WebSocket, room_id: str, player_id: str):
        self.room_connections[room_id][websocket] = player_id
        if room_id not in self._unsubscribe:
            self._unsubscribe[room_id] = [
                self.store.subscribe(room_id, kind, self._on_commit) for kind in EntityKind
            ]
        logger.info(f"Player {player_id} connected to room {room_id}")

    def disconnect(self, websocket: WebSocket, room_id: str):
        player_id = self.room_connections[room_id].pop(websocket, None)
        if not self.room_connections[room_id]:
            del self.room_connections[room_id]
            for unsubscribe in self._unsubscribe.pop(room_id, []):
                unsubscribe()
        if player_id:
            logger.info(f"Player {player_id} disconnected from room {room_id}")

    def _on_commit(self, room_id: str, kind: EntityKind, state: RoomState):
        # runs in whichever thread committed
        if self._loop is not None and self._pending is not None:
            self._loop.call_soon_threadsafe(self._pending.put_nowait, room_id)

    async def run_sender(self):
        """Drain commit notifications and broadcast one state per room per batch."""
        while True:
            rooms = {await self._pending.get()}
            while not self._pending.empty():
                rooms.add(self._pending.get_nowait())
            for room_id in rooms:
                await self.broadcast_state(room_id)

    async def broadcast_state(self, room_id: str):
        state = get_room_or_none(self.store, room_id)
        if state is None:
            return
        for websocket, player_id in list(self.room_connections.get(room_id, {}).items()):
            await self.send_state(websocket, state, player_id)

    async def send_state(self, websocket: WebSocket, state: RoomState, player_id: str):
        try:
            event = create_state_full_event(sanitize_state(state, player_id))
            await websocket.send_text(_dumps(event))
        except Exception as e:
            logger.error(f"Error sending state to {player_id}: {e}")
            self.disconnect(websocket, state.id)


manager = ConnectionManager(store)


async def run_knock_reaper(interval: float):
    """Sweep for expired knock windows forever; a failed sweep is logged and the next one still runs."""
    while True:
        await asyncio.sleep(interval)
        try:
            rolled_back = knock.reap_expired_windows(store)
        except Exception as e:
            logger.error(f"Knock reaper sweep failed: {e!r}")
            continue
        for room_id in rolled_back:
            logger.info(f"Knock window in room {room_id} expired")


@asynccontextmanager
async def lifespan(app: FastAPI):
    manager.bind(asyncio.get_running_loop())
    tasks = [
        asyncio.create_task(manager.run_sender()),
        asyncio.create_task(run_knock_reaper(KNOCK_REAPER_INTERVAL)),
    ]
    yield
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


# FastAPI app
app = FastAPI(title="100 Pontinhos Game Engine", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class CreateRoomRequest(BaseModel):
    room_id: str = Field(..., min_length=1, max_length=50)
    player_ids: List[str] = Field(..., min_length=2, max_length=4)
    rules: Optional[RuleConfig] = None


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "rooms": len(store.room_ids()),
        "connections": sum(len(conns) for conns in manager.room_connections.values())
    }


@app.post("/rooms")
async def create_room(request: CreateRoomRequest):
    result = engine.create_session(store, request.room_id, request.player_ids, request.rules)
    if not result.success:
        raise HTTPException(status_code=400, detail={"code": result.error_code, "message": result.error_message})
    return sanitize_state(result.state)


@app.get("/rooms/{room_id}")
async def get_room(room_id: str, viewer_id: Optional[str] = None):
    state = get_room_or_none(store, room_id)
    if state is None:
        raise HTTPException(status_code=404, detail={"code": errors.ROOM_NOT_FOUND, "message": "Room not found"})
    return sanitize_state(state, viewer_id)


@app.websocket("/ws/{room_id}/{player_id}")
async def websocket_endpoint(websocket: WebSocket, room_id: str, player_id: str):
    """Main WebSocket endpoint."""
    await websocket.accept()

    state = get_room_or_none(store, room_id)
    if state is None or player_id not in state.players:
        error_event = create_error_event(errors.NOT_IN_ROOM, f"{player_id} is not in room {room_id}")
        await websocket.send_text(_dumps(error_event))
        await websocket.close()
        return

    await manager.connect(websocket, room_id, player_id)
    await manager.send_state(websocket, state, player_id)

    try:
        while True:
            raw_data = await websocket.receive_text()
            try:
                event = parse_inbound_event(orjson.loads(raw_data))
                await handle_event(websocket, room_id, player_id, event)
            except ValueError as e:
                error_event = create_error_event(INVALID_EVENT, str(e))
                await websocket.send_text(_dumps(error_event))
            except TransientConflict as e:
                await websocket.send_text(_dumps(create_error_event(e.code, e.message)))
            except InvariantViolation as e:
                logger.error(f"Invariant violation in room {room_id}: {e.message}")
                await websocket.send_text(_dumps(create_error_event(INTERNAL, "Internal server error")))
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    finally:
        manager.disconnect(websocket, room_id)


def _dispatch(room_id: str, player_id: str, event) -> Optional[ActionResult]:
    if isinstance(event, StartRoundEvent):
        return engine.start_round(store, room_id, seed=event.seed)
    if isinstance(event, DrawStockEvent):
        return engine.draw_from_stock(store, room_id, player_id)
    if isinstance(event, DrawDiscardEvent):
        return engine.draw_from_discard(store, room_id, player_id)
    if isinstance(event, DiscardEvent):
        return engine.discard(store, room_id, player_id, parse_card(event.card))
    if isinstance(event, LayDownEvent):
        return engine.lay_down_melds(store, room_id, player_id, [parse_cards(m) for m in event.melds])
    if isinstance(event, LayoffEvent):
        return engine.layoff_card(store, room_id, player_id, event.meld_id, parse_card(event.card))
    if isinstance(event, GoOutEvent):
        return engine.go_out(store, room_id, player_id)
    if isinstance(event, KnockEvent):
        return knock.pause_and_pickup_discard(store, room_id, player_id)
    if isinstance(event, GiveUpEvent):
        return knock.give_up_knock(store, room_id, player_id)
    if isinstance(event, ReorderEvent):
        return engine.reorder_hand(store, room_id, player_id, parse_cards(event.cards))
    if isinstance(event, SettleRoundEvent):
        return engine.settle_round(store, room_id)
    return None


async def handle_event(websocket: WebSocket, room_id: str, player_id: str, event):
    """Handle an inbound event. Successful commits reach clients through the subscription push."""
    if isinstance(event, RequestStateEvent):
        state = get_room_or_none(store, room_id)
        if state is not None:
            await manager.send_state(websocket, state, player_id)
        return

    if isinstance(event, CheckGoOutEvent):
        result = engine.check_go_out(store, room_id, player_id)
        if result.success:
            scenario = result.data["scenario"]
            hint = create_go_out_hint_event(
                serialize_scenario(scenario) if scenario else None,
                result.data["reason"]
            )
            await websocket.send_text(_dumps(hint))
            return
    else:
        result = _dispatch(room_id, player_id, event)

    if result is not None and not result.success:
        error_event = create_error_event(result.error_code, result.error_message)
        await websocket.send_text(_dumps(error_event))
