"""
Room hub: binds live WebSocket connections to rooms and fans out room events.

A connection starts unbound and may only send ``join``. A valid join binds it
to a room as host or participant; anything the binding does not allow is
dropped without a reply so unauthenticated clients learn nothing about which
rooms or tokens exist.

State changes and the payload they produce happen in one synchronous step,
and sends to a room are serialised, so every socket in a room sees that
room's events in the order the hub processed them.
"""

import asyncio
import json
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from fastapi import WebSocket
from pydantic import BaseModel, ValidationError

from backend import ParticipantStore, RoomStore
from constants import BROADCAST_SEND_TIMEOUT_MS, DEFAULT_OBSTACLE_ACTION, PLAYER_PALETTE
from errors import ProtocolIgnored
from logging_config import get_logger
from models import Binding, Participant, Role
from schemas.messages import (
    HEARTBEAT, JOIN, OBSTACLE_ACTION, START_GAME,
    Assignment, GameStartedEvent, JoinMessage, ObstacleActionEvent, ObstacleActionMessage,
    RoomStateEvent, StartGameMessage,
)

logger = get_logger(__name__)

MapLoader = Callable[[str], Optional[Any]]


def compute_assignments(participants: Sequence[Participant], palette: Sequence[str] = PLAYER_PALETTE) -> Dict[str, Assignment]:
    """Give each participant, in join order, an obstacle slot and a colour."""
    assignments = {}
    for index, participant in enumerate(participants):
        assignments[participant.participant_id] = Assignment(
            obstacle_id=index,
            color=palette[index % len(palette)],
            nickname=participant.display_name or f"Player {index + 1}",
        )
    return assignments


class RoomHub:
    def __init__(self, rooms: RoomStore, participants: ParticipantStore,
                 palette: Sequence[str] = PLAYER_PALETTE, map_loader: Optional[MapLoader] = None,
                 send_timeout_ms: int = BROADCAST_SEND_TIMEOUT_MS):
        if not palette:
            raise ValueError("palette must contain at least one colour")
        self.rooms = rooms
        self.participants = participants
        self.palette = list(palette)
        self.map_loader = map_loader
        self.send_timeout = send_timeout_ms / 1000
        # {connection_id: websocket} for every accepted socket, bound or not
        self.connections: Dict[str, WebSocket] = {}
        self.bindings: Dict[str, Binding] = {}
        # {room_id: {connection_id: websocket}}
        self.room_connections: Dict[str, Dict[str, WebSocket]] = {}
        # {room_id: {participant_id: Assignment}} for the latest round
        self.assignments: Dict[str, Dict[str, Assignment]] = {}
        self._send_locks: Dict[str, asyncio.Lock] = {}
        self._handlers = {
            JOIN: self._handle_join,
            START_GAME: self._handle_start_game,
            OBSTACLE_ACTION: self._handle_obstacle_action,
            HEARTBEAT: self._handle_heartbeat,
        }

    # ── Connection lifecycle ─────────────────────────

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self.connections[connection_id] = websocket
        logger.debug(f"Connection {connection_id} accepted (unbound)")
        return connection_id

    def disconnect(self, connection_id: str):
        self.connections.pop(connection_id, None)
        binding = self.bindings.pop(connection_id, None)
        if not binding:
            logger.debug(f"Unbound connection {connection_id} closed")
            return
        room_id = binding.room_id
        sockets = self.room_connections.get(room_id)
        if sockets is not None:
            sockets.pop(connection_id, None)
            if not sockets:
                del self.room_connections[room_id]
                self.assignments.pop(room_id, None)
                self._send_locks.pop(room_id, None)
                logger.info(f"No more connections in room {room_id}, dropped its hub state")
        logger.info(f"Connection {connection_id} ({binding.role.value}) left room {room_id}")

    def binding(self, connection_id: str) -> Optional[Binding]:
        return self.bindings.get(connection_id)

    def connection_count(self, room_id: str) -> int:
        return len(self.room_connections.get(room_id, {}))

    def forget_room(self, room_id: str):
        """Drop the cached round for a room that no longer exists."""
        self.assignments.pop(room_id, None)

    # ── Inbound ──────────────────────────────────────

    async def handle_message(self, connection_id: str, data: Union[str, bytes]):
        try:
            try:
                message = json.loads(data)
            except (ValueError, TypeError):
                raise ProtocolIgnored("payload is not JSON")
            if not isinstance(message, dict):
                raise ProtocolIgnored("payload is not an object")
            handler = self._handlers.get(message.get("type"))
            if not handler:
                raise ProtocolIgnored(f"unknown message type {message.get('type')!r}")
            await handler(connection_id, message)
        except ProtocolIgnored as exc:
            logger.debug(f"Ignored frame from connection {connection_id}: {exc}")

    @staticmethod
    def _parse(model: type, message: dict) -> Any:
        try:
            return model.model_validate(message)
        except ValidationError as exc:
            raise ProtocolIgnored(f"invalid {model.__name__}: {exc.error_count()} errors")

    def _require(self, connection_id: str, role: Role) -> Binding:
        binding = self.bindings.get(connection_id)
        if not binding or binding.role != role:
            raise ProtocolIgnored(f"requires a {role.value} binding")
        return binding

    async def _handle_join(self, connection_id: str, message: dict):
        if connection_id in self.bindings:
            raise ProtocolIgnored("connection is already bound")
        join = self._parse(JoinMessage, message)
        room = self.rooms.get_room_by_id(join.room_id)
        if not room:
            raise ProtocolIgnored(f"room {join.room_id} not found")

        if join.role == Role.HOST.value:
            if not self.rooms.validate_host(room.room_id, join.token):
                logger.warning(f"Rejected host join for room {room.room_id}: bad host key")
                raise ProtocolIgnored("bad host key")
            binding = Binding(room_id=room.room_id, role=Role.HOST)
        else:
            participant = self.participants.touch_participant(room.room_id, join.token)
            if not participant:
                logger.warning(f"Rejected participant join for room {room.room_id}: unknown token")
                raise ProtocolIgnored("bad participant token")
            binding = Binding(room_id=room.room_id, role=Role.PARTICIPANT, participant_id=participant.participant_id)

        websocket = self.connections.get(connection_id)
        if websocket is None:
            raise ProtocolIgnored("connection already closed")
        self.bindings[connection_id] = binding
        self.room_connections.setdefault(room.room_id, {})[connection_id] = websocket
        logger.info(f"Connection {connection_id} joined room {room.room_id} as {binding.role.value} "
                    f"(connections: {self.connection_count(room.room_id)})")
        await self.broadcast_room_state(room.room_id)

    async def _handle_start_game(self, connection_id: str, message: dict):
        binding = self._require(connection_id, Role.HOST)
        start = self._parse(StartGameMessage, message)
        room = self.rooms.start_room(binding.room_id)
        if not room:
            raise ProtocolIgnored(f"room {binding.room_id} is gone")

        assignments = compute_assignments(self.participants.list_participants(room.room_id), self.palette)
        self.assignments[room.room_id] = assignments
        event = GameStartedEvent(
            room_id=room.room_id,
            candidates=start.candidates,
            assignments=assignments,
            map=self._load_map(start.map_id),
        )
        logger.info(f"Round started in room {room.room_id}: {len(start.candidates)} candidates, "
                    f"{len(assignments)} obstacles")
        await self.broadcast(room.room_id, event)

    async def _handle_obstacle_action(self, connection_id: str, message: dict):
        binding = self._require(connection_id, Role.PARTICIPANT)
        action = self._parse(ObstacleActionMessage, message)
        if not self.rooms.get_room_by_id(binding.room_id):
            raise ProtocolIgnored(f"room {binding.room_id} is gone")
        if not self.participants.get_participant(binding.room_id, binding.participant_id):
            raise ProtocolIgnored(f"participant {binding.participant_id} no longer exists")
        assignment = self.assignments.get(binding.room_id, {}).get(binding.participant_id)
        if not assignment:
            raise ProtocolIgnored(f"participant {binding.participant_id} has no obstacle this round")
        event = ObstacleActionEvent(
            room_id=binding.room_id,
            participant_id=binding.participant_id,
            obstacle_id=assignment.obstacle_id,
            action=action.action or DEFAULT_OBSTACLE_ACTION,
        )
        await self.broadcast(binding.room_id, event)

    async def _handle_heartbeat(self, connection_id: str, message: dict):
        binding = self._require(connection_id, Role.PARTICIPANT)
        participant = self.participants.get_participant(binding.room_id, binding.participant_id)
        if not participant:
            raise ProtocolIgnored(f"participant {binding.participant_id} no longer exists")
        self.participants.touch_participant(binding.room_id, participant.display_token)

    def _load_map(self, map_id: Optional[str]) -> Optional[Any]:
        if not map_id or not self.map_loader:
            return None
        try:
            return self.map_loader(map_id)
        except Exception as e:
            logger.error(f"Failed to load map {map_id}: {e}", exc_info=True)
            return None

    # ── Outbound ─────────────────────────────────────

    async def broadcast_room_state(self, room_id: str):
        stats = self.participants.get_room_stats(room_id)
        await self.broadcast(room_id, RoomStateEvent(
            participant_count=stats.participant_count,
            ready_count=stats.ready_count,
        ))

    async def broadcast(self, room_id: str, event: BaseModel):
        """Send one event to every socket bound to the room. Best effort, no retry."""
        sockets = self.room_connections.get(room_id)
        if not sockets:
            logger.debug(f"No connections in room {room_id}, nothing to broadcast")
            return
        targets: List[tuple] = list(sockets.items())
        text = json.dumps(event.model_dump(mode="json", by_alias=True))
        lock = self._send_locks.setdefault(room_id, asyncio.Lock())
        async with lock:
            results = await asyncio.gather(
                *(self._send(websocket, text) for _, websocket in targets),
                return_exceptions=True,
            )
        for (conn_id, _), result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Error sending to connection {conn_id} in room {room_id}: {result!r}")
        logger.debug(f"Broadcast {getattr(event, 'type', type(event).__name__)} to {len(targets)} "
                     f"connections in room {room_id}")

    async def _send(self, websocket: WebSocket, text: str):
        # A client that stops reading must not hold up the rest of the room
        await asyncio.wait_for(websocket.send_text(text), timeout=self.send_timeout)
