"""
WebSocket message schemas.

Every frame is a JSON object with a ``type`` field.

Client -> server: join, start_game, obstacle_action, heartbeat
Server -> client: room_state, game_started, obstacle_action
"""

from pydantic import Field
from typing import Any, Dict, List, Literal, Optional

from constants import DEFAULT_OBSTACLE_ACTION
from schemas.rooms import CamelModel

JOIN = "join"
START_GAME = "start_game"
OBSTACLE_ACTION = "obstacle_action"
HEARTBEAT = "heartbeat"
ROOM_STATE = "room_state"
GAME_STARTED = "game_started"


# Client -> server

class JoinMessage(CamelModel):
    room_id: str = Field(min_length=1)
    role: Literal["host", "participant"]
    token: str = Field(min_length=1)

class StartGameMessage(CamelModel):
    candidates: List[str] = Field(default_factory=list)
    map_id: Optional[str] = None

class ObstacleActionMessage(CamelModel):
    action: Optional[str] = None


# Server -> client

class Assignment(CamelModel):
    obstacle_id: int
    color: str
    nickname: str

class RoomStateEvent(CamelModel):
    type: Literal["room_state"] = ROOM_STATE
    participant_count: int
    ready_count: int

class GameStartedEvent(CamelModel):
    type: Literal["game_started"] = GAME_STARTED
    room_id: str
    candidates: List[str]
    assignments: Dict[str, Assignment]
    map: Optional[Any] = None

class ObstacleActionEvent(CamelModel):
    type: Literal["obstacle_action"] = OBSTACLE_ACTION
    room_id: str
    participant_id: str
    obstacle_id: int
    action: str = DEFAULT_OBSTACLE_ACTION
