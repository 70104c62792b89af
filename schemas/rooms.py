from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateRoomResponse(CamelModel):
    room_id: str
    room_code: str
    host_key: str
    join_url: str
    participant_count: int
    ready_count: int

class RoomStatusResponse(CamelModel):
    room_id: str
    room_code: str
    status: str
    participant_count: int
    ready_count: int

class JoinRoomRequest(CamelModel):
    # Any JSON value; coerced with str() before use
    room_code: Optional[Any] = None
    display_name: Optional[Any] = None

class JoinRoomResponse(CamelModel):
    room_id: str
    room_code: str
    participant_id: str
    display_token: str

class ReadyRequest(CamelModel):
    is_ready: bool = False

class OkResponse(CamelModel):
    ok: bool = True
