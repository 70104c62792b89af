import re
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from backend import ParticipantStore, RoomStore
from errors import InvalidInput, NotFound, Unauthorized
from hub import RoomHub
from logging_config import get_logger
from models import CloseResult
from schemas.rooms import (
    CreateRoomResponse, JoinRoomRequest, JoinRoomResponse, OkResponse, ReadyRequest, RoomStatusResponse,
)
from utils import build_join_url, is_valid_room_code, normalize_room_code, sanitize_display_name

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])

BEARER_PATTERN = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


async def get_room_store(request: Request) -> RoomStore:
    return request.app.state.room_store

async def get_participant_store(request: Request) -> ParticipantStore:
    return request.app.state.participant_store

async def get_hub(request: Request) -> RoomHub:
    return request.app.state.hub


async def bearer_token(authorization: Optional[str] = Header(None)) -> str:
    match = BEARER_PATTERN.match(authorization or "")
    return match.group(1).strip() if match else ""


async def touch_participant(
    room_id: str,
    token: str = Depends(bearer_token),
    participants: ParticipantStore = Depends(get_participant_store),
):
    """Any authenticated participant call counts as a heartbeat."""
    if token:
        participants.touch_participant(room_id, token)


def _base_url(request: Request) -> str:
    return request.headers.get("origin") or str(request.base_url)


@rooms_router.post("", status_code=201)
async def create_room(
    request: Request,
    rooms: RoomStore = Depends(get_room_store),
    participants: ParticipantStore = Depends(get_participant_store),
):
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}")
    room = rooms.create_room()
    stats = participants.get_room_stats(room.room_id)
    return CreateRoomResponse(
        room_id=room.room_id,
        room_code=room.room_code,
        host_key=room.host_key,
        join_url=build_join_url(_base_url(request), room.room_code),
        participant_count=stats.participant_count,
        ready_count=stats.ready_count,
    )


@rooms_router.post("/join")
async def join_room(
    join_room_request: JoinRoomRequest,
    rooms: RoomStore = Depends(get_room_store),
    participants: ParticipantStore = Depends(get_participant_store),
    hub: RoomHub = Depends(get_hub),
):
    room_code = normalize_room_code(join_room_request.room_code)
    if not is_valid_room_code(room_code):
        logger.warning(f"Join failed: invalid room code {join_room_request.room_code!r}")
        raise InvalidInput("Invalid room code.")

    room = rooms.get_room_by_code(room_code)
    if not room:
        logger.warning(f"Join failed: no live room with code {room_code}")
        raise NotFound()

    participant = participants.add_participant(room.room_id, sanitize_display_name(join_room_request.display_name))
    if not participant:
        raise NotFound()

    await hub.broadcast_room_state(room.room_id)
    return JoinRoomResponse(
        room_id=room.room_id,
        room_code=room.room_code,
        participant_id=participant.participant_id,
        display_token=participant.display_token,
    )


@rooms_router.get("/{room_id}")
async def get_room_status(
    room_id: str,
    rooms: RoomStore = Depends(get_room_store),
    participants: ParticipantStore = Depends(get_participant_store),
):
    room = rooms.get_room_by_id(room_id)
    if not room:
        raise NotFound()
    stats = participants.get_room_stats(room_id)
    return RoomStatusResponse(
        room_id=room.room_id,
        room_code=room.room_code,
        status=room.status.value,
        participant_count=stats.participant_count,
        ready_count=stats.ready_count,
    )


@rooms_router.post("/{room_id}/participants/{participant_id}/ready", dependencies=[Depends(touch_participant)])
async def mark_ready(
    room_id: str,
    participant_id: str,
    ready_request: Optional[ReadyRequest] = None,
    token: str = Depends(bearer_token),
    participants: ParticipantStore = Depends(get_participant_store),
    hub: RoomHub = Depends(get_hub),
):
    participant = participants.get_participant(room_id, participant_id)
    if not participant or not token or participant.display_token != token:
        logger.warning(f"Ready rejected for participant {participant_id} in room {room_id}")
        raise Unauthorized()

    is_ready = ready_request.is_ready if ready_request else False
    participants.update_ready(room_id, participant_id, is_ready)
    await hub.broadcast_room_state(room_id)
    return OkResponse()


@rooms_router.post("/{room_id}/leave", dependencies=[Depends(touch_participant)])
async def leave_room(
    room_id: str,
    token: str = Depends(bearer_token),
    participants: ParticipantStore = Depends(get_participant_store),
    hub: RoomHub = Depends(get_hub),
):
    participant = participants.get_participant_by_token(room_id, token)
    if not participant:
        logger.warning(f"Leave rejected for room {room_id}: unknown token")
        raise Unauthorized()

    participants.remove_participant(room_id, participant.participant_id)
    await hub.broadcast_room_state(room_id)
    return OkResponse()


@rooms_router.delete("/{room_id}")
async def close_room(
    room_id: str,
    host_key: Optional[str] = Header(None, alias="X-Host-Key"),
    rooms: RoomStore = Depends(get_room_store),
    hub: RoomHub = Depends(get_hub),
):
    if not host_key:
        raise Unauthorized()

    result = rooms.close_room(room_id, host_key)
    if result == CloseResult.UNAUTHORIZED:
        logger.warning(f"Close room failed: wrong host key for room {room_id}")
        raise Unauthorized()
    if result == CloseResult.NOT_FOUND:
        raise NotFound()

    hub.forget_room(room_id)
    await hub.broadcast_room_state(room_id)
    return OkResponse()
