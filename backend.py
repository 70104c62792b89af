import time
from typing import Callable, Dict, List, Optional

from constants import ROOM_TTL_MS, PARTICIPANT_TTL_MS, ROOM_CODE_ATTEMPTS, HOST_KEY_LENGTH, DISPLAY_TOKEN_LENGTH
from logging_config import get_logger
from models import CloseResult, Participant, Room, RoomStats, RoomStatus
from utils import create_room_code, generate_id, generate_random_slug

logger = get_logger(__name__)

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


class RoomStore:
    """Live rooms, indexed by id and by join code.

    Expiry is checked on every read, so callers never see a room past its
    ``expires_at`` even if no sweep has run yet.
    """

    def __init__(self, ttl_ms: int = ROOM_TTL_MS, clock: Clock = now_ms,
                 code_factory: Callable[[], str] = create_room_code):
        self.ttl_ms = ttl_ms
        self.clock = clock
        self.code_factory = code_factory
        self._rooms: Dict[str, Room] = {}
        self._room_id_by_code: Dict[str, str] = {}
        logger.info(f"Initializing RoomStore with room TTL {ttl_ms} ms")

    def _unique_code(self) -> str:
        code = self.code_factory()
        for attempt in range(1, ROOM_CODE_ATTEMPTS):
            if not self.get_room_by_code(code):
                return code
            logger.debug(f"Room code {code} is taken (attempt {attempt}), drawing again")
            code = self.code_factory()
        if self.get_room_by_code(code):
            logger.warning(f"Room code {code} collided {ROOM_CODE_ATTEMPTS} times, reusing it")
        return code

    def _remove(self, room: Room):
        self._rooms.pop(room.room_id, None)
        # A reused code may already point at a newer room
        if self._room_id_by_code.get(room.room_code) == room.room_id:
            del self._room_id_by_code[room.room_code]
        removed = room.clear_members()
        logger.debug(f"Room {room.room_id} removed with {removed} participants")

    def create_room(self) -> Room:
        created_at = self.clock()
        room = Room(
            room_id=generate_id(),
            room_code=self._unique_code(),
            host_key=generate_random_slug(HOST_KEY_LENGTH),
            created_at=created_at,
            expires_at=created_at + self.ttl_ms,
        )
        self._rooms[room.room_id] = room
        self._room_id_by_code[room.room_code] = room.room_id
        logger.info(f"Room {room.room_id} created with code {room.room_code}, expires_at={room.expires_at}")
        return room

    def get_room_by_id(self, room_id: str) -> Optional[Room]:
        room = self._rooms.get(room_id)
        if not room:
            return None
        if room.is_expired(self.clock()):
            logger.info(f"Room {room_id} expired, removing it on read")
            self._remove(room)
            return None
        return room

    def get_room_by_code(self, room_code: str) -> Optional[Room]:
        room_id = self._room_id_by_code.get(room_code)
        if not room_id:
            return None
        return self.get_room_by_id(room_id)

    def validate_host(self, room_id: str, host_key: str) -> bool:
        room = self.get_room_by_id(room_id)
        if not room or not host_key:
            return False
        return room.host_key == host_key

    def start_room(self, room_id: str) -> Optional[Room]:
        room = self.get_room_by_id(room_id)
        if not room:
            return None
        room.status = RoomStatus.PLAYING
        return room

    def close_room(self, room_id: str, host_key: str) -> CloseResult:
        room = self.get_room_by_id(room_id)
        if not room:
            return CloseResult.NOT_FOUND
        if room.host_key != host_key:
            return CloseResult.UNAUTHORIZED
        self._remove(room)
        logger.info(f"Room {room_id} closed by host")
        return CloseResult.OK

    def sweep_expired_rooms(self) -> int:
        now = self.clock()
        expired = [room for room in self._rooms.values() if room.is_expired(now)]
        for room in expired:
            self._remove(room)
        return len(expired)

    def rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def __len__(self):
        return len(self._rooms)


class ParticipantStore:
    """Participants of the rooms held by a RoomStore.

    Participants live inside their Room, so looking one up by token always
    goes through the room id the caller supplied.
    """

    def __init__(self, rooms: RoomStore, ttl_ms: int = PARTICIPANT_TTL_MS, clock: Optional[Clock] = None):
        self.rooms = rooms
        self.ttl_ms = ttl_ms
        self.clock = rooms.clock if clock is None else clock
        logger.info(f"Initializing ParticipantStore with participant TTL {ttl_ms} ms")

    def add_participant(self, room_id: str, display_name: str) -> Optional[Participant]:
        room = self.rooms.get_room_by_id(room_id)
        if not room:
            return None
        now = self.clock()
        participant_id = generate_id()
        while participant_id in room.participants:
            participant_id = generate_id()
        participant = Participant(
            participant_id=participant_id,
            room_id=room_id,
            display_name=display_name,
            display_token=generate_random_slug(DISPLAY_TOKEN_LENGTH),
            joined_at=now,
            last_seen_at=now,
        )
        room.add_member(participant)
        logger.info(f"Participant {participant_id} ({display_name!r}) joined room {room_id}")
        return participant

    def get_participant(self, room_id: str, participant_id: str) -> Optional[Participant]:
        room = self.rooms.get_room_by_id(room_id)
        if not room:
            return None
        return room.participants.get(participant_id)

    def get_participant_by_token(self, room_id: str, token: str) -> Optional[Participant]:
        room = self.rooms.get_room_by_id(room_id)
        if not room or not token:
            return None
        return room.member_by_token(token)

    def touch_participant(self, room_id: str, token: str) -> Optional[Participant]:
        participant = self.get_participant_by_token(room_id, token)
        if participant:
            participant.touch(self.clock())
        return participant

    def update_ready(self, room_id: str, participant_id: str, is_ready: bool) -> Optional[Participant]:
        participant = self.get_participant(room_id, participant_id)
        if not participant:
            return None
        participant.is_ready = bool(is_ready)
        participant.touch(self.clock())
        logger.debug(f"Participant {participant_id} in room {room_id} ready={participant.is_ready}")
        return participant

    def remove_participant(self, room_id: str, participant_id: str) -> bool:
        room = self.rooms.get_room_by_id(room_id)
        if not room:
            return False
        removed = room.remove_member(participant_id)
        if removed:
            logger.info(f"Participant {participant_id} left room {room_id}")
        return removed is not None

    def remove_participants_by_room(self, room_id: str) -> int:
        room = self.rooms.get_room_by_id(room_id)
        if not room:
            return 0
        return room.clear_members()

    def list_participants(self, room_id: str) -> List[Participant]:
        room = self.rooms.get_room_by_id(room_id)
        if not room:
            return []
        return room.members()

    def get_room_stats(self, room_id: str) -> RoomStats:
        participants = self.list_participants(room_id)
        ready_count = sum(1 for participant in participants if participant.is_ready)
        return RoomStats(participant_count=len(participants), ready_count=ready_count)

    def cleanup_participants(self) -> int:
        now = self.clock()
        removed = 0
        for room in self.rooms.rooms():
            for participant in room.members():
                if now - participant.last_seen_at > self.ttl_ms:
                    room.remove_member(participant.participant_id)
                    removed += 1
                    logger.debug(f"Participant {participant.participant_id} in room {room.room_id} timed out")
        return removed
