"""In-memory entities shared by the stores and the hub.

A Room owns its participants: ``participants`` keeps them in join order and
``token_index`` maps each display token back to its participant id. Both are
only ever changed through the Room methods below so they cannot drift apart.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class RoomStatus(str, Enum):
    WAITING = "waiting"
    PLAYING = "playing"


class Role(str, Enum):
    HOST = "host"
    PARTICIPANT = "participant"


class CloseResult(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"


@dataclass
class Participant:
    participant_id: str
    room_id: str
    display_name: str
    display_token: str
    joined_at: int
    last_seen_at: int
    is_ready: bool = False

    def touch(self, now: int):
        if now > self.last_seen_at:
            self.last_seen_at = now


@dataclass
class Room:
    room_id: str
    room_code: str
    host_key: str
    created_at: int
    expires_at: int
    status: RoomStatus = RoomStatus.WAITING
    participants: Dict[str, Participant] = field(default_factory=dict)
    token_index: Dict[str, str] = field(default_factory=dict)

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at

    def add_member(self, participant: Participant):
        self.participants[participant.participant_id] = participant
        self.token_index[participant.display_token] = participant.participant_id

    def remove_member(self, participant_id: str) -> Optional[Participant]:
        participant = self.participants.pop(participant_id, None)
        if participant:
            self.token_index.pop(participant.display_token, None)
        return participant

    def clear_members(self) -> int:
        count = len(self.participants)
        self.participants.clear()
        self.token_index.clear()
        return count

    def member_by_token(self, token: str) -> Optional[Participant]:
        participant_id = self.token_index.get(token)
        if not participant_id:
            return None
        return self.participants.get(participant_id)

    def members(self) -> List[Participant]:
        return list(self.participants.values())


@dataclass(frozen=True)
class RoomStats:
    participant_count: int = 0
    ready_count: int = 0


@dataclass
class Binding:
    """What a live socket is allowed to do, set by a successful join."""
    room_id: str
    role: Role
    participant_id: Optional[str] = None
