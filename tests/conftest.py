import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from app import create_app
from backend import ParticipantStore, RoomStore

ROOM_TTL_MS = 1000
PARTICIPANT_TTL_MS = 500


class FakeClock:
    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class FakeSocket:
    """Stands in for a starlette WebSocket inside hub tests."""

    def __init__(self, fail_sends: bool = False, stall_sends: bool = False):
        self.accepted = False
        self.fail_sends = fail_sends
        self.stall_sends = stall_sends
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.fail_sends:
            raise RuntimeError("socket closed")
        if self.stall_sends:
            # a client that never drains its socket
            await asyncio.Event().wait()
        self.sent.append(json.loads(text))

    def of_type(self, message_type: str):
        return [message for message in self.sent if message["type"] == message_type]


class SequenceCodes:
    """Code factory handing out a fixed sequence, then repeating the last code."""

    def __init__(self, *codes: str):
        self.codes = list(codes)
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if len(self.codes) > 1:
            return self.codes.pop(0)
        return self.codes[0]


@pytest.fixture()
def clock():
    return FakeClock(now=1_000_000)


@pytest.fixture()
def room_store(clock):
    return RoomStore(ttl_ms=ROOM_TTL_MS, clock=clock)


@pytest.fixture()
def participant_store(room_store):
    return ParticipantStore(room_store, ttl_ms=PARTICIPANT_TTL_MS)


@pytest.fixture()
def marble_app(room_store, participant_store):
    return create_app(room_store=room_store, participant_store=participant_store, sweep_interval_ms=60_000)


@pytest.fixture()
def client(marble_app):
    with TestClient(marble_app) as test_client:
        yield test_client
