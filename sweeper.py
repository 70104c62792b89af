import asyncio
from contextlib import suppress
from typing import Optional, Tuple

from backend import ParticipantStore, RoomStore
from constants import SWEEP_INTERVAL_MS
from logging_config import get_logger

logger = get_logger(__name__)


class Sweeper:
    """Periodically expires rooms, then participants, on the running event loop."""

    def __init__(self, rooms: RoomStore, participants: ParticipantStore, interval_ms: int = SWEEP_INTERVAL_MS):
        self.rooms = rooms
        self.participants = participants
        self.interval_ms = interval_ms
        self._task: Optional[asyncio.Task] = None

    def sweep_once(self) -> Tuple[int, int]:
        # Rooms first, so participants of a just-expired room go with it
        rooms_removed = self.rooms.sweep_expired_rooms()
        participants_removed = self.participants.cleanup_participants()
        if rooms_removed or participants_removed:
            logger.info(f"Sweep removed {rooms_removed} rooms and {participants_removed} idle participants")
        return rooms_removed, participants_removed

    async def run(self):
        interval = max(self.interval_ms, 1) / 1000
        logger.info(f"Sweeper started, interval {self.interval_ms} ms")
        try:
            while True:
                await asyncio.sleep(interval)
                try:
                    self.sweep_once()
                except Exception:
                    logger.exception("Sweep pass failed")
        except asyncio.CancelledError:
            logger.debug("Sweeper cancelled")
            raise

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
