import asyncio

from conftest import PARTICIPANT_TTL_MS, ROOM_TTL_MS
from sweeper import Sweeper


def test_sweep_once_removes_rooms_then_idle_participants(room_store, participant_store, clock):
    expiring = room_store.create_room()
    for name in ("Kim", "Lee"):
        participant_store.add_participant(expiring.room_id, name)

    clock.advance(ROOM_TTL_MS - PARTICIPANT_TTL_MS)
    live = room_store.create_room()
    idle = participant_store.add_participant(live.room_id, "Idle")
    active = participant_store.add_participant(live.room_id, "Active")

    clock.advance(PARTICIPANT_TTL_MS + 1)
    participant_store.touch_participant(live.room_id, active.display_token)

    sweeper = Sweeper(room_store, participant_store)
    # The expired room's participants leave with the room, not through cleanup
    assert sweeper.sweep_once() == (1, 1)
    assert room_store.rooms() == [live]
    assert participant_store.list_participants(live.room_id) == [active]
    assert participant_store.get_participant(live.room_id, idle.participant_id) is None


def test_sweep_once_with_nothing_to_do(room_store, participant_store):
    room = room_store.create_room()
    participant_store.add_participant(room.room_id, "Kim")
    assert Sweeper(room_store, participant_store).sweep_once() == (0, 0)


def test_background_loop_runs_and_stops(room_store, participant_store, clock):
    room_store.create_room()
    clock.advance(ROOM_TTL_MS + 1)
    sweeper = Sweeper(room_store, participant_store, interval_ms=1)

    async def scenario():
        task = sweeper.start()
        assert sweeper.start() is task
        for _ in range(100):
            if not len(room_store):
                break
            await asyncio.sleep(0.005)
        await sweeper.stop()
        return task

    task = asyncio.run(scenario())
    assert len(room_store) == 0
    assert task.cancelled()
