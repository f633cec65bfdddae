import threading

import pytest

from errors import Conflict, InvalidArgument, NotFound
from models import Participant, QueueEntry, Room
from room_coordinator import RoomCoordinator
from storage import InMemoryRoomStore


def make_entries(clock, *users, size=3):
    return [QueueEntry(u, u.title(), clock(), size, seq=i) for i, u in enumerate(users)]


@pytest.fixture
def room(coordinator, clock):
    return coordinator.create_room(make_entries(clock, "ann", "bob", "cat"), "Universal basic income",
                                   trigger_user_id="cat")


def test_create_room_starts_in_lobby(room, notifier):
    assert room.status == "lobby"
    assert room.room_id.startswith("gd_")
    assert room.team_size == 3
    assert [p.display_name for p in room.participants] == ["Ann", "Bob", "Cat"]
    assert room.find_participant("cat").joined_at is not None
    assert room.joined_count == 1
    assert notifier.created == [room]


def test_on_room_created_rejects_oversized_room(coordinator):
    room = Room("gd_1_x", "Topic", 2, [Participant("a", "A"), Participant("b", "B"), Participant("c", "C")])
    with pytest.raises(InvalidArgument):
        coordinator.on_room_created(room)


def test_create_room_needs_participants(coordinator):
    with pytest.raises(InvalidArgument):
        coordinator.create_room([], "Topic")


def test_get_room(coordinator, room):
    assert coordinator.get_room(room.room_id).topic == "Universal basic income"
    with pytest.raises(NotFound):
        coordinator.get_room("gd_missing")
    with pytest.raises(InvalidArgument):
        coordinator.get_room("")


def test_mark_joined_is_idempotent(coordinator, room, clock, notifier):
    first = coordinator.mark_joined(room.room_id, "ann")
    stamp = first.find_participant("ann").joined_at
    assert first.joined_count == 2
    assert len(notifier.states) == 1

    clock.advance(30)
    again = coordinator.mark_joined(room.room_id, "ann")

    assert again.find_participant("ann").joined_at == stamp
    assert again.joined_count == 2
    assert len(notifier.states) == 1


def test_mark_joined_for_stranger_is_not_found(coordinator, room):
    with pytest.raises(NotFound):
        coordinator.mark_joined(room.room_id, "mallory")
    with pytest.raises(NotFound):
        coordinator.mark_joined("gd_missing", "ann")


def test_leave_room_records_departure(coordinator, room, notifier):
    updated = coordinator.leave_room(room.room_id, "bob")

    assert updated.participant_ids == ["ann", "cat"]
    assert updated.left_user_ids == ["bob"]
    assert updated.status == "lobby"
    assert notifier.states[-1].room_id == room.room_id


def test_empty_lobby_is_abandoned(coordinator, room):
    for user in ("ann", "bob", "cat"):
        updated = coordinator.leave_room(room.room_id, user)

    assert updated.status == "completed"
    assert updated.end_reason == "abandoned"
    assert updated.ended_at is not None
    assert coordinator.find_active_room("ann") is None


def test_leave_unknown_room_is_ignored(coordinator):
    assert coordinator.leave_room("gd_missing", "ann") is None


def test_call_lifecycle_only_moves_forward(coordinator, room, clock):
    clock.advance(10)
    active = coordinator.start_call(room.room_id)
    assert active.status == "active"
    assert active.started_at == clock()

    with pytest.raises(Conflict):
        coordinator.start_call(room.room_id)

    clock.advance(600)
    done = coordinator.complete_call(room.room_id)
    assert done.status == "completed"
    assert done.end_reason == "call_ended"

    # completing twice is harmless, starting again is not
    assert coordinator.complete_call(room.room_id).ended_at == done.ended_at
    with pytest.raises(Conflict):
        coordinator.start_call(room.room_id)


def test_complete_before_start_is_a_conflict(coordinator, room):
    with pytest.raises(Conflict):
        coordinator.complete_call(room.room_id)


def test_mark_joined_after_call_ended_does_not_change_room(coordinator, room):
    coordinator.start_call(room.room_id)
    coordinator.complete_call(room.room_id)

    after = coordinator.mark_joined(room.room_id, "bob")
    assert after.find_participant("bob").joined_at is None


def test_find_active_room(coordinator, room):
    assert coordinator.find_active_room("bob").room_id == room.room_id
    assert coordinator.find_active_room("nobody") is None


class ExplodingNotifier:
    def room_created(self, room):
        raise RuntimeError("socket gone")

    def room_state(self, room):
        raise RuntimeError("socket gone")


def test_notifier_failures_do_not_break_operations(store, clock):
    coordinator = RoomCoordinator(store, notifier=ExplodingNotifier(), clock=clock)
    room = coordinator.create_room(make_entries(clock, "ann", "bob", size=2), "Topic")

    assert coordinator.mark_joined(room.room_id, "ann").joined_count == 1
    assert store.get(room.room_id).joined_count == 1


def test_leave_room_by_stranger_changes_nothing(coordinator, room, notifier):
    sent = len(notifier.states)

    after = coordinator.leave_room(room.room_id, "mallory")

    assert after.participant_ids == ["ann", "bob", "cat"]
    assert after.left_user_ids == []
    assert coordinator.get_room(room.room_id).left_user_ids == []
    assert len(notifier.states) == sent


def test_get_room_for_requires_participant(coordinator, room):
    assert coordinator.get_room_for(room.room_id, "bob").room_id == room.room_id
    with pytest.raises(NotFound):
        coordinator.get_room_for(room.room_id, "mallory")


def test_arrivals_through_separate_coordinators_are_all_kept(clock):
    # two server processes sharing one store
    shared = InMemoryRoomStore()
    first = RoomCoordinator(shared, clock=clock)
    second = RoomCoordinator(shared, clock=clock)
    users = [f"u{i}" for i in range(6)]
    room = first.create_room(make_entries(clock, *users, size=6), "Topic")
    barrier = threading.Barrier(len(users))

    def arrive(coord, user_id):
        barrier.wait()
        coord.mark_joined(room.room_id, user_id)

    threads = [threading.Thread(target=arrive, args=(first if i % 2 else second, u))
               for i, u in enumerate(users)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert shared.get(room.room_id).joined_count == 6
