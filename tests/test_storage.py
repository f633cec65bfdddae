from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as google_exceptions

from errors import Conflict, NotFound, Unavailable
from models import Participant, Room
import storage
from storage import FirestoreRoomStore, InMemoryRoomStore, build_room_store

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_room(room_id="gd_1_a", users=("a", "b"), status="lobby", created_at=T0):
    return Room(room_id, "Social media: connection or isolation?", 2,
                [Participant(u, u.upper()) for u in users], status=status, created_at=created_at)


def test_memory_store_round_trip():
    store = InMemoryRoomStore()
    store.create(make_room())

    loaded = store.get("gd_1_a")
    assert loaded.participant_ids == ["a", "b"]
    assert store.get("gd_nope") is None


def test_memory_store_returns_copies():
    store = InMemoryRoomStore()
    room = store.create(make_room())

    room.status = "active"
    fetched = store.get("gd_1_a")
    fetched.participants[0].joined_at = T0

    assert store.get("gd_1_a").status == "lobby"
    assert store.get("gd_1_a").joined_count == 0


def test_memory_store_duplicate_and_missing():
    store = InMemoryRoomStore()
    store.create(make_room())

    with pytest.raises(Conflict):
        store.create(make_room())
    assert store.mutate("gd_other", lambda room: True) == (None, False)


def arrive(user_id):
    def change(room):
        participant = room.find_participant(user_id)
        if participant.joined_at is not None:
            return False
        participant.joined_at = T0
        return True
    return change


def test_memory_store_mutate_persists_only_changes():
    store = InMemoryRoomStore()
    store.create(make_room())

    room, changed = store.mutate("gd_1_a", arrive("a"))
    assert changed
    assert room.find_participant("a").joined_at == T0
    assert store.get("gd_1_a").joined_count == 1

    _, changed = store.mutate("gd_1_a", arrive("a"))
    assert not changed


def test_memory_store_mutate_error_leaves_room_untouched():
    store = InMemoryRoomStore()
    store.create(make_room())

    def broken(room):
        room.status = "active"
        raise NotFound("nope")

    with pytest.raises(NotFound):
        store.mutate("gd_1_a", broken)
    assert store.get("gd_1_a").status == "lobby"


def test_memory_store_filter():
    store = InMemoryRoomStore()
    store.create(make_room("gd_2", created_at=T0 + timedelta(seconds=5)))
    store.create(make_room("gd_1", status="completed"))
    store.create(make_room("gd_3", users=("c", "d")))

    assert [r.room_id for r in store.filter()] == ["gd_1", "gd_3", "gd_2"]
    assert [r.room_id for r in store.filter(user_id="a")] == ["gd_1", "gd_2"]
    assert [r.room_id for r in store.filter(user_id="a", statuses=("lobby", "active"))] == ["gd_2"]


def test_build_room_store():
    assert isinstance(build_room_store("memory"), InMemoryRoomStore)
    assert isinstance(build_room_store("firestore", "rooms"), FirestoreRoomStore)
    with pytest.raises(ValueError):
        build_room_store("postgres")


# --- Firestore ---

@pytest.fixture
def db():
    return MagicMock()


def test_firestore_create_writes_record(db):
    store = FirestoreRoomStore(db, collection="rooms")
    store.create(make_room())

    db.collection.assert_called_with("rooms")
    db.collection.return_value.document.assert_called_with("gd_1_a")
    record = db.collection.return_value.document.return_value.create.call_args[0][0]
    assert record["participant_ids"] == ["a", "b"]
    assert record["status"] == "lobby"


def test_firestore_create_existing_is_conflict(db):
    db.collection.return_value.document.return_value.create.side_effect = \
        google_exceptions.AlreadyExists("exists")

    with pytest.raises(Conflict):
        FirestoreRoomStore(db).create(make_room())


def test_firestore_errors_are_unavailable(db):
    db.collection.return_value.document.return_value.get.side_effect = \
        google_exceptions.ServiceUnavailable("down")

    with pytest.raises(Unavailable):
        FirestoreRoomStore(db).get("gd_1_a")


def test_firestore_get(db):
    snapshot = db.collection.return_value.document.return_value.get.return_value
    snapshot.exists = True
    snapshot.to_dict.return_value = make_room().to_record()

    room = FirestoreRoomStore(db).get("gd_1_a")
    assert room.participant_ids == ["a", "b"]

    snapshot.exists = False
    assert FirestoreRoomStore(db).get("gd_1_a") is None


def test_firestore_filter_narrows_status(db):
    docs = []
    for room in (make_room("gd_1", status="completed"), make_room("gd_2")):
        doc = MagicMock()
        doc.to_dict.return_value = room.to_record()
        docs.append(doc)
    query = db.collection.return_value.where.return_value
    query.stream.return_value = docs

    rooms = FirestoreRoomStore(db).filter(user_id="a", statuses=["lobby"])

    assert [r.room_id for r in rooms] == ["gd_2"]
    field_filter = db.collection.return_value.where.call_args.kwargs["filter"]
    assert field_filter.field_path == "participant_ids"
    assert field_filter.op_string == "array_contains"
    assert field_filter.value == "a"


@pytest.fixture
def no_retry_transactions(monkeypatch):
    """Unwrap @transactional so the body runs once against the mocked transaction."""
    wrapped = []

    def transactional(fn):
        wrapped.append(fn)
        return fn

    monkeypatch.setattr(storage, "transactional", transactional)
    return wrapped


def test_firestore_mutate_reads_and_writes_in_one_transaction(db, no_retry_transactions):
    ref = db.collection.return_value.document.return_value
    ref.get.return_value.exists = True
    ref.get.return_value.to_dict.return_value = make_room().to_record()
    transaction = db.transaction.return_value

    room, changed = FirestoreRoomStore(db).mutate("gd_1_a", arrive("b"))

    assert changed
    assert len(no_retry_transactions) == 1
    ref.get.assert_called_once_with(transaction=transaction)
    written_ref, record = transaction.update.call_args[0]
    assert written_ref is ref
    assert [p["joined_at"] for p in record["participants"]] == [None, T0]
    ref.update.assert_not_called()


def test_firestore_mutate_without_change_writes_nothing(db, no_retry_transactions):
    record = make_room().to_record()
    record["participants"][0]["joined_at"] = T0
    ref = db.collection.return_value.document.return_value
    ref.get.return_value.exists = True
    ref.get.return_value.to_dict.return_value = record

    _, changed = FirestoreRoomStore(db).mutate("gd_1_a", arrive("a"))

    assert not changed
    db.transaction.return_value.update.assert_not_called()


def test_firestore_mutate_missing_room(db, no_retry_transactions):
    db.collection.return_value.document.return_value.get.return_value.exists = False

    assert FirestoreRoomStore(db).mutate("gd_gone", arrive("a")) == (None, False)


def test_firestore_mutate_failure_is_unavailable(db, no_retry_transactions):
    db.collection.return_value.document.return_value.get.side_effect = google_exceptions.Aborted("contention")

    with pytest.raises(Unavailable):
        FirestoreRoomStore(db).mutate("gd_1_a", arrive("a"))


def test_firestore_not_configured(monkeypatch):
    import firebase_admin_config

    monkeypatch.setattr(firebase_admin_config, "get_db", lambda: None)
    with pytest.raises(Unavailable):
        FirestoreRoomStore().get("gd_1_a")
