# storage.py
"""Room persistence.

The coordinator only talks to a ``RoomStore``. The in-memory store is the
default (single gunicorn worker, same as the socket state); the Firestore
store keeps rooms durable and shared between instances.

Every room change goes through ``mutate``: a read-modify-write that is atomic
under the in-memory lock, or inside a Firestore transaction, so concurrent
writers never overwrite each other's participant updates.
"""
import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from google.api_core import exceptions as google_exceptions
from google.cloud.firestore import transactional
from google.cloud.firestore_v1.base_query import FieldFilter

from errors import Conflict, Unavailable
from models import Room

logger = logging.getLogger(__name__)

# Applied to a fresh copy of the room; returns True when the room changed.
# May run more than once (Firestore retries contended transactions).
RoomChange = Callable[[Room], bool]


class RoomStore(ABC):
    @abstractmethod
    def create(self, room: Room) -> Room:
        pass

    @abstractmethod
    def get(self, room_id: str) -> Optional[Room]:
        pass

    @abstractmethod
    def filter(self, user_id: str = None, statuses: Iterable[str] = None) -> List[Room]:
        """Rooms ordered by created_at, optionally narrowed to a participant and statuses."""
        pass

    @abstractmethod
    def mutate(self, room_id: str, change: RoomChange) -> Tuple[Optional[Room], bool]:
        """Atomically apply ``change`` to the stored room.

        Returns ``(room, changed)``; ``(None, False)`` when the room does not
        exist. Errors raised by ``change`` abort the write and propagate.
        """
        pass


class InMemoryRoomStore(RoomStore):
    """Stores copies so callers must go through mutate() to persist changes."""

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()

    def create(self, room: Room) -> Room:
        with self._lock:
            if room.room_id in self._rooms:
                raise Conflict(f"Room already exists: {room.room_id}")
            self._rooms[room.room_id] = copy.deepcopy(room)
        return room

    def get(self, room_id: str) -> Optional[Room]:
        with self._lock:
            room = self._rooms.get(room_id)
            return copy.deepcopy(room) if room else None

    def filter(self, user_id: str = None, statuses: Iterable[str] = None) -> List[Room]:
        wanted = set(statuses) if statuses else None
        with self._lock:
            rooms = [
                copy.deepcopy(room)
                for room in self._rooms.values()
                if (user_id is None or user_id in room.participant_ids)
                and (wanted is None or room.status in wanted)
            ]
        return sorted(rooms, key=lambda r: r.created_at)

    def mutate(self, room_id: str, change: RoomChange) -> Tuple[Optional[Room], bool]:
        with self._lock:
            stored = self._rooms.get(room_id)
            if stored is None:
                return None, False
            room = copy.deepcopy(stored)
            changed = change(room)
            if changed:
                self._rooms[room_id] = copy.deepcopy(room)
        return room, changed

    def clear(self) -> None:
        with self._lock:
            self._rooms.clear()


class FirestoreRoomStore(RoomStore):
    def __init__(self, db=None, collection: str = "global_gd_rooms"):
        self._db = db
        self._collection_name = collection

    def _client(self):
        db = self._db
        if db is None:
            from firebase_admin_config import get_db
            db = get_db()
        if db is None:
            raise Unavailable("Firestore is not configured")
        return db

    def _collection(self):
        return self._client().collection(self._collection_name)

    def create(self, room: Room) -> Room:
        try:
            self._collection().document(room.room_id).create(room.to_record())
        except google_exceptions.AlreadyExists as exc:
            raise Conflict(f"Room already exists: {room.room_id}") from exc
        except google_exceptions.GoogleAPICallError as exc:
            raise Unavailable(f"Firestore create failed: {exc}") from exc
        return room

    def get(self, room_id: str) -> Optional[Room]:
        try:
            snapshot = self._collection().document(room_id).get()
        except google_exceptions.GoogleAPICallError as exc:
            raise Unavailable(f"Firestore read failed: {exc}") from exc
        if not snapshot.exists:
            return None
        return Room.from_record(snapshot.to_dict())

    def filter(self, user_id: str = None, statuses: Iterable[str] = None) -> List[Room]:
        query = self._collection()
        if user_id is not None:
            query = query.where(filter=FieldFilter("participant_ids", "array_contains", user_id))
        try:
            rooms = [Room.from_record(doc.to_dict()) for doc in query.stream()]
        except google_exceptions.GoogleAPICallError as exc:
            raise Unavailable(f"Firestore query failed: {exc}") from exc
        # status is narrowed client-side; it keeps the query on a single-field index
        if statuses:
            wanted = set(statuses)
            rooms = [r for r in rooms if r.status in wanted]
        return sorted(rooms, key=lambda r: r.created_at)

    def mutate(self, room_id: str, change: RoomChange) -> Tuple[Optional[Room], bool]:
        db = self._client()
        ref = db.collection(self._collection_name).document(room_id)

        @transactional
        def apply(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                return None, False
            room = Room.from_record(snapshot.to_dict())
            changed = change(room)
            if changed:
                transaction.update(ref, room.to_record())
            return room, changed

        try:
            return apply(db.transaction())
        except google_exceptions.GoogleAPICallError as exc:
            raise Unavailable(f"Firestore transaction failed for {room_id}: {exc}") from exc


def build_room_store(kind: str, collection: str = "global_gd_rooms") -> RoomStore:
    if kind == "memory":
        return InMemoryRoomStore()
    if kind == "firestore":
        logger.info(f"🗄️ Using Firestore room store (collection={collection})")
        return FirestoreRoomStore(collection=collection)
    raise ValueError(f"Unknown ROOM_STORE '{kind}' (expected 'memory' or 'firestore')")
