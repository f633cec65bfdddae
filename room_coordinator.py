# room_coordinator.py
"""Lifecycle of a matched Global GD group: lobby -> active -> completed."""
import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from errors import InvalidArgument, NotFound, Conflict, require_user_id
from models import QueueEntry, Room, Participant, OPEN_ROOM_STATUSES, utcnow
from storage import RoomStore

logger = logging.getLogger(__name__)


def new_room_id(now: datetime) -> str:
    return f"gd_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"


def _room_not_found(room_id: str) -> NotFound:
    return NotFound(f"Room not found: {room_id}", {"roomId": room_id})


class RoomCoordinator:
    """Owns every room mutation. The notifier is the push collaborator and is
    expected to expose ``room_created(room)`` and ``room_state(room)``.

    Changes are applied through ``RoomStore.mutate`` so they stay atomic even
    when several server instances share a Firestore store.
    """

    def __init__(self, store: RoomStore, notifier=None, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._notifier = notifier
        self._clock = clock

    def _notify(self, event: str, room: Room) -> None:
        if self._notifier is None:
            return
        try:
            getattr(self._notifier, event)(room)
        except Exception as e:
            # Push is best-effort; clients fall back to polling.
            logger.warning(f"⚠️ {event} notification failed for room {room.room_id}: {e}")

    def _mutate(self, room_id: str, change) -> tuple:
        if not room_id:
            raise InvalidArgument("Missing roomId")
        return self._store.mutate(room_id, change)

    # --- creation ---

    def create_room(self, entries: List[QueueEntry], topic: str, mode: str = "global",
                    trigger_user_id: Optional[str] = None) -> Room:
        """Build a lobby room from a formed group and hand it to on_room_created."""
        if not entries:
            raise InvalidArgument("Cannot create a room without participants")
        now = self._clock()
        room = Room(
            room_id=new_room_id(now),
            topic=topic,
            team_size=entries[0].group_size_target,
            participants=[Participant(e.user_id, e.display_name) for e in entries],
            mode=mode,
            created_at=now,
        )
        return self.on_room_created(room, trigger_user_id=trigger_user_id)

    def on_room_created(self, room: Room, trigger_user_id: Optional[str] = None) -> Room:
        if len(room.participants) > room.team_size:
            raise InvalidArgument(
                f"Room {room.room_id} has {len(room.participants)} participants for team size {room.team_size}"
            )
        now = self._clock()
        room.status = "lobby"
        for p in room.participants:
            p.joined_at = now if p.user_id == trigger_user_id else None

        self._store.create(room)
        logger.info(
            f"🏗️ [Match] Room {room.room_id} ({room.mode}) topic='{room.topic}' "
            f"players={', '.join(room.participant_ids)}"
        )
        self._notify("room_created", room)
        return room

    # --- reads ---

    def get_room(self, room_id: str) -> Room:
        if not room_id:
            raise InvalidArgument("Missing roomId")
        room = self._store.get(room_id)
        if room is None:
            raise _room_not_found(room_id)
        return room

    def get_room_for(self, room_id: str, user_id: str) -> Room:
        """The room, provided ``user_id`` is still one of its participants."""
        user_id = require_user_id(user_id)
        room = self.get_room(room_id)
        if room.find_participant(user_id) is None:
            raise NotFound(
                f"User {user_id} is not a participant of room {room_id}",
                {"roomId": room_id, "userId": user_id},
            )
        return room

    def find_active_room(self, user_id: str) -> Optional[Room]:
        rooms = self._store.filter(user_id=user_id, statuses=OPEN_ROOM_STATUSES)
        return rooms[0] if rooms else None

    def list_rooms(self, statuses=None) -> List[Room]:
        return self._store.filter(statuses=statuses)

    # --- lobby ---

    def mark_joined(self, room_id: str, user_id: str) -> Room:
        """Record the first lobby arrival of a participant; repeats are no-ops."""
        user_id = require_user_id(user_id)

        def arrive(room: Room) -> bool:
            participant = room.find_participant(user_id)
            if participant is None:
                raise NotFound(
                    f"User {user_id} is not a participant of room {room_id}",
                    {"roomId": room_id, "userId": user_id},
                )
            if participant.joined_at is not None or not room.is_open:
                return False
            participant.joined_at = self._clock()
            return True

        room, changed = self._mutate(room_id, arrive)
        if room is None:
            raise _room_not_found(room_id)
        if changed:
            logger.info(f"👤 {user_id} arrived in lobby {room_id} ({room.joined_count}/{room.team_size})")
            self._notify("room_state", room)
        return room

    def leave_room(self, room_id: str, user_id: str) -> Optional[Room]:
        user_id = require_user_id(user_id)

        def depart(room: Room) -> bool:
            participant = room.find_participant(user_id)
            if participant is None:
                return False
            room.participants.remove(participant)
            if user_id not in room.left_user_ids:
                room.left_user_ids.append(user_id)
            if not room.participants and room.status != "completed":
                room.advance("completed", self._clock())
                room.end_reason = "abandoned"
            return True

        room, changed = self._mutate(room_id, depart)
        if room is None:
            logger.info(f"<- leave_room for unknown room {room_id} ({user_id}), ignoring")
            return None
        if not changed:
            return room

        logger.info(f"<- {user_id} left room {room_id} ({len(room.participants)}/{room.team_size} left)")
        if room.end_reason == "abandoned" and not room.participants:
            logger.info(f"🗑️ Room {room_id} is empty, marked abandoned.")
        self._notify("room_state", room)
        return room

    # --- call ---

    def start_call(self, room_id: str) -> Room:
        """Trigger only: readiness is decided by the lobby clients."""

        def start(room: Room) -> bool:
            if room.status != "lobby":
                raise Conflict(
                    f"Room {room_id} call already {room.status}",
                    {"roomId": room_id, "status": room.status},
                )
            room.advance("active", self._clock())
            return True

        room, _ = self._mutate(room_id, start)
        if room is None:
            raise _room_not_found(room_id)
        logger.info(f"🎙️ Call started for room {room_id}")
        self._notify("room_state", room)
        return room

    def complete_call(self, room_id: str) -> Room:
        def complete(room: Room) -> bool:
            if room.status == "completed":
                return False
            if room.status == "lobby":
                raise Conflict(f"Room {room_id} call has not started", {"roomId": room_id, "status": room.status})
            room.advance("completed", self._clock())
            room.end_reason = "call_ended"
            return True

        room, changed = self._mutate(room_id, complete)
        if room is None:
            raise _room_not_found(room_id)
        if changed:
            logger.info(f"🏁 Call ended for room {room_id}")
            self._notify("room_state", room)
        return room
