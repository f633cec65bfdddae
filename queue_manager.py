# queue_manager.py
"""Waiting pool for Global GD auto-matching.

One bucket per mode, each with a fixed group size. Every mutation of a bucket
happens under that bucket's lock. join, leave, status and expire_stale look
across buckets (a user switching modes) and take every lock in mode order.

The pool lives in process memory: run matchmaking on a single instance.
Rooms may live in Firestore, which keeps them consistent across instances.
"""
import itertools
import logging
import threading
from contextlib import ExitStack, contextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from errors import InvalidArgument, Unavailable, require_user_id
from models import QueueEntry, QueueStatusResponse, Room, utcnow
from room_coordinator import RoomCoordinator
from topics import pick_topic

logger = logging.getLogger(__name__)


class _Bucket:
    def __init__(self, mode: str, group_size: int):
        self.mode = mode
        self.group_size = group_size
        self.entries: List[QueueEntry] = []  # kept sorted by (joined_at, seq)
        self.lock = threading.RLock()

    def find(self, user_id: str) -> Optional[QueueEntry]:
        for entry in self.entries:
            if entry.user_id == user_id:
                return entry
        return None

    def position(self, user_id: str) -> Optional[int]:
        for i, entry in enumerate(self.entries):
            if entry.user_id == user_id:
                return i + 1
        return None


class QueueManager:
    def __init__(self, coordinator: RoomCoordinator, modes: Dict[str, int] = None,
                 default_mode: str = "global", max_wait_seconds: int = 300,
                 clock: Callable[[], datetime] = utcnow,
                 topic_picker: Callable[[], str] = pick_topic):
        modes = modes or {"global": 3}
        if default_mode not in modes:
            raise ValueError(f"Default mode '{default_mode}' is not one of {sorted(modes)}")
        if max_wait_seconds <= 0:
            raise ValueError("max_wait_seconds must be positive")

        self._coordinator = coordinator
        self._buckets: Dict[str, _Bucket] = {
            mode: _Bucket(mode, size) for mode, size in sorted(modes.items())
        }
        self.default_mode = default_mode
        self.max_wait = timedelta(seconds=max_wait_seconds)
        self._clock = clock
        self._pick_topic = topic_picker
        self._seq = itertools.count(1)
        self._timed_out: Dict[str, datetime] = {}

    @property
    def modes(self) -> Dict[str, int]:
        return {mode: b.group_size for mode, b in self._buckets.items()}

    def _bucket(self, mode: Optional[str]) -> _Bucket:
        mode = (mode or self.default_mode).lower()
        bucket = self._buckets.get(mode)
        if bucket is None:
            raise InvalidArgument(f"Unknown mode '{mode}'", {"modes": sorted(self._buckets)})
        return bucket

    @contextmanager
    def _all_locks(self):
        # dict is built in sorted mode order, so acquisition order is stable
        with ExitStack() as stack:
            for bucket in self._buckets.values():
                stack.enter_context(bucket.lock)
            yield

    # --- responses ---

    def _matched(self, room: Room) -> QueueStatusResponse:
        bucket = self._buckets.get(room.mode) or self._bucket(None)
        return QueueStatusResponse(
            status="matched",
            group_size=room.team_size,
            queue_size=len(bucket.entries),
            mode=room.mode,
            room=room,
        )

    def _queued(self, bucket: _Bucket, user_id: str) -> QueueStatusResponse:
        return QueueStatusResponse(
            status="queued",
            group_size=bucket.group_size,
            queue_size=len(bucket.entries),
            position=bucket.position(user_id),
            mode=bucket.mode,
        )

    def _not_queued(self, status: str) -> QueueStatusResponse:
        bucket = self._bucket(None)
        return QueueStatusResponse(
            status=status,
            group_size=bucket.group_size,
            queue_size=len(bucket.entries),
            mode=bucket.mode,
        )

    # --- operations ---

    def join(self, user_id: str, display_name: str = None, mode: str = None) -> QueueStatusResponse:
        user_id = require_user_id(user_id)
        bucket = self._bucket(mode)
        display_name = (display_name or "").strip() or user_id

        with self._all_locks():
            # Already matched: hand back the same room instead of queueing again
            room = self._coordinator.find_active_room(user_id)
            if room is not None:
                logger.info(f"🔄 {user_id} re-joined while in room {room.room_id}")
                return self._matched(room)

            self._timed_out.pop(user_id, None)
            for other in self._buckets.values():
                if other is not bucket and other.find(user_id):
                    other.entries = [e for e in other.entries if e.user_id != user_id]
                    logger.info(f"🔀 {user_id} moved from '{other.mode}' to '{bucket.mode}' queue")

            if bucket.find(user_id) is None:
                bucket.entries.append(QueueEntry(
                    user_id=user_id,
                    display_name=display_name,
                    joined_at=self._clock(),
                    group_size_target=bucket.group_size,
                    seq=next(self._seq),
                    mode=bucket.mode,
                ))
                bucket.entries.sort(key=QueueEntry.sort_key)
                logger.info(f"-> {bucket.mode} queue join: {display_name} ({user_id}) "
                            f"{len(bucket.entries)}/{bucket.group_size}")

            try:
                rooms = self._form_groups_locked(bucket, trigger_user_id=user_id)
            except Unavailable as e:
                # entries were put back; the caller stays queued and keeps polling
                logger.warning(f"⚠️ Group formation deferred for '{bucket.mode}': {e.message}")
                rooms = []

            for room in rooms:
                if user_id in room.participant_ids:
                    return self._matched(room)
            return self._queued(bucket, user_id)

    def leave(self, user_id: str) -> bool:
        """Remove the user's waiting entry. Does not touch already formed rooms."""
        user_id = require_user_id(user_id)
        removed = False
        with self._all_locks():
            self._timed_out.pop(user_id, None)
            for bucket in self._buckets.values():
                before = len(bucket.entries)
                bucket.entries = [e for e in bucket.entries if e.user_id != user_id]
                if len(bucket.entries) < before:
                    removed = True
                    logger.info(f"<- {bucket.mode} queue leave: {user_id}")
        return removed

    def status(self, user_id: str) -> QueueStatusResponse:
        user_id = require_user_id(user_id)
        # same locks as join, so a user mid-grouping reads matched, never idle
        with self._all_locks():
            room = self._coordinator.find_active_room(user_id)
            if room is not None:
                return self._matched(room)

            for bucket in self._buckets.values():
                if bucket.find(user_id):
                    return self._queued(bucket, user_id)

            if user_id in self._timed_out:
                return self._not_queued("timeout")
            return self._not_queued("idle")

    # --- group formation ---

    def _form_groups_locked(self, bucket: _Bucket, trigger_user_id: str = None) -> List[Room]:
        """Consume the oldest entries group by group. Caller holds bucket.lock."""
        rooms = []
        while len(bucket.entries) >= bucket.group_size:
            group = bucket.entries[:bucket.group_size]
            del bucket.entries[:bucket.group_size]
            topic = self._pick_topic()
            trigger = trigger_user_id if any(e.user_id == trigger_user_id for e in group) else None
            try:
                room = self._coordinator.create_room(group, topic, mode=bucket.mode, trigger_user_id=trigger)
            except Exception as e:
                # compensate: put the group back at the head, same order
                bucket.entries[0:0] = group
                logger.error(f"❌ Room creation failed, re-queued {[g.user_id for g in group]}: {e}")
                if isinstance(e, Unavailable):
                    raise
                raise Unavailable(f"Room creation failed: {e}") from e
            rooms.append(room)
        return rooms

    def form_groups(self, mode: str = None) -> List[Room]:
        """Safety-net pass over one mode (or all of them)."""
        buckets = [self._bucket(mode)] if mode else list(self._buckets.values())
        rooms = []
        for bucket in buckets:
            with bucket.lock:
                try:
                    rooms.extend(self._form_groups_locked(bucket))
                except Unavailable as e:
                    logger.warning(f"⚠️ Sweep could not form group for '{bucket.mode}': {e.message}")
        return rooms

    def expire_stale(self, now: datetime = None) -> List[QueueEntry]:
        """Drop entries that waited longer than max_wait; they report 'timeout'.

        A timeout is remembered for another max_wait, after which the user
        reads 'idle' again.
        """
        now = now or self._clock()
        expired = []
        with self._all_locks():
            self._timed_out = {
                user_id: at for user_id, at in self._timed_out.items() if now - at <= self.max_wait
            }
            for bucket in self._buckets.values():
                stale = [e for e in bucket.entries if now - e.joined_at > self.max_wait]
                if not stale:
                    continue
                bucket.entries = [e for e in bucket.entries if now - e.joined_at <= self.max_wait]
                for entry in stale:
                    self._timed_out[entry.user_id] = now
                    logger.info(f"⏰ {entry.user_id} timed out in '{bucket.mode}' queue")
                expired.extend(stale)
        return expired

    # --- read helpers ---

    def queue_size(self, mode: str = None) -> int:
        bucket = self._bucket(mode)
        with bucket.lock:
            return len(bucket.entries)

    def snapshot(self, mode: str = None) -> List[QueueEntry]:
        bucket = self._bucket(mode)
        with bucket.lock:
            return list(bucket.entries)

    def queue_sizes(self) -> Dict[str, int]:
        return {mode: self.queue_size(mode) for mode in self._buckets}
