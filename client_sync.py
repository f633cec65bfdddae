# client_sync.py
"""Client synchronization for Global GD.

MatchFinder covers the "finding participants" screen: it polls the queue
status and listens for the room_created push at the same time, whichever
arrives first wins. LobbySession covers the lobby: it announces arrival,
tracks who is present, and runs the local countdown that moves everyone to
the call. Countdowns are per client and not server-driven; a skew of a
second or two between participants is accepted.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from errors import Conflict, GlobalGDError, Unavailable

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Having trouble checking status. We will keep retrying…"

DEFAULT_POLL_SECONDS = 3.0
DEFAULT_COUNTDOWN_SECONDS = 10


@dataclass
class LobbyTicket:
    """Everything the lobby view needs when it is opened."""
    room_id: str
    topic: Optional[str]
    team_size: int
    participants: List[Dict[str, Any]] = field(default_factory=list)


def _is_member(participants, user_id: str) -> bool:
    return any(isinstance(p, dict) and p.get("userId") == user_id for p in participants)


def _joined_count(room: Dict[str, Any]) -> int:
    if "joinedCount" in room:
        return int(room["joinedCount"])
    return sum(1 for p in room.get("participants") or [] if p.get("joinedAt"))


class MatchFinder:
    def __init__(self, api, user_id: str, on_matched: Callable[[LobbyTicket], None],
                 push=None, poll_interval: float = DEFAULT_POLL_SECONDS, default_group_size: int = 3):
        self.api = api
        self.user_id = user_id
        self.on_matched = on_matched
        self.push = push
        self.poll_interval = poll_interval

        self.state = "idle"  # idle | searching | matched | cancelled
        self.queue_size: Optional[int] = None
        self.position: Optional[int] = None
        self.group_size = default_group_size
        self.error_message: Optional[str] = None
        self.ticket: Optional[LobbyTicket] = None

        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self, name: str = None, mode: str = None, background: bool = True) -> Dict[str, Any]:
        """Join the queue, then poll + listen until matched or cancelled."""
        resp = self.api.join(self.user_id, name, mode)
        with self._lock:
            self.state = "searching"
            self._stop.clear()
        if self.push is not None:
            self.push.subscribe("global_gd_room_created", self._on_room_created)

        if resp.get("status") == "matched":
            self._handle_match(resp)
            return resp

        self._apply_queued(resp)
        if background:
            self._thread = threading.Thread(target=self._run, name=f"match-finder-{self.user_id}", daemon=True)
            self._thread.start()
        return resp

    def _run(self):
        self.poll_once()
        while not self._stop.wait(self.poll_interval):
            self.poll_once()

    def poll_once(self) -> None:
        if self.state != "searching":
            return
        try:
            resp = self.api.status(self.user_id)
        except GlobalGDError as e:
            logger.warning(f"⚠️ Status poll failed for {self.user_id}: {e}")
            self.error_message = RETRY_MESSAGE
            return

        self.error_message = None
        if resp.get("status") == "matched":
            self._handle_match(resp)
        else:
            self._apply_queued(resp)

    def _apply_queued(self, resp: Dict[str, Any]) -> None:
        self.queue_size = resp.get("queueSize")
        self.position = resp.get("position")
        self.group_size = resp.get("groupSize") or resp.get("teamSize") or self.group_size

    def _on_room_created(self, payload: Dict[str, Any]) -> None:
        self._handle_match(payload)

    def _handle_match(self, payload: Dict[str, Any]) -> None:
        room_id = payload.get("roomId")
        if not room_id:
            return
        participants = payload.get("participants")
        # stale or misdirected event: ignore, polling will correct us
        if isinstance(participants, list) and participants and not _is_member(participants, self.user_id):
            logger.info(f"🚫 Ignoring match {room_id}: {self.user_id} not among participants")
            return

        with self._lock:
            if self.state != "searching":
                return
            self.state = "matched"
            self.ticket = LobbyTicket(
                room_id=room_id,
                topic=payload.get("topic"),
                team_size=payload.get("teamSize") or payload.get("groupSize") or self.group_size,
                participants=list(participants or []),
            )
        self._shutdown()
        logger.info(f"🎉 {self.user_id} matched into {room_id}")
        self.on_matched(self.ticket)

    def cancel(self) -> None:
        """Leave the queue. Failures are logged; the server timeout cleans up."""
        with self._lock:
            if self.state == "matched":
                return
            self.state = "cancelled"
        self._shutdown()
        try:
            self.api.leave(self.user_id)
        except GlobalGDError as e:
            logger.warning(f"⚠️ Leave failed for {self.user_id}, relying on queue timeout: {e}")

    def _shutdown(self) -> None:
        self._stop.set()
        if self.push is not None:
            self.push.unsubscribe("global_gd_room_created", self._on_room_created)


class LobbyCountdown:
    """Starts when enough participants are present, resets when someone drops."""

    def __init__(self, team_size: int, duration: int = DEFAULT_COUNTDOWN_SECONDS):
        self.team_size = team_size
        self.duration = duration
        self.seconds_left: Optional[int] = None
        self.finished = False

    @property
    def running(self) -> bool:
        return self.seconds_left is not None and not self.finished

    def update(self, present: int) -> None:
        if self.finished:
            return
        if present >= self.team_size and self.seconds_left is None:
            self.seconds_left = self.duration
        elif present < self.team_size and self.seconds_left is not None:
            self.seconds_left = None

    def tick(self) -> bool:
        """Advance one second. True exactly once, when the countdown hits zero."""
        if not self.running:
            return False
        if self.seconds_left > 0:
            self.seconds_left -= 1
        if self.seconds_left <= 0:
            self.finished = True
            return True
        return False


class LobbySession:
    def __init__(self, api, user_id: str, ticket: LobbyTicket,
                 on_call_start: Callable[[str, Optional[str]], None], push=None,
                 countdown_seconds: int = DEFAULT_COUNTDOWN_SECONDS, tick_interval: float = 1.0,
                 refresh_every: int = 3):
        self.api = api
        self.user_id = user_id
        self.ticket = ticket
        self.on_call_start = on_call_start
        self.push = push
        self.tick_interval = tick_interval
        self.refresh_every = refresh_every

        self.countdown = LobbyCountdown(ticket.team_size, countdown_seconds)
        self.room: Dict[str, Any] = {
            "roomId": ticket.room_id,
            "topic": ticket.topic,
            "teamSize": ticket.team_size,
            "participants": ticket.participants,
        }
        self.state = "lobby"  # lobby | starting | left

        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._ticks = 0
        self._arrived = False
        self._thread: Optional[threading.Thread] = None

    @property
    def seconds_left(self) -> Optional[int]:
        return self.countdown.seconds_left

    def enter(self, background: bool = True) -> Dict[str, Any]:
        """Announce arrival, load the room and start the local clock.

        NotFound (room gone, or we are no longer a participant) propagates.
        A transient failure is retried by the periodic refresh.
        """
        try:
            self._announce()
        except Unavailable as e:
            logger.warning(f"⚠️ Could not announce arrival in {self.ticket.room_id}, will retry: {e}")
        if self.push is not None:
            self.push.subscribe("global_gd_room_state", self._on_room_state)
            # arrival went over REST; this puts the socket in the room channel
            self.push.watch_room(self.ticket.room_id)
        if background:
            self._thread = threading.Thread(target=self._run, name=f"lobby-{self.ticket.room_id}", daemon=True)
            self._thread.start()
        return self.room

    def _announce(self) -> None:
        room = self.api.mark_joined(self.ticket.room_id, self.user_id)
        self._arrived = True
        self.apply_room(room)

    def apply_room(self, room: Dict[str, Any]) -> None:
        if room.get("roomId") != self.ticket.room_id:
            return
        with self._lock:
            self.room = room
            if room.get("teamSize"):
                self.countdown.team_size = room["teamSize"]
            self.countdown.update(_joined_count(room))

    def _on_room_state(self, payload: Dict[str, Any]) -> None:
        self.apply_room(payload)

    def refresh(self) -> None:
        # covers missed pushes and a failed arrival announcement
        try:
            if not self._arrived:
                self._announce()
            else:
                self.apply_room(self.api.get_room(self.ticket.room_id))
        except GlobalGDError as e:
            logger.warning(f"⚠️ Lobby refresh failed for {self.ticket.room_id}: {e}")

    def _run(self):
        while not self._stop.wait(self.tick_interval):
            self._ticks += 1
            if self.refresh_every and self._ticks % self.refresh_every == 0:
                self.refresh()
            self.tick()

    def tick(self) -> bool:
        with self._lock:
            if self.state != "lobby":
                return False
            fired = self.countdown.tick()
            if fired:
                self.state = "starting"
        if fired:
            self._start_call()
        return fired

    def _start_call(self) -> None:
        self._shutdown()
        try:
            self.api.start_call(self.ticket.room_id)
        except Conflict:
            pass  # another participant's countdown got there first
        except GlobalGDError as e:
            logger.warning(f"⚠️ start_call failed for {self.ticket.room_id}: {e}")
        logger.info(f"📞 {self.user_id} moving to call {self.ticket.room_id}")
        self.on_call_start(self.ticket.room_id, self.room.get("topic") or self.ticket.topic)

    def leave(self) -> None:
        with self._lock:
            if self.state == "left":
                return
            self.state = "left"
        self._shutdown()
        try:
            self.api.leave_room(self.user_id, self.ticket.room_id)
        except GlobalGDError as e:
            logger.warning(f"⚠️ leave_room failed for {self.ticket.room_id}: {e}")

    def _shutdown(self) -> None:
        self._stop.set()
        if self.push is not None:
            self.push.unsubscribe("global_gd_room_state", self._on_room_state)
            self.push.unwatch_room(self.ticket.room_id)
