# models.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Literal, Optional, Dict, Any

from errors import Conflict

RoomStatus = Literal["lobby", "active", "completed"]

QueueState = Literal[
    "queued",
    "matched",
    "idle",     # not queued, not in a room
    "timeout",  # dropped by the max-wait safety net
]

ROOM_STATUS_ORDER: Dict[str, int] = {"lobby": 0, "active": 1, "completed": 2}
OPEN_ROOM_STATUSES = ("lobby", "active")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class QueueEntry:
    user_id: str
    display_name: str
    joined_at: datetime
    group_size_target: int
    seq: int = 0  # insertion order, breaks joined_at ties
    mode: str = "global"

    def sort_key(self):
        return (self.joined_at, self.seq)


@dataclass
class Participant:
    user_id: str
    display_name: str
    joined_at: Optional[datetime] = None  # set once the user reaches the lobby


@dataclass
class Room:
    room_id: str
    topic: str
    team_size: int
    participants: List[Participant] = field(default_factory=list)
    status: RoomStatus = "lobby"
    mode: str = "global"
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None  # call_ended | abandoned
    left_user_ids: List[str] = field(default_factory=list)

    @property
    def participant_ids(self) -> List[str]:
        return [p.user_id for p in self.participants]

    @property
    def joined_count(self) -> int:
        return sum(1 for p in self.participants if p.joined_at is not None)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_ROOM_STATUSES

    def find_participant(self, user_id: str) -> Optional[Participant]:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    def advance(self, status: RoomStatus, now: datetime) -> None:
        """Move status forward. lobby -> active -> completed, never back."""
        if ROOM_STATUS_ORDER[status] <= ROOM_STATUS_ORDER[self.status]:
            raise Conflict(
                f"Room {self.room_id} cannot move from '{self.status}' to '{status}'",
                {"roomId": self.room_id, "status": self.status},
            )
        self.status = status
        if status == "active":
            self.started_at = now
        elif status == "completed":
            self.ended_at = now

    # --- storage records (snake_case, native datetimes) ---

    def to_record(self) -> Dict[str, Any]:
        return {
            "room_id": self.room_id,
            "topic": self.topic,
            "team_size": self.team_size,
            "participants": [
                {"user_id": p.user_id, "display_name": p.display_name, "joined_at": p.joined_at}
                for p in self.participants
            ],
            "participant_ids": self.participant_ids,
            "status": self.status,
            "mode": self.mode,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "end_reason": self.end_reason,
            "left_user_ids": list(self.left_user_ids),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Room":
        return cls(
            room_id=record["room_id"],
            topic=record["topic"],
            team_size=int(record["team_size"]),
            participants=[
                Participant(
                    user_id=p["user_id"],
                    display_name=p.get("display_name") or p["user_id"],
                    joined_at=p.get("joined_at"),
                )
                for p in record.get("participants", [])
            ],
            status=record.get("status", "lobby"),
            mode=record.get("mode", "global"),
            created_at=record.get("created_at") or utcnow(),
            started_at=record.get("started_at"),
            ended_at=record.get("ended_at"),
            end_reason=record.get("end_reason"),
            left_user_ids=list(record.get("left_user_ids", [])),
        )


@dataclass
class QueueStatusResponse:
    status: QueueState
    group_size: int
    queue_size: int = 0
    position: Optional[int] = None  # 1-indexed, only while queued
    mode: str = "global"
    room: Optional[Room] = None  # only when matched
