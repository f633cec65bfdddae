# utils.py
from datetime import datetime
from typing import Dict, Any, Optional

from models import Participant, Room, QueueStatusResponse

# --- channels ---

def user_channel(user_id: str) -> str:
    """Socket.IO room every connection of one user sits in (see register_user)."""
    return f"user:{user_id}"


def room_channel(room_id: str) -> str:
    return f"gd_room:{room_id}"


# --- serializers (client payloads are camelCase) ---

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_participant(p: Participant) -> Dict[str, Any]:
    return {
        "userId": p.user_id,
        "name": p.display_name,
        "joinedAt": _iso(p.joined_at),
    }


def serialize_room(room: Room) -> Dict[str, Any]:
    return {
        "roomId": room.room_id,
        "topic": room.topic,
        "teamSize": room.team_size,
        "groupSize": room.team_size,
        "mode": room.mode,
        "status": room.status,
        "participants": [serialize_participant(p) for p in room.participants],
        "joinedCount": room.joined_count,
        "leftUsers": list(room.left_user_ids),
        "createdAt": _iso(room.created_at),
        "startedAt": _iso(room.started_at),
        "endedAt": _iso(room.ended_at),
        "endReason": room.end_reason,
    }


def serialize_queue_status(resp: QueueStatusResponse) -> Dict[str, Any]:
    data = {
        "status": resp.status,
        "mode": resp.mode,
        "queueSize": resp.queue_size,
        "position": resp.position,
        "groupSize": resp.group_size,
    }
    if resp.room is not None:
        room = resp.room
        data.update({
            "roomId": room.room_id,
            "topic": room.topic,
            "teamSize": room.team_size,
            "participants": [serialize_participant(p) for p in room.participants],
            "roomStatus": room.status,
        })
    return data


def room_created_payload(room: Room) -> Dict[str, Any]:
    return {
        "status": "matched",
        "roomId": room.room_id,
        "topic": room.topic,
        "teamSize": room.team_size,
        "groupSize": room.team_size,
        "participants": [serialize_participant(p) for p in room.participants],
    }


class SocketNotifier:
    """Push collaborator used by the RoomCoordinator."""

    def __init__(self, socketio):
        self.socketio = socketio

    def room_created(self, room: Room) -> None:
        payload = room_created_payload(room)
        for p in room.participants:
            self.socketio.emit("global_gd_room_created", payload, to=user_channel(p.user_id))

    def room_state(self, room: Room) -> None:
        self.socketio.emit("global_gd_room_state", serialize_room(room), to=room_channel(room.room_id))
