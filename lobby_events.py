# lobby_events.py
"""Socket.IO side of Global GD: queue events, lobby presence, and the
background matchmaker sweep."""
import logging

from flask_socketio import emit, join_room, leave_room

import state
from errors import GlobalGDError
from extensions import socketio
from utils import serialize_queue_status, serialize_room, user_channel, room_channel

logger = logging.getLogger(__name__)

_matchmaker_started = False


def broadcast_queue_status(mode: str = None):
    """Send every waiting user their current position."""
    modes = [mode] if mode else list(state.matchmaker.modes)
    for m in modes:
        entries = state.matchmaker.snapshot(m)
        group_size = state.matchmaker.modes[m]
        for i, entry in enumerate(entries):
            socketio.emit("global_gd:queue_status", {
                "status": "queued",
                "mode": m,
                "queueSize": len(entries),
                "position": i + 1,
                "groupSize": group_size,
            }, to=user_channel(entry.user_id))


def _emit_error(exc: GlobalGDError):
    emit("error_message", {"code": exc.code, "message": exc.message})


@socketio.on("global_gd:join")
def on_join_queue(data):
    data = data or {}
    user_id = data.get("userId")
    try:
        resp = state.matchmaker.join(user_id, data.get("name"), data.get("mode"))
    except GlobalGDError as e:
        _emit_error(e)
        return

    # the push for this match must reach this connection even without register_user
    join_room(user_channel(user_id.strip()))
    emit("global_gd:queue_status", serialize_queue_status(resp))
    if resp.status == "queued":
        broadcast_queue_status(resp.mode)


@socketio.on("global_gd:leave")
def on_leave_queue(data):
    data = data or {}
    try:
        state.matchmaker.leave(data.get("userId"))
    except GlobalGDError as e:
        _emit_error(e)
        return
    emit("global_gd:queue_status", {"status": "idle"})
    broadcast_queue_status()


@socketio.on("global_gd:status")
def on_queue_status(data):
    data = data or {}
    try:
        resp = state.matchmaker.status(data.get("userId"))
    except GlobalGDError as e:
        _emit_error(e)
        return
    emit("global_gd:queue_status", serialize_queue_status(resp))


@socketio.on("global_gd:enter_lobby")
def on_enter_lobby(data):
    """Lobby view mounted: mark arrival and subscribe to room updates."""
    data = data or {}
    room_id = data.get("roomId")
    try:
        room = state.coordinator.mark_joined(room_id, data.get("userId"))
    except GlobalGDError as e:
        _emit_error(e)
        return
    join_room(room_channel(room_id))
    # arrival already broadcast to the room when it changed; this covers repeats
    emit("global_gd_room_state", serialize_room(room))


@socketio.on("global_gd:watch_room")
def on_watch_room(data):
    """Subscribe to room state pushes without marking arrival (REST-driven lobbies)."""
    data = data or {}
    room_id = data.get("roomId")
    try:
        room = state.coordinator.get_room_for(room_id, data.get("userId"))
    except GlobalGDError as e:
        _emit_error(e)
        return
    join_room(room_channel(room_id))
    emit("global_gd_room_state", serialize_room(room))


@socketio.on("global_gd:unwatch_room")
def on_unwatch_room(data):
    room_id = (data or {}).get("roomId")
    if room_id:
        leave_room(room_channel(room_id))


@socketio.on("global_gd:leave_lobby")
def on_leave_lobby(data):
    data = data or {}
    room_id = data.get("roomId")
    try:
        state.coordinator.leave_room(room_id, data.get("userId"))
    except GlobalGDError as e:
        _emit_error(e)
        return
    if room_id:
        leave_room(room_channel(room_id))
    emit("global_gd:left_lobby", {"roomId": room_id})


# --- background sweep ---

def run_matchmaker_sweep():
    """One maintenance pass: expire stale entries, then form any ready groups."""
    expired = state.matchmaker.expire_stale()
    for entry in expired:
        socketio.emit("global_gd:queue_status", {
            "status": "timeout",
            "mode": entry.mode,
            "position": None,
            "groupSize": entry.group_size_target,
        }, to=user_channel(entry.user_id))

    rooms = state.matchmaker.form_groups()
    if expired or rooms:
        broadcast_queue_status()
    return expired, rooms


def matchmaker_loop(interval: float):
    logger.info(f"🔁 Matchmaker sweep running every {interval}s")
    while True:
        socketio.sleep(interval)
        try:
            run_matchmaker_sweep()
        except Exception as e:
            logger.exception(f"❌ Matchmaker sweep failed: {e}")


def start_matchmaker(interval: float):
    global _matchmaker_started
    if _matchmaker_started:
        return
    _matchmaker_started = True
    socketio.start_background_task(matchmaker_loop, interval)
