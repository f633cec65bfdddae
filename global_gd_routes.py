# global_gd_routes.py
"""REST surface for Global GD auto-matching (polling clients use these)."""
import logging

from flask import Blueprint, jsonify, request

import state
from auth import resolve_user
from config import Config
from errors import InvalidArgument
from lobby_events import broadcast_queue_status
from utils import serialize_queue_status, serialize_room

logger = logging.getLogger(__name__)

global_gd_bp = Blueprint("global_gd", __name__, url_prefix="/api/global-gd")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _require_user(user_id, name=None):
    user_id, name = resolve_user(user_id, name)
    if not user_id:
        raise InvalidArgument("Missing userId")
    return user_id, name


@global_gd_bp.route("/config", methods=["GET"])
def client_config():
    return jsonify({
        "modes": state.matchmaker.modes,
        "defaultMode": state.matchmaker.default_mode,
        "pollIntervalSeconds": Config.STATUS_POLL_SECONDS,
        "countdownSeconds": Config.LOBBY_COUNTDOWN_SECONDS,
    })


@global_gd_bp.route("/join", methods=["POST"])
def join_queue():
    data = _json_body()
    user_id, name = _require_user(data.get("userId"), data.get("name"))
    resp = state.matchmaker.join(user_id, name, data.get("mode"))
    if resp.status == "queued":
        broadcast_queue_status(resp.mode)
    return jsonify(serialize_queue_status(resp))


@global_gd_bp.route("/leave", methods=["POST"])
def leave_queue():
    data = _json_body()
    user_id, _ = _require_user(data.get("userId"))
    state.matchmaker.leave(user_id)
    broadcast_queue_status()
    return jsonify({"ok": True})


@global_gd_bp.route("/status", methods=["GET"])
def queue_status():
    user_id, _ = _require_user(request.args.get("userId"))
    return jsonify(serialize_queue_status(state.matchmaker.status(user_id)))


@global_gd_bp.route("/leave-room", methods=["POST"])
def leave_room():
    data = _json_body()
    user_id, _ = _require_user(data.get("userId"))
    room_id = data.get("roomId")
    if not room_id:
        raise InvalidArgument("Missing roomId")
    room = state.coordinator.leave_room(room_id, user_id)
    body = {"ok": True}
    if room is not None:
        body.update({"status": room.status, "leftUsers": list(room.left_user_ids)})
    return jsonify(body)


@global_gd_bp.route("/rooms/<room_id>", methods=["GET"])
def get_room(room_id):
    return jsonify(serialize_room(state.coordinator.get_room(room_id)))


@global_gd_bp.route("/rooms/<room_id>/joined", methods=["POST"])
def mark_joined(room_id):
    data = _json_body()
    user_id, _ = _require_user(data.get("userId"))
    return jsonify(serialize_room(state.coordinator.mark_joined(room_id, user_id)))


@global_gd_bp.route("/rooms/<room_id>/start", methods=["POST"])
def start_call(room_id):
    return jsonify(serialize_room(state.coordinator.start_call(room_id)))


@global_gd_bp.route("/rooms/<room_id>/complete", methods=["POST"])
def complete_call(room_id):
    """Called by the video-call collaborator when the session ends."""
    return jsonify(serialize_room(state.coordinator.complete_call(room_id)))
