# general_events.py
import logging

from flask import request
from flask_socketio import emit, join_room

from extensions import socketio
from utils import user_channel

logger = logging.getLogger(__name__)


@socketio.on("connect")
def on_connect():
    logger.info(f"🟢 connect: {request.sid}")


@socketio.on("disconnect")
def on_disconnect(reason=None):
    # Queue entries are keyed by user, not socket: a dropped socket keeps its
    # place (the client keeps polling) until leave or the timeout sweep.
    logger.info(f"🔴 disconnect: {request.sid}" + (f" ({reason})" if reason else ""))


@socketio.on("register_user")
def on_register_user(data):
    """Client announces its identity (email or id) after connecting."""
    user_id = data.get("userId") if isinstance(data, dict) else data
    if not isinstance(user_id, str) or not user_id.strip():
        emit("error_message", {"code": "INVALID_ARGUMENT", "message": "Missing userId"})
        return
    user_id = user_id.strip()
    join_room(user_channel(user_id))
    logger.info(f"🪪 {request.sid} registered as {user_id}")
    emit("registered", {"userId": user_id})
