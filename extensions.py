# extensions.py
import logging

from flask_socketio import SocketIO

from config import Config

logger = logging.getLogger(__name__)

# threading mode: Firebase Admin (gRPC) does not survive eventlet/gevent patching.
# With REDIS_URL set, emits fan out through Redis so several instances can push.
if Config.REDIS_URL:
    logger.info(f"🚀 Using Redis Message Queue: {Config.REDIS_URL}")
    socketio = SocketIO(async_mode="threading", message_queue=Config.REDIS_URL)
else:
    logger.info("⚠️ No REDIS_URL found. Using in-memory mode (Not suitable for multi-instance).")
    socketio = SocketIO(async_mode="threading")
