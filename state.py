# state.py
# Process-wide matchmaking state. Handlers and routes read these through the
# module (state.matchmaker) so they can be swapped as a unit.
from config import Config
from extensions import socketio
from queue_manager import QueueManager
from room_coordinator import RoomCoordinator
from storage import build_room_store
from utils import SocketNotifier

room_store = build_room_store(Config.ROOM_STORE, Config.FIRESTORE_ROOMS_COLLECTION)

coordinator = RoomCoordinator(room_store, notifier=SocketNotifier(socketio))

matchmaker = QueueManager(
    coordinator,
    modes=Config.GLOBAL_GD_MODES,
    default_mode=Config.DEFAULT_MODE,
    max_wait_seconds=Config.QUEUE_MAX_WAIT_SECONDS,
)
