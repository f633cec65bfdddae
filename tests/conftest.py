import os
from datetime import datetime, timedelta, timezone

# must be set before config is imported anywhere
os.environ["START_MATCHMAKER"] = "0"
os.environ["ROOM_STORE"] = "memory"
os.environ["FIREBASE_ENABLED"] = "0"
os.environ.pop("REDIS_URL", None)

import pytest

from queue_manager import QueueManager
from room_coordinator import RoomCoordinator
from storage import InMemoryRoomStore


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


class RecordingNotifier:
    def __init__(self):
        self.created = []
        self.states = []

    def room_created(self, room):
        self.created.append(room)

    def room_state(self, room):
        self.states.append(room)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryRoomStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def coordinator(store, notifier, clock):
    return RoomCoordinator(store, notifier=notifier, clock=clock)


@pytest.fixture
def matchmaker(coordinator, clock):
    return QueueManager(
        coordinator,
        modes={"global": 3, "duo": 2},
        max_wait_seconds=300,
        clock=clock,
        topic_picker=lambda: "Remote work vs office culture",
    )


@pytest.fixture
def server(monkeypatch, clock):
    """The Flask app wired to fresh matchmaking state."""
    import main
    import state
    from extensions import socketio
    from utils import SocketNotifier

    room_store = InMemoryRoomStore()
    coord = RoomCoordinator(room_store, notifier=SocketNotifier(socketio), clock=clock)
    mm = QueueManager(coord, modes={"global": 3}, max_wait_seconds=300, clock=clock,
                      topic_picker=lambda: "Data privacy in a connected world")
    monkeypatch.setattr(state, "room_store", room_store)
    monkeypatch.setattr(state, "coordinator", coord)
    monkeypatch.setattr(state, "matchmaker", mm)

    main.app.config["TESTING"] = True
    return main.app


@pytest.fixture
def http(server):
    return server.test_client()


@pytest.fixture
def socket_client(server):
    from extensions import socketio

    clients = []

    def connect(user_id=None):
        client = socketio.test_client(server)
        if user_id:
            client.emit("register_user", user_id)
            client.get_received()
        clients.append(client)
        return client

    yield connect
    for client in clients:
        if client.is_connected():
            client.disconnect()
