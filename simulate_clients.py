"""Drive N simulated participants through queue -> lobby -> call against a running server.

    python simulate_clients.py http://localhost:5000 6
"""
import logging
import sys
import threading

from api_client import GlobalGDClient, PushChannel
from client_sync import LobbySession, MatchFinder
from logging_config import setup_logging

logger = logging.getLogger("simulate_clients")


def run_participant(base_url: str, index: int, done: threading.Event, results: dict):
    user_id = f"sim{index}@speakup.test"
    api = GlobalGDClient(base_url)
    push = PushChannel(base_url, user_id)
    push.connect()

    def on_call_start(room_id, topic):
        results[user_id] = room_id
        logger.info(f"📞 {user_id} -> call {room_id} ({topic})")
        push.disconnect()
        done.set()

    def on_matched(ticket):
        LobbySession(api, user_id, ticket, on_call_start, push=push).enter()

    MatchFinder(api, user_id, on_matched, push=push).start(name=f"Sim {index}")


if __name__ == "__main__":
    setup_logging("INFO")
    url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:5000"
    count = int(sys.argv[2]) if len(sys.argv) > 2 else 3

    results = {}
    events = []
    for i in range(count):
        done = threading.Event()
        events.append(done)
        run_participant(url, i, done, results)

    try:
        for done in events:
            done.wait(timeout=120)
    except KeyboardInterrupt:
        print("\n🛑 Simulation interrupted")

    rooms = {}
    for user_id, room_id in results.items():
        rooms.setdefault(room_id, []).append(user_id)
    print(f"✅ {len(results)}/{count} participants reached a call")
    for room_id, users in rooms.items():
        print(f"  {room_id}: {', '.join(users)}")
