"""Print Global GD rooms from the configured room store.

    ROOM_STORE=firestore FIREBASE_CREDENTIALS=key.json python check_rooms.py [lobby|active|completed]
"""
import sys

from config import Config
from errors import Unavailable
from storage import build_room_store


def check_rooms(statuses=None):
    store = build_room_store(Config.ROOM_STORE, Config.FIRESTORE_ROOMS_COLLECTION)
    try:
        rooms = store.filter(statuses=statuses)
    except Unavailable as e:
        print(f"❌ Room store unavailable: {e.message}")
        return 1

    print(f"\n🏠 Global GD rooms ({Config.ROOM_STORE}, status={','.join(statuses) if statuses else 'any'})")
    print("-" * 78)
    print(f"{'Room':<26} {'Status':<10} {'Joined':>7}  {'Created':<20} Topic")
    print("-" * 78)
    for room in rooms:
        joined = f"{room.joined_count}/{room.team_size}"
        created = room.created_at.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{room.room_id:<26} {room.status:<10} {joined:>7}  {created:<20} {room.topic}")
    if not rooms:
        print("No rooms found.")
    print("-" * 78)
    return 0


if __name__ == "__main__":
    sys.exit(check_rooms(sys.argv[1:] or None))
