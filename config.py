# config.py
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_modes(raw: str) -> dict:
    """'global:3,duo:2' -> {'global': 3, 'duo': 2}"""
    modes = {}
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, _, size = chunk.partition(":")
        group_size = int(size) if size else 3
        if group_size < 2:
            raise ValueError(f"Group size for mode '{name}' must be at least 2")
        modes[name.strip().lower()] = group_size
    if not modes:
        raise ValueError("GLOBAL_GD_MODES must define at least one mode")
    return modes


def parse_origins(raw: str):
    if raw.strip() == "*":
        return "*"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev_secret_key")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Socket.IO fan-out across instances (None = in-memory, single instance)
    REDIS_URL = os.environ.get("REDIS_URL")
    CORS_ALLOWED_ORIGINS = parse_origins(os.environ.get("CORS_ALLOWED_ORIGINS", "*"))

    # Matchmaking
    GLOBAL_GD_MODES = parse_modes(os.environ.get("GLOBAL_GD_MODES", "global:3"))
    DEFAULT_MODE = os.environ.get("GLOBAL_GD_DEFAULT_MODE", "global").lower()
    QUEUE_MAX_WAIT_SECONDS = int(os.environ.get("QUEUE_MAX_WAIT_SECONDS", "300"))
    MATCHMAKER_SWEEP_SECONDS = float(os.environ.get("MATCHMAKER_SWEEP_SECONDS", "5"))
    START_MATCHMAKER = _env_bool("START_MATCHMAKER", True)

    # Client timings (served to clients, also the SDK defaults)
    LOBBY_COUNTDOWN_SECONDS = int(os.environ.get("LOBBY_COUNTDOWN_SECONDS", "10"))
    STATUS_POLL_SECONDS = float(os.environ.get("STATUS_POLL_SECONDS", "3"))

    # Persistence: "memory" | "firestore"
    ROOM_STORE = os.environ.get("ROOM_STORE", "memory").lower()
    FIRESTORE_ROOMS_COLLECTION = os.environ.get("FIRESTORE_ROOMS_COLLECTION", "global_gd_rooms")
    FIREBASE_CREDENTIALS = os.environ.get("FIREBASE_CREDENTIALS")
    FIREBASE_ENABLED = _env_bool("FIREBASE_ENABLED", bool(os.environ.get("FIREBASE_CREDENTIALS")))
