# api_client.py
"""Client-side transports for Global GD: REST calls and the push channel."""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Set

import requests
import socketio

from errors import ERRORS_BY_STATUS, GlobalGDError, Unavailable

logger = logging.getLogger(__name__)

_TIMEOUT = 10.0


class GlobalGDClient:
    """Thin wrapper over /api/global-gd. Every failure surfaces as a GlobalGDError."""

    def __init__(self, base_url: str, token: str = None, session: requests.Session = None,
                 timeout: float = _TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/api/global-gd{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise Unavailable(f"{method} {path} failed: {e}") from e

        if resp.status_code >= 400:
            try:
                error = resp.json().get("error", {})
            except ValueError:
                error = {}
            message = error.get("message") or f"{method} {path} returned {resp.status_code}"
            error_cls = ERRORS_BY_STATUS.get(resp.status_code)
            if error_cls is None:
                error_cls = Unavailable if resp.status_code >= 500 else GlobalGDError
            raise error_cls(message, error.get("details"))
        return resp.json()

    def join(self, user_id: str, name: str = None, mode: str = None) -> Dict[str, Any]:
        body = {"userId": user_id, "name": name}
        if mode:
            body["mode"] = mode
        return self._request("POST", "/join", json=body)

    def leave(self, user_id: str) -> Dict[str, Any]:
        return self._request("POST", "/leave", json={"userId": user_id})

    def status(self, user_id: str) -> Dict[str, Any]:
        return self._request("GET", "/status", params={"userId": user_id})

    def leave_room(self, user_id: str, room_id: str) -> Dict[str, Any]:
        return self._request("POST", "/leave-room", json={"userId": user_id, "roomId": room_id})

    def get_room(self, room_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/rooms/{room_id}")

    def mark_joined(self, room_id: str, user_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/rooms/{room_id}/joined", json={"userId": user_id})

    def start_call(self, room_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/rooms/{room_id}/start")


class PushChannel:
    """Socket.IO subscription scoped to one user. Optional: if it never
    connects, the sync layer simply relies on polling."""

    EVENTS = ("global_gd_room_created", "global_gd_room_state", "global_gd:queue_status")

    def __init__(self, url: str, user_id: str, sio: socketio.Client = None):
        self.url = url
        self.user_id = user_id
        self.sio = sio or socketio.Client(reconnection=True)
        self._listeners: Dict[str, List[Callable]] = {event: [] for event in self.EVENTS}
        self._watched: Set[str] = set()
        self._lock = threading.Lock()

        self.sio.on("connect", self._on_connect)
        for event in self.EVENTS:
            self.sio.on(event, self._dispatcher(event))

    def _on_connect(self):
        # re-subscribe on every (re)connect: server-side channels do not survive it
        self.sio.emit("register_user", self.user_id)
        with self._lock:
            watched = list(self._watched)
        for room_id in watched:
            self._emit_watch(room_id)

    def _emit_watch(self, room_id: str) -> None:
        self.sio.emit("global_gd:watch_room", {"roomId": room_id, "userId": self.user_id})

    def _dispatcher(self, event: str):
        def dispatch(payload=None):
            with self._lock:
                listeners = list(self._listeners[event])
            for listener in listeners:
                try:
                    listener(payload or {})
                except Exception as e:
                    logger.warning(f"⚠️ {event} listener failed: {e}")
        return dispatch

    def connect(self) -> bool:
        try:
            self.sio.connect(self.url, transports=["websocket", "polling"])
        except socketio.exceptions.ConnectionError as e:
            logger.warning(f"⚠️ Push channel unavailable, polling only: {e}")
            return False
        return True

    def disconnect(self) -> None:
        self.sio.disconnect()

    def watch_room(self, room_id: str) -> None:
        """Receive global_gd_room_state pushes for a room this user belongs to."""
        with self._lock:
            self._watched.add(room_id)
        if self.sio.connected:
            self._emit_watch(room_id)

    def unwatch_room(self, room_id: str) -> None:
        with self._lock:
            self._watched.discard(room_id)
        if self.sio.connected:
            self.sio.emit("global_gd:unwatch_room", {"roomId": room_id})

    def subscribe(self, event: str, listener: Callable[[dict], None]) -> None:
        with self._lock:
            self._listeners[event].append(listener)

    def unsubscribe(self, event: str, listener: Callable[[dict], None]) -> None:
        with self._lock:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)
