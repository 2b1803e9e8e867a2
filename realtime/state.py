"""Shared runtime state for the Socket.IO handlers.

Each object here is constructed once per relay (see
socket_handlers.register_socketio_handlers) and handed to the handler modules,
so nothing lives at module level. All of them may be touched from several
threads when Flask-SocketIO runs in threading mode, hence the locks.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Hashable, Optional

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, str], None]
JoinAuthorizer = Callable[[str, str, str], bool]


class PresenceRegistry:
    """userId -> live connection id, last write wins.

    ``on_change(user_id, status)`` is called outside the lock whenever a user
    goes "online" or "offline".
    """

    def __init__(self, on_change: Optional[StatusCallback] = None):
        self._by_user: dict[str, str] = {}
        self._by_sid: dict[str, str] = {}
        self._lock = threading.Lock()
        self.on_change = on_change

    def _notify(self, user_id: str, status: str) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(user_id, status)
        except Exception:
            logger.exception("Presence broadcast failed for %s (%s)", user_id, status)

    def set_online(self, user_id: str, connection_id: str) -> None:
        dropped = None
        with self._lock:
            previous = self._by_sid.get(connection_id)
            if previous is not None and previous != user_id and self._by_user.get(previous) == connection_id:
                # Same socket re-announced as someone else.
                del self._by_user[previous]
                dropped = previous
            self._by_user[user_id] = connection_id
            self._by_sid[connection_id] = user_id

        if dropped is not None:
            self._notify(dropped, "offline")
        self._notify(user_id, "online")

    def set_offline(self, connection_id: str) -> Optional[str]:
        """Forget whatever user this connection announced.

        Returns the user id that went offline, or None when the connection
        never announced presence or was superseded by a newer connection.
        """
        with self._lock:
            user_id = self._by_sid.pop(connection_id, None)
            if user_id is None or self._by_user.get(user_id) != connection_id:
                return None
            del self._by_user[user_id]

        self._notify(user_id, "offline")
        return user_id

    def lookup(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._by_user.get(user_id)

    def online_users(self) -> dict[str, str]:
        with self._lock:
            return dict(self._by_user)

    def clear(self) -> None:
        with self._lock:
            self._by_user.clear()
            self._by_sid.clear()


class RoomRouter:
    """Room membership on top of the Socket.IO server's own room manager.

    Rooms are created on first join and vanish when their last member leaves
    or disconnects; nothing else is stored about them.
    """

    def __init__(self, socketio, authorizer: Optional[JoinAuthorizer] = None):
        self.socketio = socketio
        self.authorizer = authorizer

    def join(self, connection_id: str, room: str, namespace: str = "/") -> bool:
        if self.authorizer is not None and not self.authorizer(connection_id, room, namespace):
            logger.info("Join denied: sid=%s room=%s ns=%s", connection_id, room, namespace)
            return False
        self.socketio.server.enter_room(connection_id, room, namespace=namespace)
        return True

    def leave(self, connection_id: str, room: str, namespace: str = "/") -> None:
        self.socketio.server.leave_room(connection_id, room, namespace=namespace)

    def members(self, room: str, namespace: str = "/") -> set[str]:
        out: set[str] = set()
        for participant in self.socketio.server.manager.get_participants(namespace, room):
            # python-socketio yields (sid, eio_sid) pairs
            out.add(participant[0] if isinstance(participant, tuple) else participant)
        return out


class ReplyScheduler:
    """Single-shot delayed tasks keyed by (room, message id).

    Tasks run via the Socket.IO background task machinery, so they are green
    threads under eventlet and plain threads otherwise. Scheduling a key that
    is already pending replaces the earlier task.
    """

    def __init__(self, socketio):
        self.socketio = socketio
        self._pending: dict[Hashable, threading.Event] = {}
        self._lock = threading.Lock()

    def schedule(self, key: Hashable, delay: float, fn: Callable[..., Any], *args, **kwargs) -> None:
        cancelled = threading.Event()
        with self._lock:
            earlier = self._pending.get(key)
            if earlier is not None:
                earlier.set()
            self._pending[key] = cancelled

        def _run():
            try:
                self.socketio.sleep(delay)
                if cancelled.is_set():
                    return
                fn(*args, **kwargs)
            except Exception:
                logger.exception("Scheduled task %r failed", key)
            finally:
                with self._lock:
                    if self._pending.get(key) is cancelled:
                        del self._pending[key]

        self.socketio.start_background_task(_run)

    def cancel(self, key: Hashable) -> bool:
        with self._lock:
            ev = self._pending.pop(key, None)
        if ev is None:
            return False
        ev.set()
        return True

    def cancel_all(self) -> int:
        with self._lock:
            events = list(self._pending.values())
            self._pending.clear()
        for ev in events:
            ev.set()
        return len(events)

    def pending(self) -> list[Hashable]:
        with self._lock:
            return list(self._pending)
