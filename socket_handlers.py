#!/usr/bin/env python3
"""
socket_handlers.py

Socket.IO wiring for the MarketMatch relay.

Builds the per-relay state (presence registry, room router, support auth gate,
message relay, reply scheduler) and registers the handler modules under
realtime/. Nothing is persisted; all state lives for the life of the relay.
"""

from types import SimpleNamespace

from constants import DEFAULT_NAMESPACE, SUPPORT_NAMESPACE
from realtime.auth import AuthGate
from realtime.relay import MessageRelay
from realtime.state import PresenceRegistry, ReplyScheduler, RoomRouter


def _payload_id(data, key: str) -> str | None:
    """Pull an id out of a payload sent either bare ("abc") or as {key: "abc"}.

    Returns a non-empty string or None.
    """
    if isinstance(data, dict):
        data = data.get(key)
    if isinstance(data, bool) or data is None:
        return None
    if isinstance(data, (int, str)):
        s = str(data).strip()
        return s or None
    return None


def register_socketio_handlers(socketio, settings, *, join_authorizer=None):
    """
    Registers all Socket.IO event handlers and returns the relay context.
    """

    def _broadcast_status(user_id: str, status: str) -> None:
        socketio.emit("user:status", {"userId": user_id, "status": status}, namespace=DEFAULT_NAMESPACE)

    if join_authorizer is None and settings.get("restrict_room_joins", False):
        # Hardened mode with no policy supplied: deny everything but the
        # connection's own private room.
        join_authorizer = lambda sid, room, namespace: room == sid  # noqa: E731

    ctx = SimpleNamespace(
        presence=PresenceRegistry(on_change=_broadcast_status),
        rooms=RoomRouter(socketio, authorizer=join_authorizer),
        auth_gate=AuthGate(),
        support_relay=MessageRelay(socketio, namespace=SUPPORT_NAMESPACE),
        scheduler=ReplyScheduler(socketio),
        _payload_id=_payload_id,
    )

    # ───────────────────────────────────────────────────────────────────
    # Register split handler modules (see realtime/*.py)
    # ───────────────────────────────────────────────────────────────────
    from realtime import presence, conversations, marketplace, support
    presence.register(socketio, settings, ctx)
    conversations.register(socketio, settings, ctx)
    marketplace.register(socketio, settings, ctx)
    support.register(socketio, settings, ctx)

    return ctx


def shutdown_relay(ctx) -> None:
    """Cancel pending support replies and drop presence state."""
    ctx.scheduler.cancel_all()
    ctx.presence.clear()
