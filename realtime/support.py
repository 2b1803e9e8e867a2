"""Socket.IO handlers: order support chat (/support namespace).

Every connection must present a valid access token in ``auth.token``. A user
message is echoed to the whole order room, then a canned support reply
follows after ``support_reply_delay_seconds``.
"""

import logging
import uuid

from flask import request

from constants import (
    SUPPORT_AUTO_REPLY_TEXT,
    SUPPORT_NAMESPACE,
    SUPPORT_REPLY_DELAY_SECONDS,
    SUPPORT_SENDER,
    SUPPORT_USER_SENDER,
)


def register(socketio, settings, ctx):
    """Register Socket.IO event handlers for this module."""
    gate = ctx.auth_gate
    rooms = ctx.rooms
    relay = ctx.support_relay
    scheduler = ctx.scheduler

    def _reply_delay() -> float:
        try:
            return max(0.0, float(settings.get("support_reply_delay_seconds", SUPPORT_REPLY_DELAY_SECONDS)))
        except (TypeError, ValueError):
            return SUPPORT_REPLY_DELAY_SECONDS

    def _require_identity():
        identity = gate.identity(request.sid)
        if identity is None:
            logging.warning("Dropping support event from unauthorized sid %s", request.sid)
        return identity

    @socketio.on("connect", namespace=SUPPORT_NAMESPACE)
    def handle_support_connect(auth=None):
        identity = gate.authorize(request.sid, auth)
        logging.info("User connected to support chat: %s", identity.get("id"))

    @socketio.on("disconnect", namespace=SUPPORT_NAMESPACE)
    def handle_support_disconnect(*args, **kwargs):
        gate.forget(request.sid)

    @socketio.on("join_room", namespace=SUPPORT_NAMESPACE)
    def handle_join_room(data=None):
        identity = _require_identity()
        if identity is None:
            return {"success": False, "error": "unauthorized"}

        order_id = ctx._payload_id(data, "orderId")
        if not order_id:
            logging.warning("Dropping join_room without orderId from %s: %r", request.sid, data)
            return {"success": False, "error": "missing_order_id"}

        if not rooms.join(request.sid, order_id, namespace=SUPPORT_NAMESPACE):
            return {"success": False, "error": "join_denied"}
        logging.info("User %s joined support room: %s", identity.get("id"), order_id)
        return {"success": True}

    @socketio.on("send_message", namespace=SUPPORT_NAMESPACE)
    def handle_send_message(data=None):
        identity = _require_identity()
        if identity is None:
            return {"success": False, "error": "unauthorized"}

        if not isinstance(data, dict):
            logging.warning("Dropping send_message with non-object payload from %s: %r", request.sid, data)
            return {"success": False, "error": "invalid_payload"}

        order_id = ctx._payload_id(data, "orderId")
        text = data.get("text")
        if not order_id or not isinstance(text, str) or not text.strip():
            logging.warning("Dropping send_message with missing fields from %s: %r", request.sid, data)
            return {"success": False, "error": "missing_fields"}

        message = relay.send(order_id, text, SUPPORT_USER_SENDER, message_id=data.get("id"))

        if settings.get("support_auto_reply_enabled", True):
            scheduler.schedule(
                # One reply per send, even when a client reuses a message id.
                (order_id, message["id"], uuid.uuid4().hex),
                _reply_delay(),
                relay.send,
                order_id,
                SUPPORT_AUTO_REPLY_TEXT,
                SUPPORT_SENDER,
            )
        return {"success": True, "id": message["id"]}
