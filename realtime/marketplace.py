"""Socket.IO handlers: marketplace buyer/seller messages.

Split from socket_handlers.py.

Each user listens on their own inbox room ("user_<id>"). Messages are relayed
to the recipient's inbox and acknowledged to the sender; storing them is the
REST API's job.
"""

import logging
import uuid

from flask import request
from flask_socketio import emit

from constants import USER_ROOM_PREFIX
from realtime.relay import utc_timestamp


def user_room(user_id) -> str:
    return f"{USER_ROOM_PREFIX}{user_id}"


def register(socketio, settings, ctx):
    """Register Socket.IO event handlers for this module."""
    rooms = ctx.rooms

    @socketio.on("join_user")
    def handle_join_user(data=None):
        user_id = ctx._payload_id(data, "userId")
        if not user_id:
            logging.warning("Dropping join_user without userId from %s: %r", request.sid, data)
            return {"success": False, "error": "missing_user_id"}

        if not rooms.join(request.sid, user_room(user_id)):
            return {"success": False, "error": "join_denied"}
        logging.info("User %s joined their room", user_id)
        return {"success": True}

    @socketio.on("send_message")
    def handle_send_message(data=None):
        sid = request.sid
        if not isinstance(data, dict):
            emit("message_error", {"error": "Invalid payload"}, to=sid)
            return {"success": False, "error": "invalid_payload"}

        sender_id = ctx._payload_id(data, "senderId")
        recipient_id = ctx._payload_id(data, "recipientId")
        content = data.get("content")
        if not sender_id or not recipient_id or not isinstance(content, str) or not content.strip():
            logging.warning("Dropping marketplace send_message with missing fields from %s: %r", sid, data)
            emit("message_error", {"error": "senderId, recipientId and content are required"}, to=sid)
            return {"success": False, "error": "missing_fields"}

        message_id = uuid.uuid4().hex
        emit(
            "new_message",
            {
                "_id": message_id,
                "sender": sender_id,
                "recipient": recipient_id,
                "content": content,
                "productId": data.get("productId") or None,
                "orderId": data.get("orderId") or None,
                "read": False,
                "createdAt": utc_timestamp(),
            },
            to=user_room(recipient_id),
        )
        emit("message_sent", {"_id": message_id, "success": True}, to=sid)
        return {"success": True, "_id": message_id}

    @socketio.on("user_typing")
    def handle_user_typing(data=None):
        sender_id = ctx._payload_id(data, "senderId")
        recipient_id = ctx._payload_id(data, "recipientId")
        if not sender_id or not recipient_id:
            logging.warning("Dropping user_typing with missing fields from %s: %r", request.sid, data)
            return {"success": False, "error": "missing_fields"}

        emit("user_typing", {"userId": sender_id}, to=user_room(recipient_id))
        return {"success": True}
