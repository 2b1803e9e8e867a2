"""Socket.IO handlers: dating conversation rooms + typing indicators.

Split from socket_handlers.py.
"""

import logging

from flask import request
from flask_socketio import emit


def register(socketio, settings, ctx):
    """Register Socket.IO event handlers for this module."""
    rooms = ctx.rooms

    @socketio.on("conversation:join")
    def handle_conversation_join(data=None):
        conversation_id = ctx._payload_id(data, "conversationId")
        if not conversation_id:
            logging.warning("Dropping conversation:join without conversationId from %s: %r", request.sid, data)
            return {"success": False, "error": "missing_conversation_id"}

        if not rooms.join(request.sid, conversation_id):
            return {"success": False, "error": "join_denied"}
        logging.info("Socket %s joined room %s", request.sid, conversation_id)
        return {"success": True}

    @socketio.on("conversation:leave")
    def handle_conversation_leave(data=None):
        conversation_id = ctx._payload_id(data, "conversationId")
        if not conversation_id:
            return {"success": False, "error": "missing_conversation_id"}
        rooms.leave(request.sid, conversation_id)
        return {"success": True}

    def _relay_typing(event, data):
        """Forward a typing signal to everyone else in the conversation."""
        if not isinstance(data, dict):
            logging.warning("Dropping %s with non-object payload from %s: %r", event, request.sid, data)
            return {"success": False, "error": "invalid_payload"}

        conversation_id = ctx._payload_id(data, "conversationId")
        user_id = data.get("userId")
        if not conversation_id or user_id is None:
            logging.warning("Dropping %s with missing fields from %s: %r", event, request.sid, data)
            return {"success": False, "error": "missing_fields"}

        emit(event, {"conversationId": conversation_id, "userId": user_id}, to=conversation_id, include_self=False)
        return {"success": True}

    @socketio.on("user:typing")
    def handle_typing(data=None):
        return _relay_typing("user:typing", data)

    @socketio.on("user:stop-typing")
    def handle_stop_typing(data=None):
        return _relay_typing("user:stop-typing", data)
