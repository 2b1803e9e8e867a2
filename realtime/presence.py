"""Socket.IO handlers: presence.

Split from socket_handlers.py.
"""

import logging

from flask import request


def register(socketio, settings, ctx):
    """Register Socket.IO event handlers for this module."""
    presence = ctx.presence

    @socketio.on("connect")
    def handle_connect(auth=None):
        logging.debug("Client connected: %s", request.sid)

    @socketio.on("user:online")
    def handle_user_online(data=None):
        user_id = ctx._payload_id(data, "userId")
        if not user_id:
            logging.warning("Dropping user:online without userId from %s: %r", request.sid, data)
            return {"success": False, "error": "missing_user_id"}

        presence.set_online(user_id, request.sid)
        logging.info("User %s is online (sid=%s)", user_id, request.sid)
        return {"success": True}

    @socketio.on("disconnect")
    def handle_disconnect(*args, **kwargs):
        # Socket.IO may pass a reason or sid depending on version.
        reason = args[0] if args else kwargs.get("reason")
        sid = request.sid

        user = presence.set_offline(sid)
        if user:
            logging.info("User %s went offline (sid=%s, reason=%s)", user, sid, reason)
        else:
            logging.debug("Client disconnected: %s (reason=%s)", sid, reason)
