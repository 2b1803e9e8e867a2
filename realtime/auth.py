"""Handshake authentication for the /support namespace.

A connection attempt is Pending until ``authorize`` either returns the decoded
identity (Authorized) or raises ConnectionRefusedError (Rejected). Rejected
connections never get a session, so none of the namespace's events can run
for them.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from flask import current_app
from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from flask_socketio import ConnectionRefusedError
from jwt import ExpiredSignatureError, InvalidTokenError

logger = logging.getLogger(__name__)

AUTH_ERROR_MESSAGE = "Authentication error"


class AuthGate:
    def __init__(self):
        self._identities: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def authorize(self, sid: str, auth: Any) -> dict[str, Any]:
        token = auth.get("token") if isinstance(auth, dict) else None
        if not token or not isinstance(token, str):
            logger.warning("Support connection %s rejected: no token", sid)
            raise ConnectionRefusedError(AUTH_ERROR_MESSAGE)

        try:
            claims = decode_token(token)
        except ExpiredSignatureError:
            logger.warning("Support connection %s rejected: token expired", sid)
            raise ConnectionRefusedError(AUTH_ERROR_MESSAGE)
        except (InvalidTokenError, JWTExtendedException) as e:
            logger.warning("Support connection %s rejected: %s", sid, e)
            raise ConnectionRefusedError(AUTH_ERROR_MESSAGE)

        identity_claim = current_app.config.get("JWT_IDENTITY_CLAIM", "sub")
        identity = {"id": claims.get(identity_claim), "claims": claims}
        with self._lock:
            self._identities[sid] = identity
        return identity

    def identity(self, sid: str) -> Optional[dict[str, Any]]:
        with self._lock:
            return self._identities.get(sid)

    def is_authorized(self, sid: str) -> bool:
        return self.identity(sid) is not None

    def forget(self, sid: str) -> None:
        with self._lock:
            self._identities.pop(sid, None)
