"""Message stamping + room broadcast.

Delivery is best-effort: a message goes to whoever is in the room at emit
time, sender included so the sender's UI can confirm receipt. Nothing is
stored or replayed.
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from constants import SUPPORT_NAMESPACE


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_message_id() -> str:
    # <epoch millis>-<8 hex>; unique even within the same millisecond.
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class MessageRelay:
    def __init__(
        self,
        socketio,
        *,
        event: str = "receive_message",
        namespace: str = SUPPORT_NAMESPACE,
        id_factory: Callable[[], str] = generate_message_id,
        clock: Callable[[], str] = utc_timestamp,
    ):
        self.socketio = socketio
        self.event = event
        self.namespace = namespace
        self.id_factory = id_factory
        self.clock = clock

    def stamp(self, text: str, sender: str, message_id: Optional[str] = None) -> dict:
        """Build the wire message; a caller-supplied id always wins."""
        mid = str(message_id).strip() if message_id is not None else ""
        return {
            "id": mid or self.id_factory(),
            "text": text,
            "sender": sender,
            "timestamp": self.clock(),
        }

    def send(self, room: str, text: str, sender: str, message_id: Optional[str] = None) -> dict:
        message = self.stamp(text, sender, message_id)
        self.socketio.emit(self.event, message, to=room, namespace=self.namespace)
        return message
