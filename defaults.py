#!/usr/bin/env python3
"""defaults.py

Default settings for the MarketMatch relay.

The relay only needs a handful of settings at runtime (bind host/port, JWT
secret, support reply delay, exchange-rate cache). Anything missing from
relay_config.json falls back to the values below.
"""

from __future__ import annotations

import os
from typing import Any, Dict

from constants import (
    EXCHANGE_RATE_API_URL,
    RATES_HTTP_TIMEOUT_SECONDS,
    RATES_TTL_SECONDS,
    SUPPORT_REPLY_DELAY_SECONDS,
)


def get_default_settings() -> Dict[str, Any]:
    """Return a compact set of defaults.

    Notes:
      - Keep secrets out of JSON when possible; prefer env vars.
      - server_init.py will generate/persist secret_key + jwt_secret if missing.
    """
    return {
        # ── Core server ──────────────────────────────────────────────────
        "server_name": "MarketMatch Relay",
        "host": "0.0.0.0",
        "port": 8082,
        "debug": False,

        # Secrets (server_init.py will generate/persist if missing)
        "secret_key": "",
        "jwt_secret": "",
        "access_token_minutes": 60 * 24 * 7,

        # ── Socket.IO ────────────────────────────────────────────────────
        "cors_allowed_origins": "*",  # can also be a list
        "socketio_ping_interval": 20,
        "socketio_ping_timeout": 15,

        # ── Support chat ─────────────────────────────────────────────────
        "support_reply_delay_seconds": SUPPORT_REPLY_DELAY_SECONDS,
        "support_auto_reply_enabled": True,

        # Room joins are unrestricted unless a join authorizer is installed.
        "restrict_room_joins": False,

        # ── Exchange rates ───────────────────────────────────────────────
        "exchange_rate_api_url": EXCHANGE_RATE_API_URL,
        "exchange_rate_access_key": os.getenv("EXCHANGE_RATE_ACCESS_KEY") or "",
        "exchange_rate_ttl_seconds": RATES_TTL_SECONDS,
        "exchange_rate_timeout_seconds": RATES_HTTP_TIMEOUT_SECONDS,
        # Empty -> in-memory store only.
        "client_state_path": "",

        # ── Logging ──────────────────────────────────────────────────────
        "log_level": "INFO",
        "log_format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "log_file_path": "logs/server.log",

        # ── Health / dev ─────────────────────────────────────────────────
        "enable_health_check_endpoint": False,
        "health_check_endpoint": "/health",
        # Issues access tokens without a password. Local development only.
        "enable_dev_token_endpoint": False,
    }
