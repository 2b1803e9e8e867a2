"""gunicorn_conf.py

Gunicorn config for the MarketMatch relay (Flask-SocketIO on Eventlet).

Bind address and timeout come from the relay's own settings (relay_config.json
plus MARKETMATCH_* env overrides), so the relay and Gunicorn agree on
host/port without a second copy. Only MARKETMATCH_BIND overrides the bind.

  MARKETMATCH_SOCKETIO_ASYNC=eventlet gunicorn -c gunicorn_conf.py wsgi:app
"""

from __future__ import annotations

import os

from main import apply_env_overrides, load_settings, resolve_config_path

_settings = load_settings(resolve_config_path())
apply_env_overrides(_settings)

bind = os.environ.get("MARKETMATCH_BIND") or f"{_settings.get('host') or '0.0.0.0'}:{_settings.get('port') or 8082}"
# Presence, rooms and pending support replies live in one process.
workers = 1
worker_class = "eventlet"

# A worker is only recycled after several missed Socket.IO pings.
timeout = 3 * (int(_settings.get("socketio_ping_interval", 20)) + int(_settings.get("socketio_ping_timeout", 15)))

# Relay logging is configured by wsgi.py; Gunicorn keeps its own on stderr.
errorlog = "-"
