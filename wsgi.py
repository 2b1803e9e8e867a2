"""wsgi.py

Gunicorn entrypoint for the MarketMatch relay.

Run (example):
  MARKETMATCH_SOCKETIO_ASYNC=eventlet \
  gunicorn -c gunicorn_conf.py wsgi:app

Run a single worker: presence and rooms live in this process's memory and
there is no cross-worker message queue.
"""

from __future__ import annotations

import os

# eventlet must patch before anything imports socket/threading.
if (os.environ.get("MARKETMATCH_SOCKETIO_ASYNC", "auto") or "auto").strip().lower() in {"auto", "eventlet"}:
    try:
        import eventlet  # type: ignore

        eventlet.monkey_patch()
    except ImportError:
        # server_init falls back to threading mode.
        pass

from main import bootstrap_settings, resolve_config_path
from server_init import create_app

_settings_path = resolve_config_path()
_settings = bootstrap_settings(_settings_path)

app, socketio = create_app(_settings, settings_file=_settings_path)
app.config["MARKETMATCH_GUNICORN"] = True
