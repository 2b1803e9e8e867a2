#!/usr/bin/env python3
"""
server_init.py
Initialises and runs the MarketMatch relay (Flask + Flask-SocketIO).
"""

from __future__ import annotations

import os
import logging

# Optional WebSocket support
# - Default: auto (use eventlet if available, otherwise fall back to threading/polling)
# - Override with: MARKETMATCH_SOCKETIO_ASYNC=threading|eventlet
MARKETMATCH_SOCKETIO_ASYNC = os.environ.get("MARKETMATCH_SOCKETIO_ASYNC", "auto").strip().lower()
_EVENTLET_AVAILABLE = False
if MARKETMATCH_SOCKETIO_ASYNC in {"auto", "eventlet"}:
    try:
        import eventlet  # type: ignore

        eventlet.monkey_patch()
        _EVENTLET_AVAILABLE = True
    except Exception:
        _EVENTLET_AVAILABLE = False
import secrets
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_socketio import SocketIO, emit, disconnect

# Socket.IO auth errors
from jwt import ExpiredSignatureError
from flask_jwt_extended.exceptions import JWTExtendedException

from client_state import Cart, Preferences, RecentlyViewed
from constants import APP_VERSION
from currency import CurrencyRateCache
from routes_main import register_main_routes
from secrets_policy import env_str, persist_secrets_enabled, redact_secrets
from socket_handlers import register_socketio_handlers, shutdown_relay
from storage import KeyValueStore, backup_unreadable, read_json_object, write_json_atomic


def _log_boot_banner(settings: Dict[str, Any], settings_file: Optional[Path], async_mode: str) -> None:
    try:
        cfg_path = Path(settings_file) if settings_file else None
        cfg_exists = bool(cfg_path and cfg_path.exists())
        logging.info("==================== MarketMatch Relay Boot ====================")
        logging.info("Version: %s", APP_VERSION)
        logging.info("Settings file: %s (exists=%s)", str(cfg_path) if cfg_path else "<none>", cfg_exists)
        logging.info("Socket.IO async mode: %s", async_mode)
        logging.info("Support reply delay: %ss", settings.get("support_reply_delay_seconds"))
        logging.info("Client state: %s", settings.get("client_state_path") or "<memory>")
        logging.debug("Effective settings: %s", redact_secrets(settings))
        logging.info("================================================================")
    except Exception as exc:
        logging.warning("Could not emit boot banner: %s", exc)


def _event_name() -> Optional[str]:
    # Flask-SocketIO records the dispatched event on the request.
    event = getattr(request, "event", None)
    return event.get("message") if isinstance(event, dict) else None


def _cors_origins(settings: Dict[str, Any]):
    origins = settings.get("cors_allowed_origins") or "*"
    if isinstance(origins, str) and origins != "*":
        origins = [o.strip() for o in origins.split(",") if o.strip()]
    return origins


def create_app(
    settings: Dict[str, Any],
    settings_file: Optional[Path] | None = None,
    *,
    store: Optional[KeyValueStore] = None,
    rates: Optional[CurrencyRateCache] = None,
    join_authorizer=None,
) -> tuple[Flask, SocketIO]:
    """Create and configure the Flask + Socket.IO application.

    This function does **not** start a server. It is safe to import from a
    Gunicorn `wsgi.py` module.
    """

    settings_file = Path(settings_file) if isinstance(settings_file, str) else settings_file

    # ───── Flask App Core ─────
    app = Flask(__name__)
    app.config["MARKETMATCH_SETTINGS_FILE"] = str(settings_file) if settings_file else None
    app.config["MARKETMATCH_SETTINGS"] = settings

    app.secret_key = _ensure_secret_key(settings, settings_file)

    app.config.update(
        SECRET_KEY=app.secret_key,
        JWT_SECRET_KEY=_ensure_jwt_secret(settings, settings_file),
        JWT_TOKEN_LOCATION=["headers"],
        JWT_IDENTITY_CLAIM=settings.get("jwt_identity_claim") or "sub",
        JWT_ACCESS_TOKEN_EXPIRES=timedelta(minutes=int(settings.get("access_token_minutes", 60 * 24 * 7))),
    )

    JWTManager(app)

    cors_origins = _cors_origins(settings)
    CORS(app, origins=cors_origins)

    # ───── SocketIO Setup ─────
    async_mode = "threading"
    if MARKETMATCH_SOCKETIO_ASYNC == "eventlet" and not _EVENTLET_AVAILABLE:
        print("[socketio] MARKETMATCH_SOCKETIO_ASYNC=eventlet but eventlet is not installed; falling back to threading")
    if (MARKETMATCH_SOCKETIO_ASYNC in {"auto", "eventlet"}) and _EVENTLET_AVAILABLE:
        async_mode = "eventlet"

    app.config["MARKETMATCH_SOCKETIO_ASYNC_MODE"] = async_mode

    socketio = SocketIO(
        app,
        async_mode=async_mode,
        cors_allowed_origins=cors_origins,
        logger=False,
        engineio_logger=False,
        ping_interval=int(settings.get("socketio_ping_interval", 20)),
        ping_timeout=int(settings.get("socketio_ping_timeout", 15)),
    )
    app.config["MARKETMATCH_SOCKETIO"] = socketio

    # ───── Global Socket.IO Error Handler ─────
    # A failing handler never stops the connection's later events. JWT errors
    # tell the client why and drop the connection; anything else is logged and
    # acked as an internal error.
    @socketio.on_error_default  # applies to all namespaces
    def _socketio_default_error_handler(e):
        sid = getattr(request, "sid", None)

        if isinstance(e, (ExpiredSignatureError, JWTExtendedException)):
            reason = "access_token_expired" if isinstance(e, ExpiredSignatureError) else "auth_failed"
            logging.warning("Socket.IO auth error for sid=%s: %s", sid, e)
            if sid:
                emit("auth_error", {"reason": reason}, to=sid)
                disconnect(sid=sid)
            return None

        app.logger.exception("Socket.IO handler error (event=%s): %s", _event_name(), e)
        return {"success": False, "error": "internal_error"}

    # ───── Relay state + client-side caches ─────
    ctx = register_socketio_handlers(socketio, settings, join_authorizer=join_authorizer)
    ctx.store = store if store is not None else KeyValueStore(settings.get("client_state_path") or None)
    ctx.rates = rates if rates is not None else CurrencyRateCache.from_settings(settings, ctx.store)
    ctx.preferences = Preferences(ctx.store)
    ctx.recently_viewed = RecentlyViewed(ctx.store)
    ctx.cart = Cart(ctx.store)
    app.extensions["marketmatch"] = ctx

    # ───── Routes ─────
    register_main_routes(app, settings, socketio, ctx)

    _log_boot_banner(settings, settings_file, async_mode)
    return app, socketio


def run_web_server(
    settings: Dict[str, Any],
    settings_file: Optional[Path] | None = None,
) -> None:
    """Bootstrap the Flask-SocketIO app, attach handlers, then run it."""

    app, socketio = create_app(settings, settings_file=settings_file)

    host = settings.get("host") or "0.0.0.0"
    port = int(settings.get("port") or 8082)
    debug = bool(settings.get("debug") or False)

    print(f"🚀  MarketMatch relay running on http://{host}:{port} (debug={debug})")
    print("🔌  Socket.IO namespaces: / and /support")

    # Filter Werkzeug access logs for /socket.io long-polling.
    try:

        class _SocketIOAccessFilter(logging.Filter):
            def filter(self, record: logging.LogRecord) -> bool:  # type: ignore
                try:
                    msg = record.getMessage()
                except Exception:
                    return True
                return "/socket.io/" not in msg

        logging.getLogger("werkzeug").addFilter(_SocketIOAccessFilter())
    except Exception:
        pass

    threading_mode = app.config.get("MARKETMATCH_SOCKETIO_ASYNC_MODE") == "threading"
    run_kwargs: Dict[str, Any] = {}
    if threading_mode:
        # Werkzeug dev server; only eventlet is meant for production.
        run_kwargs["allow_unsafe_werkzeug"] = True
    try:
        socketio.run(
            app,
            host=host,
            port=port,
            debug=debug,
            use_reloader=bool(debug and threading_mode),
            log_output=False,
            **run_kwargs,
        )
    finally:
        shutdown_relay(app.extensions["marketmatch"])
        logging.info("Relay stopped")


# ───── Helpers ─────
def _ensure_secret(
    settings: Dict[str, Any],
    settings_file: Optional[Path],
    key: str,
    env_names: tuple[str, ...],
    generate,
    consequence: str,
) -> str:
    """Settings value, else env value, else a generated one (persisted when policy allows)."""
    value = settings.get(key) or env_str(*env_names)
    if value:
        return str(value)

    value = generate()
    settings[key] = value
    if _persist_generated_key(settings, settings_file):
        print(f"✅ {key} generated and saved to settings.")
    else:
        print(f"⚠️  Generated a one-off {key} (NOT saved). {consequence}")
    return value


def _ensure_secret_key(settings: Dict[str, Any], settings_file: Optional[Path]) -> str:
    return _ensure_secret(
        settings, settings_file, "secret_key", ("SECRET_KEY",),
        lambda: secrets.token_urlsafe(64), "Sessions may break on restart.",
    )


def _ensure_jwt_secret(settings: Dict[str, Any], settings_file: Optional[Path]) -> str:
    return _ensure_secret(
        settings, settings_file, "jwt_secret", ("JWT_SECRET_KEY", "JWT_SECRET"),
        lambda: secrets.token_hex(32), "Support tokens will break on restart.",
    )


def _persist_generated_key(settings: Dict[str, Any], settings_file: Optional[Path]) -> bool:
    """Merge ``settings`` into the JSON settings file. Never writes when secret persistence is off."""
    if not persist_secrets_enabled() or not settings_file:
        return False
    if settings_file.suffix.lower() != ".json":
        print(f"⚠️  Unsupported settings file format: {settings_file}")
        return False

    existing: Dict[str, Any] = {}
    if settings_file.exists():
        try:
            existing = read_json_object(settings_file)
        except (OSError, ValueError):
            if backup_unreadable(settings_file) is None:
                return False

    try:
        write_json_atomic(settings_file, {**existing, **settings})
    except (OSError, TypeError) as exc:
        print(f"⚠️  Could not persist generated secret to {settings_file}: {exc}", file=sys.stderr)
        return False
    return True
