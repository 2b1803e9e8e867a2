#!/usr/bin/env python3
"""main.py

MarketMatch relay entrypoint.

``relay_config.json`` is a *plaintext* JSON settings file. If you want to keep
secrets out of the file, prefer environment variables (``JWT_SECRET_KEY``,
``SECRET_KEY``, ``EXCHANGE_RATE_ACCESS_KEY``) and set
``MARKETMATCH_PERSIST_SECRETS=0``.
"""

from __future__ import annotations

import argparse
from functools import partial
import logging
import os
import sys
from pathlib import Path

from constants import CONFIG_FILE
from defaults import get_default_settings
from secrets_policy import env_bool, env_number, env_str, scrub_secrets_for_persist
from storage import backup_unreadable, read_json_object, write_json_atomic


def configure_logging(settings: dict) -> None:
    """Configure file logging."""
    log_level_str = str(settings.get("log_level", "INFO")).upper()
    log_format = settings.get(
        "log_format",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    log_file_path = settings.get("log_file_path", "logs/server.log")

    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    log_level = getattr(logging, log_level_str, logging.INFO)
    logging.basicConfig(level=log_level, format=log_format, filename=log_file_path, filemode="a")
    logging.getLogger().addHandler(logging.StreamHandler(sys.stdout))
    logging.info("Logging configured (level=%s)", log_level_str)


def load_settings(path: Path) -> dict:
    """Defaults layered with ``path``. Missing file -> defaults; unreadable file is set aside."""
    settings = get_default_settings()
    if not path.exists():
        return settings

    try:
        settings.update(read_json_object(path))
    except (OSError, ValueError) as exc:
        print(f"⚠️  Could not parse {path} as JSON: {exc}")
        # Moved aside so generated secrets can be persisted into a fresh file.
        bad_path = backup_unreadable(path)
        if bad_path:
            print(f"⚠️  Backed up invalid settings file to: {bad_path}")
        print("⚠️  Falling back to defaults.")
    return settings


def save_settings(path: Path, settings: dict) -> None:
    # Secrets are dropped here when MARKETMATCH_PERSIST_SECRETS=0.
    write_json_atomic(path, scrub_secrets_for_persist(settings))


# (setting, parser, env names). First env var that parses wins.
_ENV_OVERRIDES = (
    ("secret_key", env_str, ("SECRET_KEY",)),
    # JWT_SECRET matches the mobile backend's variable name.
    ("jwt_secret", env_str, ("JWT_SECRET_KEY", "JWT_SECRET", "MARKETMATCH_JWT_SECRET")),
    ("host", env_str, ("MARKETMATCH_HOST", "HOST")),
    ("port", env_number, ("MARKETMATCH_PORT", "PORT")),
    ("debug", env_bool, ("MARKETMATCH_DEBUG",)),
    ("support_reply_delay_seconds", partial(env_number, cast=float), ("MARKETMATCH_SUPPORT_REPLY_DELAY",)),
    ("support_auto_reply_enabled", env_bool, ("MARKETMATCH_SUPPORT_AUTO_REPLY",)),
    ("exchange_rate_api_url", env_str, ("MARKETMATCH_EXCHANGE_RATE_URL",)),
    ("exchange_rate_access_key", env_str, ("MARKETMATCH_EXCHANGE_RATE_ACCESS_KEY", "EXCHANGE_RATE_ACCESS_KEY")),
    ("exchange_rate_ttl_seconds", env_number, ("MARKETMATCH_EXCHANGE_RATE_TTL",)),
    ("client_state_path", env_str, ("MARKETMATCH_CLIENT_STATE_PATH",)),
    ("log_level", env_str, ("MARKETMATCH_LOG_LEVEL", "LOG_LEVEL")),
)


def apply_env_overrides(settings: dict) -> None:
    """Apply env overrides for secrets and runtime deployment."""
    for key, parse, names in _ENV_OVERRIDES:
        value = parse(*names)
        if value is not None:
            settings[key] = value

    origins = env_str("MARKETMATCH_CORS_ORIGINS")
    if origins:
        settings["cors_allowed_origins"] = origins if origins == "*" else [o.strip() for o in origins.split(",") if o.strip()]


def resolve_config_path(explicit: str | None = None) -> Path:
    return Path(
        explicit
        or os.environ.get("MARKETMATCH_CONFIG")
        or os.environ.get("MARKETMATCH_CONFIG_FILE")
        or CONFIG_FILE
    )


def bootstrap_settings(path: Path, *, write_config: bool = False) -> dict:
    """Settings file + env overrides, optionally written back, then logging."""
    settings = load_settings(path)
    apply_env_overrides(settings)

    if write_config:
        save_settings(path, settings)
        print(f"✅ Saved settings to {path}\n")

    configure_logging(settings)
    return settings


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="MarketMatch real-time relay")
    p.add_argument("--config", default=None, help=f"path to relay config JSON (default: {CONFIG_FILE})")
    p.add_argument("--write-config", action="store_true", help="write the effective settings back to --config")
    return p.parse_args()


def main() -> None:
    args = parse_args()
    settings_path = resolve_config_path(args.config)
    settings = bootstrap_settings(settings_path, write_config=args.write_config)

    # server_init monkey-patches eventlet on import.
    from server_init import run_web_server

    run_web_server(settings, settings_file=settings_path)


if __name__ == "__main__":
    main()
