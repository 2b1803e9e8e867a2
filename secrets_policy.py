"""secrets_policy.py

Environment parsing shared by the settings loader, plus the rules for which
settings are secrets.

Secrets (Flask secret_key, JWT secret, exchange-rate access key) are written
back into relay_config.json only while MARKETMATCH_PERSIST_SECRETS allows it,
and are masked whenever settings are logged.

Disable persistence:
  export MARKETMATCH_PERSIST_SECRETS=0
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}

# Top-level keys in relay_config.json that hold secrets.
SECRET_SETTING_KEYS = frozenset({"secret_key", "jwt_secret", "exchange_rate_access_key"})


def env_str(*names: str) -> Optional[str]:
    """First non-blank value among ``names``, stripped."""
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip():
            return v.strip()
    return None


def env_bool(*names: str) -> Optional[bool]:
    """First recognised yes/no value among ``names``; unrecognised values are skipped."""
    for n in names:
        v = (os.getenv(n) or "").strip().lower()
        if v in _TRUE:
            return True
        if v in _FALSE:
            return False
    return None


def env_number(*names: str, cast=int):
    v = env_str(*names)
    if v is None:
        return None
    try:
        return cast(v)
    except ValueError:
        return None


def persist_secrets_enabled() -> bool:
    flag = env_bool("MARKETMATCH_PERSIST_SECRETS")
    return True if flag is None else flag


def scrub_secrets_for_persist(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``settings`` safe to write to disk under the current policy."""
    if persist_secrets_enabled():
        return dict(settings)
    return {k: v for k, v in settings.items() if k not in SECRET_SETTING_KEYS}


def redact_secrets(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``settings`` for logging: secret values masked, empty ones left visible."""
    return {k: ("***" if k in SECRET_SETTING_KEYS and v else v) for k, v in settings.items()}
