#!/usr/bin/env python3

from __future__ import annotations


# Application version (semantic-ish). Used for the index banner + packaging.
APP_VERSION = "0.3.1"

# Path to the plaintext JSON settings file
CONFIG_FILE = "relay_config.json"

# Socket.IO namespaces
DEFAULT_NAMESPACE = "/"
SUPPORT_NAMESPACE = "/support"

# Support chat auto-reply
SUPPORT_SENDER = "support"
SUPPORT_USER_SENDER = "user"
SUPPORT_AUTO_REPLY_TEXT = "Thanks for reaching out. A support agent will review your order shortly."
SUPPORT_REPLY_DELAY_SECONDS = 2.0

# Marketplace inbox rooms are "user_<id>"
USER_ROOM_PREFIX = "user_"

# ──────────────────────────────────────────────────────────────────────────────
# Exchange rates
# ──────────────────────────────────────────────────────────────────────────────
EXCHANGE_RATE_API_URL = "https://api.exchangerate.host/latest"
RATES_TTL_SECONDS = 60 * 60 * 12  # 12 hours
RATES_HTTP_TIMEOUT_SECONDS = 6.0
DEFAULT_BASE_CURRENCY = "NGN"
DEFAULT_SYMBOLS = ("USD", "EUR", "NGN")

# Used only when there is neither a fresh fetch nor any cached rates.
# (from, to) -> (operator, factor)
FALLBACK_CONVERSIONS: dict[tuple[str, str], tuple[str, float]] = {
    ("NGN", "USD"): ("div", 1200.0),
    ("NGN", "EUR"): ("div", 1300.0),
    ("USD", "NGN"): ("mul", 1200.0),
    ("EUR", "NGN"): ("mul", 1300.0),
}

# ──────────────────────────────────────────────────────────────────────────────
# Persisted client state keys (JSON-serialized values under fixed keys)
# ──────────────────────────────────────────────────────────────────────────────
RATES_KEY = "@currency_rates"
CART_KEY = "cartItems"
RECENTLY_VIEWED_KEY = "recently_viewed_products"
MAX_RECENTLY_VIEWED = 10
PREFS_CURRENCY_KEY = "@prefs_currency"
PREFS_LANGUAGE_KEY = "@prefs_language"
PREFS_DELIVERY_KEY = "@prefs_delivery"
PREFS_NOTIFICATIONS_KEY = "@prefs_notifications"
DELIVERY_OPTIONS = ("home", "station")
