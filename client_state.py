"""client_state.py

Cart, recently viewed products and user preferences, persisted the same way the
mobile client keeps them: one JSON value per fixed key.
"""

from __future__ import annotations

import logging

from constants import (
    CART_KEY,
    DEFAULT_BASE_CURRENCY,
    DELIVERY_OPTIONS,
    MAX_RECENTLY_VIEWED,
    PREFS_CURRENCY_KEY,
    PREFS_DELIVERY_KEY,
    PREFS_LANGUAGE_KEY,
    PREFS_NOTIFICATIONS_KEY,
    RECENTLY_VIEWED_KEY,
)
from storage import KeyValueStore


class RecentlyViewed:
    """Most-recent-first product ids, deduplicated and capped."""

    def __init__(self, store: KeyValueStore, limit: int = MAX_RECENTLY_VIEWED):
        self.store = store
        self.limit = limit

    def ids(self) -> list[str]:
        stored = self.store.get(RECENTLY_VIEWED_KEY) or []
        if not isinstance(stored, list):
            logging.warning("Discarding malformed recently viewed list: %r", stored)
            return []
        return [str(i) for i in stored]

    def add(self, product_id: str) -> list[str]:
        product_id = str(product_id)
        new_ids = [product_id] + [i for i in self.ids() if i != product_id]
        new_ids = new_ids[: self.limit]
        self.store.set(RECENTLY_VIEWED_KEY, new_ids)
        return new_ids

    def clear(self) -> None:
        self.store.remove(RECENTLY_VIEWED_KEY)


class Cart:
    """Cart line items: product dicts keyed by ``_id`` plus a ``quantity`` of at least 1."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def items(self) -> list[dict]:
        stored = self.store.get(CART_KEY) or []
        if not isinstance(stored, list):
            logging.warning("Discarding malformed cart: %r", stored)
            return []
        return [i for i in stored if isinstance(i, dict) and "_id" in i]

    def _save(self, items: list[dict]) -> list[dict]:
        self.store.set(CART_KEY, items)
        return items

    def add(self, product: dict) -> list[dict]:
        """Add one of ``product``; an existing line's quantity goes up by one."""
        if not isinstance(product, dict) or not product.get("_id"):
            raise ValueError("product must be a dict with an _id")
        items = self.items()
        for item in items:
            if item["_id"] == product["_id"]:
                item["quantity"] = int(item.get("quantity") or 0) + 1
                return self._save(items)
        return self._save(items + [{**product, "quantity": 1}])

    def update_quantity(self, product_id: str, amount: int) -> list[dict]:
        """Shift a line's quantity by ``amount``, never below 1."""
        items = self.items()
        for item in items:
            if item["_id"] == product_id:
                item["quantity"] = max(1, int(item.get("quantity") or 0) + int(amount))
        return self._save(items)

    def remove(self, product_id: str) -> list[dict]:
        return self._save([i for i in self.items() if i["_id"] != product_id])

    def clear(self) -> None:
        self._save([])

    @property
    def count(self) -> int:
        return sum(int(i.get("quantity") or 0) for i in self.items())


class Preferences:
    def __init__(self, store: KeyValueStore):
        self.store = store

    @property
    def currency(self) -> str:
        return self.store.get(PREFS_CURRENCY_KEY) or DEFAULT_BASE_CURRENCY

    @currency.setter
    def currency(self, value: str) -> None:
        self.store.set(PREFS_CURRENCY_KEY, str(value).strip().upper())

    @property
    def language(self) -> str:
        return self.store.get(PREFS_LANGUAGE_KEY) or "en"

    @language.setter
    def language(self, value: str) -> None:
        self.store.set(PREFS_LANGUAGE_KEY, str(value).strip())

    @property
    def delivery(self) -> str:
        d = self.store.get(PREFS_DELIVERY_KEY)
        return d if d in DELIVERY_OPTIONS else "home"

    @delivery.setter
    def delivery(self, value: str) -> None:
        if value not in DELIVERY_OPTIONS:
            raise ValueError(f"delivery must be one of {DELIVERY_OPTIONS}, got {value!r}")
        self.store.set(PREFS_DELIVERY_KEY, value)

    @property
    def notifications(self) -> bool:
        v = self.store.get(PREFS_NOTIFICATIONS_KEY)
        return True if v is None else bool(v)

    @notifications.setter
    def notifications(self, value: bool) -> None:
        self.store.set(PREFS_NOTIFICATIONS_KEY, bool(value))

    def as_dict(self) -> dict:
        return {
            "currency": self.currency,
            "language": self.language,
            "delivery": self.delivery,
            "notifications": self.notifications,
        }
