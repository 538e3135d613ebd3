from __future__ import annotations

from typing import Any, Optional

from flask import current_app

from .pricing import to_number
from .storage import (BRAND_KEY, CATALOG_KEY, CUSTOMERS_KEY, DEFAULT_TAX_KEY, DRAFTS_KEY,
                      SELECTED_CUSTOMER_KEY, LocalStore, get_store)
from .sync.reconciler import SyncManager
from .workspace import default_meta

SYNC_EXTENSION = "invoicedesk.sync"
BRANDS_EXTENSION = "invoicedesk.brands"

SYNCED_KEYS = {
    "books": CATALOG_KEY,
    "customers": CUSTOMERS_KEY,
    "drafts": DRAFTS_KEY,
}


def sync_manager() -> SyncManager:
    return current_app.extensions[SYNC_EXTENSION]


def brand_registry():
    return current_app.extensions[BRANDS_EXTENSION]


def load_collection(name: str, store: Optional[LocalStore] = None) -> list[dict[str, Any]]:
    """Read a synced collection, pulling the remote copy on first access."""
    store = store or get_store()
    sync_manager().ensure_loaded(name, lambda rows: save_collection(name, rows, store))
    value = store.get(SYNCED_KEYS[name])
    return value if isinstance(value, list) else []


def save_collection(name: str, items: list[dict[str, Any]], store: Optional[LocalStore] = None) -> list[dict[str, Any]]:
    """Persist locally, then let the reconciler push the change."""
    store = store or get_store()
    manager = sync_manager()
    # a write before the first load would otherwise be replaced by it
    manager.ensure_loaded(name, lambda rows: save_collection(name, rows, store))
    store.set(SYNCED_KEYS[name], items)
    manager.observe(name, items)
    return items


def load_list(key: str, store: Optional[LocalStore] = None) -> list[Any]:
    value = (store or get_store()).get(key)
    return value if isinstance(value, list) else []


def load_dict(key: str, store: Optional[LocalStore] = None) -> dict[str, Any]:
    value = (store or get_store()).get(key)
    return value if isinstance(value, dict) else {}


def default_tax_pct(store: Optional[LocalStore] = None) -> float:
    fallback = current_app.config["DEFAULT_TAX_PCT"]
    return to_number((store or get_store()).get(DEFAULT_TAX_KEY, fallback), fallback)


def current_meta(store: Optional[LocalStore] = None) -> dict[str, Any]:
    """The selected customer, or a walk-in placeholder dated today."""
    selected = (store or get_store()).get(SELECTED_CUSTOMER_KEY)
    if isinstance(selected, dict) and selected:
        return selected
    return default_meta(current_app.config["DEFAULT_PLACE_OF_SUPPLY"])


def selected_brand_key(store: Optional[LocalStore] = None) -> str:
    stored = (store or get_store()).get(BRAND_KEY)
    return brand_registry().get(stored or current_app.config["DEFAULT_BRAND"]).key
