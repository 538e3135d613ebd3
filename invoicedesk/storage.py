"""JSON key/value persistence for the working session.

Every piece of operator state (catalog, customers, invoice lines, drafts,
UI preferences) lives under a namespaced key in the ``settings`` table.
Reads never fail: absent or corrupted values fall back to the documented
default. Writes are best effort.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import Setting

logger = logging.getLogger(__name__)

TAB_KEY = "ui.tab"
CATALOG_KEY = "data.catalog"
CUSTOMERS_KEY = "data.customers"
BATCH_ITEMS_KEY = "data.batchItems"
LINES_KEY = "data.lines"
DEFAULT_TAX_KEY = "settings.defaultTaxPct"
COLUMN_PREFS_KEY = "settings.pdfColumnPrefs"
FILTER_KEY = "ui.filter"
SELECTED_CUSTOMER_KEY = "ui.selectedCustomer"
DRAFTS_KEY = "data.drafts"
BRAND_KEY = "settings.brandKey"

DEFAULTS: dict[str, Any] = {
    TAB_KEY: "customers",
    CATALOG_KEY: list,
    CUSTOMERS_KEY: list,
    BATCH_ITEMS_KEY: list,
    LINES_KEY: list,
    DEFAULT_TAX_KEY: 18,
    COLUMN_PREFS_KEY: dict,
    FILTER_KEY: "",
    SELECTED_CUSTOMER_KEY: None,
    DRAFTS_KEY: list,
    BRAND_KEY: None,
}

_MISSING = object()


def _resolve_default(default: Any) -> Any:
    return default() if callable(default) else default


class LocalStore:
    def __init__(self, session=None) -> None:
        self._session = session or db.session

    def get(self, key: str, default: Any = _MISSING) -> Any:
        if default is _MISSING:
            default = DEFAULTS.get(key)
        try:
            row = self._session.query(Setting).filter_by(key=key).first()
        except SQLAlchemyError:
            logger.warning("Local storage read failed for %s", key)
            self._session.rollback()
            return _resolve_default(default)
        if row is None or row.value is None:
            return _resolve_default(default)
        try:
            return json.loads(row.value)
        except (TypeError, ValueError):
            return _resolve_default(default)

    def set(self, key: str, value: Any) -> bool:
        try:
            payload = json.dumps(value, default=str)
            row = self._session.query(Setting).filter_by(key=key).first()
            if row is None:
                row = Setting(key=key)
                self._session.add(row)
            row.value = payload
            self._session.commit()
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            self._session.rollback()
            logger.warning("Local storage write ignored for %s: %s", key, exc)
            return False
        return True

    def delete(self, key: str) -> None:
        try:
            self._session.query(Setting).filter_by(key=key).delete()
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            logger.warning("Local storage delete ignored for %s", key)


def get_store() -> LocalStore:
    return LocalStore(db.session)
