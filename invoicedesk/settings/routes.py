from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..datasets import brand_registry, default_tax_pct, load_dict, selected_brand_key
from ..storage import BRAND_KEY, COLUMN_PREFS_KEY, FILTER_KEY, TAB_KEY, get_store

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")

TABS = ("customers", "books", "invoice")


def _settings_payload(store) -> dict:
    return {
        "tab": store.get(TAB_KEY),
        "filter": store.get(FILTER_KEY) or "",
        "default_tax_pct": default_tax_pct(store),
        "column_prefs": load_dict(COLUMN_PREFS_KEY, store),
        "brand": selected_brand_key(store),
    }


@settings_bp.get("")
def show():
    return jsonify(_settings_payload(get_store()))


@settings_bp.put("")
def update():
    data = request.get_json(silent=True) or {}
    store = get_store()
    if "tab" in data:
        if data["tab"] not in TABS:
            return jsonify({"error": f"tab must be one of {', '.join(TABS)}."}), 400
        store.set(TAB_KEY, data["tab"])
    if "filter" in data:
        store.set(FILTER_KEY, str(data["filter"] or ""))
    return jsonify(_settings_payload(store))


@settings_bp.get("/brands")
def brands():
    registry = brand_registry()
    selected = selected_brand_key()
    return jsonify(
        {
            "selected": selected,
            "brands": [
                {**registry.get(key).as_dict(), "fonts": list(registry.fonts_for(registry.get(key)))}
                for key in registry.keys()
            ],
        }
    )


@settings_bp.put("/brand")
def select_brand():
    data = request.get_json(silent=True) or {}
    key = data.get("key")
    if key not in brand_registry().keys():
        return jsonify({"error": "Unknown brand."}), 400
    store = get_store()
    store.set(BRAND_KEY, key)
    return jsonify(_settings_payload(store))
