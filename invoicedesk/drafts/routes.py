from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..datasets import current_meta, load_collection, load_dict, load_list, save_collection
from ..storage import COLUMN_PREFS_KEY, LINES_KEY, SELECTED_CUSTOMER_KEY, get_store
from ..workspace import delete_draft, find_draft, save_draft, sorted_drafts

drafts_bp = Blueprint("drafts", __name__, url_prefix="/api/drafts")


@drafts_bp.get("")
def list_drafts():
    drafts = sorted_drafts(load_collection("drafts"))
    return jsonify({"drafts": drafts, "total": len(drafts)})


@drafts_bp.post("")
def save():
    data = request.get_json(silent=True) or {}
    store = get_store()
    existing = load_collection("drafts", store)
    try:
        drafts, saved = save_draft(
            existing,
            str(data.get("label") or ""),
            current_meta(store),
            load_list(LINES_KEY, store),
            load_dict(COLUMN_PREFS_KEY, store),
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    created = len(drafts) > len(existing)
    save_collection("drafts", drafts, store)
    return jsonify({"draft": saved}), 201 if created else 200


@drafts_bp.post("/<draft_id>/restore")
def restore(draft_id: str):
    store = get_store()
    draft = find_draft(load_collection("drafts", store), draft_id)
    if draft is None:
        return jsonify({"error": "Draft not found."}), 404
    store.set(LINES_KEY, draft.get("lines") or [])
    store.set(COLUMN_PREFS_KEY, draft.get("pdf_column_prefs") or {})
    store.set(SELECTED_CUSTOMER_KEY, draft.get("meta") or None)
    return jsonify({"draft": draft})


@drafts_bp.delete("/<draft_id>")
def delete(draft_id: str):
    store = get_store()
    drafts = load_collection("drafts", store)
    if find_draft(drafts, draft_id) is None:
        return jsonify({"error": "Draft not found."}), 404
    save_collection("drafts", delete_draft(drafts, draft_id), store)
    return jsonify({"deleted": draft_id})
