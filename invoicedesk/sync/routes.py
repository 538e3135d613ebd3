from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from ..datasets import SYNCED_KEYS, save_collection, sync_manager

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/status")
def status():
    manager = sync_manager()
    return jsonify({"configured": manager.configured, "workspace": manager.client.workspace,
                    "collections": manager.status()})


@sync_bp.post("/<collection>/refresh")
def refresh(collection: str):
    if collection not in SYNCED_KEYS:
        return jsonify({"error": f"Unknown collection '{collection}'."}), 404
    manager = sync_manager()
    if not manager.configured:
        return jsonify({"error": "Remote sync is not configured.", "status": manager.get(collection).status()}), 400

    rows = manager.refresh(collection, lambda items: save_collection(collection, items))
    state = manager.get(collection).status()
    if rows is None:
        current_app.logger.warning("Refresh of %s failed: %s", collection, state["error"])
        return jsonify({"error": state["error"] or "Refresh failed.", "status": state}), 502
    return jsonify({"count": len(rows), "status": state})
