from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..datasets import load_collection, save_collection
from ..storage import FILTER_KEY, get_store
from ..utils.csv_import import rows_from_upload
from ..utils.normalize import merge_all, upsert_book
from ..workspace import filter_books

books_bp = Blueprint("books", __name__, url_prefix="/api/books")


@books_bp.get("")
def list_books():
    store = get_store()
    query = request.args.get("q")
    if query is None:
        query = store.get(FILTER_KEY) or ""
    else:
        store.set(FILTER_KEY, query)
    catalog = load_collection("books", store)
    visible = filter_books(catalog, query)
    return jsonify({"books": visible, "filter": query, "visible": len(visible), "total": len(catalog)})


@books_bp.post("/import")
def import_books():
    rows = rows_from_upload(request.files.get("file"), request.get_data())
    mode = request.args.get("mode", "replace")
    if mode not in ("replace", "merge"):
        return jsonify({"error": "mode must be 'replace' or 'merge'."}), 400

    store = get_store()
    base = load_collection("books", store) if mode == "merge" else []
    catalog, created, updated = merge_all(base, rows, upsert_book)
    save_collection("books", catalog, store)
    current_app.logger.info("Imported %s catalog rows (%s new, %s updated)", len(rows), created, updated)
    return jsonify({"created": created, "updated": updated, "total": len(catalog)})


@books_bp.post("")
def upsert():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Expected JSON object."}), 400
    store = get_store()
    catalog, record, created = upsert_book(load_collection("books", store), data)
    save_collection("books", catalog, store)
    return jsonify({"book": record}), 201 if created else 200


@books_bp.delete("/<uid>")
def delete(uid: str):
    store = get_store()
    catalog = load_collection("books", store)
    remaining = [book for book in catalog if book.get("uid") != uid]
    if len(remaining) == len(catalog):
        return jsonify({"error": "Book not found."}), 404
    save_collection("books", remaining, store)
    return jsonify({"deleted": uid, "total": len(remaining)})


@books_bp.delete("")
def clear():
    save_collection("books", [])
    return jsonify({"total": 0})
