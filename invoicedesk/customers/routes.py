from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..datasets import current_meta, load_collection, save_collection
from ..storage import SELECTED_CUSTOMER_KEY, get_store
from ..utils.csv_import import rows_from_upload
from ..utils.normalize import merge_all, upsert_customer
from ..workspace import find_customer

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers():
    store = get_store()
    customers = load_collection("customers", store)
    return jsonify({"customers": customers, "total": len(customers), "selected": store.get(SELECTED_CUSTOMER_KEY)})


@customers_bp.post("/import")
def import_customers():
    rows = rows_from_upload(request.files.get("file"), request.get_data())
    mode = request.args.get("mode", "replace")
    if mode not in ("replace", "merge"):
        return jsonify({"error": "mode must be 'replace' or 'merge'."}), 400

    store = get_store()
    base = load_collection("customers", store) if mode == "merge" else []
    customers, created, updated = merge_all(base, rows, upsert_customer)
    save_collection("customers", customers, store)
    current_app.logger.info("Imported %s customer rows (%s new, %s updated)", len(rows), created, updated)
    return jsonify({"created": created, "updated": updated, "total": len(customers)})


@customers_bp.post("")
def upsert():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Expected JSON object."}), 400
    store = get_store()
    customers, record, created = upsert_customer(load_collection("customers", store), data)
    save_collection("customers", customers, store)
    return jsonify({"customer": record}), 201 if created else 200


@customers_bp.delete("/<uid>")
def delete(uid: str):
    store = get_store()
    customers = load_collection("customers", store)
    remaining = [customer for customer in customers if customer.get("uid") != uid]
    if len(remaining) == len(customers):
        return jsonify({"error": "Customer not found."}), 404
    save_collection("customers", remaining, store)
    return jsonify({"deleted": uid, "total": len(remaining)})


@customers_bp.post("/select")
def select():
    data = request.get_json(silent=True) or {}
    store = get_store()
    customer = find_customer(load_collection("customers", store), data.get("invoice_no"))
    if customer is None:
        return jsonify({"error": "No customer with that invoice number."}), 404
    store.set(SELECTED_CUSTOMER_KEY, customer)
    return jsonify({"selected": customer})


@customers_bp.delete("/select")
def clear_selection():
    store = get_store()
    store.set(SELECTED_CUSTOMER_KEY, None)
    return jsonify({"selected": None, "meta": current_meta(store)})
