from __future__ import annotations

import io

from flask import Blueprint, current_app, jsonify, request, send_file

from ..datasets import (brand_registry, current_meta, default_tax_pct, load_collection, load_dict, load_list,
                        selected_brand_key, sync_manager)
from ..pdf_service import invoice_filename, render_invoice_pdf
from ..pricing import aggregate, compute_line, to_number
from ..storage import BATCH_ITEMS_KEY, COLUMN_PREFS_KEY, DEFAULT_TAX_KEY, FILTER_KEY, LINES_KEY, get_store
from ..sync.client import persist_invoice_record
from ..utils.csv_import import rows_from_upload
from ..utils.exports import generate_batch_zip
from ..utils.formatting import amount_in_words
from ..workspace import (add_all_books, add_line, apply_default_tax, apply_export_order, clean_column_prefs,
                         export_order, filter_books, line_from_book, move_line, remove_line,
                         resolve_column_options, update_line)

invoice_bp = Blueprint("invoice", __name__, url_prefix="/api/invoice")


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _index_arg(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _invoice_state(store) -> dict:
    lines = load_list(LINES_KEY, store)
    totals = aggregate(lines)
    prefs = load_dict(COLUMN_PREFS_KEY, store)
    return {
        "meta": current_meta(store),
        "lines": lines,
        "line_totals": [compute_line(line).as_dict() for line in lines],
        "export_lines": export_order(lines),
        "totals": totals.as_dict(),
        "amount_in_words": amount_in_words(totals.net),
        "default_tax_pct": default_tax_pct(store),
        "column_prefs": prefs,
        "columns": resolve_column_options(prefs, lines, totals),
        "batch_items": len(load_list(BATCH_ITEMS_KEY, store)),
        "brand": selected_brand_key(store),
    }


def _save_lines(store, lines):
    store.set(LINES_KEY, lines)
    return jsonify(_invoice_state(store))


@invoice_bp.get("")
def show():
    return jsonify(_invoice_state(get_store()))


@invoice_bp.post("/lines")
def add():
    data = _payload()
    store = get_store()
    lines = load_list(LINES_KEY, store)
    book_uid = data.get("book_uid")
    if book_uid:
        book = next((b for b in load_collection("books", store) if b.get("uid") == book_uid), None)
        if book is None:
            return jsonify({"error": "Book not found."}), 404
        line = line_from_book(book, default_tax_pct(store))
    else:
        line = data
    store.set(LINES_KEY, add_line(lines, line))
    return jsonify(_invoice_state(store)), 201


@invoice_bp.post("/lines/bulk")
def add_visible_books():
    """Add every book matching the filter that is not on the invoice yet."""
    data = _payload()
    store = get_store()
    query = data.get("q")
    if query is None:
        query = store.get(FILTER_KEY) or ""
    books = filter_books(load_collection("books", store), query)
    lines = add_all_books(load_list(LINES_KEY, store), books, default_tax_pct(store))
    return _save_lines(store, lines)


@invoice_bp.patch("/lines/<int:index>")
def patch(index: int):
    store = get_store()
    try:
        lines = update_line(load_list(LINES_KEY, store), index, _payload())
    except IndexError as exc:
        return jsonify({"error": str(exc)}), 404
    return _save_lines(store, lines)


@invoice_bp.delete("/lines/<int:index>")
def delete(index: int):
    store = get_store()
    try:
        lines = remove_line(load_list(LINES_KEY, store), index)
    except IndexError as exc:
        return jsonify({"error": str(exc)}), 404
    return _save_lines(store, lines)


@invoice_bp.delete("/lines")
def clear():
    return _save_lines(get_store(), [])


@invoice_bp.post("/lines/move")
def move():
    data = _payload()
    store = get_store()
    lines = move_line(load_list(LINES_KEY, store), _index_arg(data.get("from")), _index_arg(data.get("to")))
    return _save_lines(store, lines)


@invoice_bp.post("/lines/apply-order")
def apply_order():
    store = get_store()
    return _save_lines(store, apply_export_order(load_list(LINES_KEY, store)))


@invoice_bp.put("/default-tax")
def set_default_tax():
    data = _payload()
    if "tax_pct" not in data:
        return jsonify({"error": "tax_pct is required."}), 400
    store = get_store()
    tax = to_number(data.get("tax_pct"))
    store.set(DEFAULT_TAX_KEY, tax)
    if data.get("apply"):
        store.set(LINES_KEY, apply_default_tax(load_list(LINES_KEY, store), tax))
    return jsonify(_invoice_state(store))


@invoice_bp.put("/columns")
def set_columns():
    store = get_store()
    prefs = {**load_dict(COLUMN_PREFS_KEY, store), **clean_column_prefs(_payload())}
    store.set(COLUMN_PREFS_KEY, prefs)
    return jsonify(_invoice_state(store))


@invoice_bp.delete("/columns")
def reset_columns():
    store = get_store()
    store.set(COLUMN_PREFS_KEY, {})
    return jsonify(_invoice_state(store))


@invoice_bp.post("/batch-items/import")
def import_batch_items():
    rows = rows_from_upload(request.files.get("file"), request.get_data())
    get_store().set(BATCH_ITEMS_KEY, rows)
    return jsonify({"batch_items": len(rows)})


@invoice_bp.delete("/batch-items")
def clear_batch_items():
    get_store().set(BATCH_ITEMS_KEY, [])
    return jsonify({"batch_items": 0})


@invoice_bp.get("/pdf")
def pdf():
    store = get_store()
    cfg = current_app.config
    registry = brand_registry()
    meta = current_meta(store)
    lines = load_list(LINES_KEY, store)
    totals = aggregate(lines)
    prefs = load_dict(COLUMN_PREFS_KEY, store)

    content = render_invoice_pdf(
        meta,
        lines,
        totals,
        registry.get(selected_brand_key(store)),
        prefs,
        registry=registry,
        terms=cfg["INVOICE_TERMS"],
        place_of_supply=cfg["DEFAULT_PLACE_OF_SUPPLY"],
    )
    persist_invoice_record(
        sync_manager().client,
        invoice_no=meta.get("invoice_no"),
        customer_name=meta.get("customer_name"),
        meta=meta,
        items=lines,
        totals=totals.as_dict(),
        pdf_column_prefs=prefs,
    )
    return send_file(
        io.BytesIO(content),
        as_attachment=True,
        download_name=invoice_filename(meta),
        mimetype="application/pdf",
    )


@invoice_bp.post("/batch")
def batch():
    store = get_store()
    cfg = current_app.config
    registry = brand_registry()
    result = generate_batch_zip(
        load_collection("customers", store),
        load_list(BATCH_ITEMS_KEY, store),
        load_collection("books", store),
        load_list(LINES_KEY, store),
        default_tax_pct(store),
        brand=registry.get(selected_brand_key(store)),
        registry=registry,
        column_options=load_dict(COLUMN_PREFS_KEY, store),
        reuse_shared_lines=cfg["BATCH_REUSE_SHARED_LINES"],
        terms=cfg["INVOICE_TERMS"],
        place_of_supply=cfg["DEFAULT_PLACE_OF_SUPPLY"],
    )
    current_app.logger.info("Batch %s: %s invoices, %s skipped", result.filename, len(result.rendered),
                            len(result.skipped))
    response = send_file(
        io.BytesIO(result.content),
        as_attachment=True,
        download_name=result.filename,
        mimetype="application/zip",
    )
    response.headers["X-Invoices-Rendered"] = str(len(result.rendered))
    response.headers["X-Invoices-Skipped"] = str(len(result.skipped))
    return response
