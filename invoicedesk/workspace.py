"""Operations on the working invoice: lines, ordering, columns and drafts.

All functions take and return plain lists/dicts (the shapes stored in local
storage) and never mutate their inputs.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from .pricing import is_present, line_discount_pct, to_number
from .utils.normalize import normalize_line_item

DISCOUNT_VISIBILITY_EPSILON = 0.0001
COLUMN_KEYS = ("discount", "tax", "amount", "titles_only")


def filter_books(catalog: list[dict[str, Any]], query: Optional[str]) -> list[dict[str, Any]]:
    needle = (query or "").strip().lower()
    if not needle:
        return list(catalog)
    matches = []
    for book in catalog:
        fields = [book.get("sku"), book.get("title"), book.get("author"), book.get("publisher")]
        if any(needle in str(field).lower() for field in fields if field):
            matches.append(book)
    return matches


def line_from_book(book: Mapping[str, Any], default_tax_pct: Any) -> dict[str, Any]:
    tax = book.get("default_tax_pct")
    if not is_present(tax):
        tax = default_tax_pct if default_tax_pct is not None else 0
    return normalize_line_item(
        {
            "sku": book.get("sku"),
            "title": book.get("title"),
            "author": book.get("author"),
            "publisher": book.get("publisher"),
            "qty": 1,
            "mrp": book.get("mrp"),
            "rate": "",
            "discount_pct": book.get("default_discount_pct") or 0,
            "tax_pct": tax,
        }
    )


def _line_key(record: Mapping[str, Any]) -> str:
    return f"{record.get('sku') or ''}__{record.get('title') or ''}"


def _next_order(lines: list[dict[str, Any]]) -> float:
    orders = [to_number(line.get("order"), float(index + 1)) for index, line in enumerate(lines)]
    return (max(orders) if orders else 0) + 1


def add_line(lines: list[dict[str, Any]], line: Mapping[str, Any]) -> list[dict[str, Any]]:
    new_line = normalize_line_item(line)
    new_line.setdefault("order", _next_order(lines))
    return [*lines, new_line]


def add_all_books(
    lines: list[dict[str, Any]], books: Iterable[Mapping[str, Any]], default_tax_pct: Any
) -> list[dict[str, Any]]:
    """Append every book not already on the invoice (matched by sku + title)."""
    seen = {_line_key(line) for line in lines}
    result = list(lines)
    for book in books:
        key = _line_key(book)
        if key in seen:
            continue
        seen.add(key)
        result = add_line(result, line_from_book(book, default_tax_pct))
    return result


def apply_default_tax(lines: list[dict[str, Any]], tax_pct: Any) -> list[dict[str, Any]]:
    tax = to_number(tax_pct)
    return [{**line, "tax_pct": tax} for line in lines]


def update_line(lines: list[dict[str, Any]], index: int, patch: Mapping[str, Any]) -> list[dict[str, Any]]:
    if not 0 <= index < len(lines):
        raise IndexError(f"No invoice line at position {index}")
    merged = normalize_line_item({**lines[index], **patch})
    return [merged if idx == index else line for idx, line in enumerate(lines)]


def remove_line(lines: list[dict[str, Any]], index: int) -> list[dict[str, Any]]:
    if not 0 <= index < len(lines):
        raise IndexError(f"No invoice line at position {index}")
    return [line for idx, line in enumerate(lines) if idx != index]


def move_line(lines: list[dict[str, Any]], source: Optional[int], target: Optional[int]) -> list[dict[str, Any]]:
    """Drag-and-drop reorder; renumbers ``order`` to match the new positions.

    Out-of-range or no-op moves return the input unchanged.
    """
    if source is None or target is None or source == target:
        return lines
    if not (0 <= source < len(lines) and 0 <= target < len(lines)):
        return lines
    result = list(lines)
    moved = result.pop(source)
    result.insert(target, moved)
    return [{**line, "order": position} for position, line in enumerate(result, start=1)]


def export_order(lines: list[Any]) -> list[Any]:
    """Lines sorted by their ``order`` key; missing keys use the array index."""
    def sort_key(entry):
        index, line = entry
        raw = line.get("order") if isinstance(line, Mapping) else None
        position = to_number(raw, float(index)) if is_present(raw) else float(index)
        return position, index

    return [line for _, line in sorted(enumerate(lines), key=sort_key)]


def apply_export_order(lines: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [{**line, "order": position} for position, line in enumerate(export_order(lines), start=1)]


def auto_discount_column(lines: Iterable[Mapping[str, Any]], totals: Any) -> bool:
    discount_total = to_number(_total_value(totals, "discount"))
    if discount_total > DISCOUNT_VISIBILITY_EPSILON:
        return True
    return any(line_discount_pct(line) for line in lines if isinstance(line, Mapping))


def _total_value(totals: Any, key: str) -> Any:
    if isinstance(totals, Mapping):
        return totals.get(key)
    return getattr(totals, key, None)


def resolve_column_options(
    prefs: Optional[Mapping[str, Any]], lines: Iterable[Mapping[str, Any]], totals: Any
) -> dict[str, bool]:
    prefs = prefs or {}
    lines = list(lines)

    def pref(key: str, fallback: bool) -> bool:
        value = prefs.get(key)
        return fallback if value is None else bool(value)

    return {
        "titles_only": pref("titles_only", False),
        "discount": pref("discount", auto_discount_column(lines, totals)),
        "tax": pref("tax", True),
        "amount": pref("amount", True),
    }


def clean_column_prefs(payload: Mapping[str, Any]) -> dict[str, bool]:
    return {key: bool(payload[key]) for key in COLUMN_KEYS if payload.get(key) is not None}


def find_customer(customers: list[dict[str, Any]], invoice_no: Any) -> Optional[dict[str, Any]]:
    wanted = str(invoice_no).strip() if invoice_no is not None else ""
    if not wanted:
        return None
    for customer in customers:
        if str(customer.get("invoice_no", "")).strip() == wanted:
            return customer
    return None


def default_meta(place_of_supply: str, today: Optional[datetime] = None) -> dict[str, Any]:
    stamp = (today or datetime.now()).strftime("%d-%m-%Y")
    return {
        "invoice_no": "DRAFT-001",
        "invoice_date": stamp,
        "due_date": stamp,
        "customer_name": "Walk-in Customer",
        "billing_address": "",
        "shipping_address": "",
        "gstin": "",
        "pan": "",
        "place_of_supply": place_of_supply,
        "notes": "",
    }


# Drafts -------------------------------------------------------------------------

def _now_iso() -> str:
    return datetime.utcnow().isoformat(timespec="milliseconds") + "Z"


def sorted_drafts(drafts: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    return sorted(
        (dict(draft) for draft in drafts),
        key=lambda draft: draft.get("updated_at") or draft.get("created_at") or "",
        reverse=True,
    )


def save_draft(
    drafts: list[dict[str, Any]],
    label: str,
    meta: Optional[Mapping[str, Any]],
    lines: list[dict[str, Any]],
    column_prefs: Optional[Mapping[str, Any]],
    now: Optional[str] = None,
) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """Save a snapshot under ``label``; an existing label (any case) is overwritten."""
    label = (label or "").strip()
    if not label:
        raise ValueError("Draft label is required.")
    stamp = now or _now_iso()
    snapshot = {
        "label": label,
        "meta": dict(meta or {}),
        "lines": [dict(line) for line in lines],
        "pdf_column_prefs": dict(column_prefs or {}),
        "updated_at": stamp,
    }

    result = []
    saved = None
    for draft in drafts:
        if saved is None and str(draft.get("label", "")).strip().lower() == label.lower():
            saved = {**draft, **snapshot}
            result.append(saved)
        else:
            result.append(dict(draft))
    if saved is None:
        saved = {"id": uuid.uuid4().hex, "created_at": stamp, **snapshot}
        result.append(saved)
    return sorted_drafts(result), saved


def find_draft(drafts: Iterable[Mapping[str, Any]], draft_id: str) -> Optional[dict[str, Any]]:
    for draft in drafts:
        if draft.get("id") == draft_id:
            return dict(draft)
    return None


def delete_draft(drafts: list[dict[str, Any]], draft_id: str) -> list[dict[str, Any]]:
    return [dict(draft) for draft in drafts if draft.get("id") != draft_id]
