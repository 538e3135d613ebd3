"""Canonical book/customer records built from loosely named CSV rows.

Each canonical field has a list of accepted source keys, tried in order.
Source keys are compared after lower-casing and folding spaces/dashes to
underscores, so ``"Book Title"``, ``"book-title"`` and ``"book_title"`` all
match the same synonym.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from ..pricing import is_present, to_number

BOOK_FIELDS: dict[str, tuple[str, ...]] = {
    "uid": ("uid",),
    "sku": ("sku", "isbn", "code", "item_code"),
    "title": ("title", "book_title", "name", "book"),
    "author": ("author", "authors", "writer"),
    "publisher": ("publisher", "publication", "imprint"),
    "mrp": ("mrp", "list_price", "price", "rate"),
    "default_discount_pct": ("default_discount_pct", "discount_pct", "discount", "disc"),
    "default_tax_pct": ("default_tax_pct", "tax_pct", "tax", "gst"),
    "created_at": ("created_at", "createdat"),
    "updated_at": ("updated_at", "updatedat"),
}

CUSTOMER_FIELDS: dict[str, tuple[str, ...]] = {
    "uid": ("uid",),
    "invoice_no": ("invoice_no", "invoice_number", "invoice", "inv_no"),
    "customer_name": ("customer_name", "name", "customer", "bill_to"),
    "billing_address": ("billing_address", "address", "bill_address"),
    "shipping_address": ("shipping_address", "ship_address", "ship_to"),
    "gstin": ("gstin", "gst_no", "gst_number"),
    "pan": ("pan", "pan_no"),
    "place_of_supply": ("place_of_supply", "state", "pos"),
    "email": ("email", "email_address", "mail"),
    "phone": ("phone", "mobile", "phone_no", "contact"),
    "invoice_date": ("invoice_date", "date"),
    "due_date": ("due_date", "due"),
    "notes": ("notes", "note", "remarks"),
    "created_at": ("created_at", "createdat"),
    "updated_at": ("updated_at", "updatedat"),
}

BOOK_NUMBERS = ("mrp", "default_discount_pct")
OPTIONAL_STAMPS = ("created_at", "updated_at")

_SLUG_RE = re.compile(r"[^a-z0-9]+")
_KEY_RE = re.compile(r"[\s\-]+")


def slugify(value: Any) -> str:
    if value is None:
        return ""
    return _SLUG_RE.sub("-", str(value).strip().lower()).strip("-")


def random_uid(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _fold_key(key: Any) -> str:
    return _KEY_RE.sub("_", str(key).strip().lower())


def _lookup(raw: Mapping[str, Any], synonyms: tuple[str, ...]) -> Any:
    folded = {_fold_key(key): value for key, value in raw.items()}
    for synonym in synonyms:
        value = folded.get(synonym)
        if is_present(value):
            return value
    return None


def text_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def book_key(record: Mapping[str, Any]) -> Optional[str]:
    return slugify(record.get("sku")) or slugify(record.get("title")) or None


def customer_key(record: Mapping[str, Any]) -> Optional[str]:
    return (
        slugify(record.get("invoice_no"))
        or slugify(record.get("gstin"))
        or slugify(record.get("customer_name"))
        or None
    )


def normalize_book(raw: Mapping[str, Any]) -> dict[str, Any]:
    raw = raw or {}
    book: dict[str, Any] = {
        "sku": text_value(_lookup(raw, BOOK_FIELDS["sku"])),
        "title": text_value(_lookup(raw, BOOK_FIELDS["title"])),
        "author": text_value(_lookup(raw, BOOK_FIELDS["author"])),
        "publisher": text_value(_lookup(raw, BOOK_FIELDS["publisher"])),
    }
    for field in BOOK_NUMBERS:
        book[field] = to_number(_lookup(raw, BOOK_FIELDS[field]))
    tax = _lookup(raw, BOOK_FIELDS["default_tax_pct"])
    book["default_tax_pct"] = to_number(tax) if is_present(tax) else None
    for field in OPTIONAL_STAMPS:
        stamp = _lookup(raw, BOOK_FIELDS[field])
        if stamp is not None:
            book[field] = text_value(stamp)

    uid = text_value(_lookup(raw, BOOK_FIELDS["uid"]))
    book["uid"] = uid or book_key(book) or random_uid("book")
    return book


def normalize_customer(raw: Mapping[str, Any]) -> dict[str, Any]:
    raw = raw or {}
    customer: dict[str, Any] = {}
    for field, synonyms in CUSTOMER_FIELDS.items():
        if field in ("uid",) + OPTIONAL_STAMPS:
            continue
        customer[field] = text_value(_lookup(raw, synonyms))
    if not customer["shipping_address"]:
        customer["shipping_address"] = customer["billing_address"]
    for field in OPTIONAL_STAMPS:
        stamp = _lookup(raw, CUSTOMER_FIELDS[field])
        if stamp is not None:
            customer[field] = text_value(stamp)

    uid = text_value(_lookup(raw, CUSTOMER_FIELDS["uid"]))
    customer["uid"] = uid or customer_key(customer) or random_uid("customer")
    return customer


def _now_iso() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat() + "Z"


def supplied_fields(raw: Mapping[str, Any], fields: Mapping[str, tuple[str, ...]]) -> set[str]:
    """Canonical fields for which ``raw`` carries a non-blank value."""
    raw = raw or {}
    return {field for field, synonyms in fields.items() if _lookup(raw, synonyms) is not None}


def upsert_entity(
    collection: list[dict[str, Any]],
    candidate: Mapping[str, Any],
    normalize: Callable[[Mapping[str, Any]], dict[str, Any]],
    key: Callable[[Mapping[str, Any]], Optional[str]],
    fields: Mapping[str, tuple[str, ...]],
) -> tuple[list[dict[str, Any]], dict[str, Any], bool]:
    """Merge ``candidate`` into ``collection`` by identity.

    Returns ``(new_collection, stored_record, created)``. The input list is
    not mutated. A match is an equal ``uid`` or an equal slug-derived key;
    fields the candidate supplies win, fields it leaves out or blank keep
    their stored value, and the existing ``uid`` and ``created_at`` are kept.
    """
    record = normalize(candidate)
    supplied = supplied_fields(candidate, fields)
    record_key = key(record)
    now = _now_iso()

    result = list(collection)
    for index, existing in enumerate(result):
        same_uid = existing.get("uid") == record["uid"]
        same_key = record_key is not None and key(existing) == record_key
        if not (same_uid or same_key):
            continue
        merged = dict(existing)
        merged.update({field: record[field] for field in supplied if field in record})
        merged["uid"] = existing.get("uid") or record["uid"]
        merged["created_at"] = existing.get("created_at") or record.get("created_at") or now
        merged["updated_at"] = now
        result[index] = merged
        return result, merged, False

    record.setdefault("created_at", now)
    record["updated_at"] = now
    result.append(record)
    return result, record, True


def upsert_book(collection, candidate):
    return upsert_entity(collection, candidate, normalize_book, book_key, BOOK_FIELDS)


def upsert_customer(collection, candidate):
    return upsert_entity(collection, candidate, normalize_customer, customer_key, CUSTOMER_FIELDS)


def merge_all(collection, candidates, upsert) -> tuple[list[dict[str, Any]], int, int]:
    created = updated = 0
    for candidate in candidates:
        collection, _, was_created = upsert(collection, candidate)
        if was_created:
            created += 1
        else:
            updated += 1
    return collection, created, updated


def normalize_line_item(raw: Mapping[str, Any], order: Optional[float] = None) -> dict[str, Any]:
    """Canonical invoice line; the blank ``rate`` means 'use the MRP'."""
    raw = raw or {}
    rate = raw.get("rate")
    line = {
        "sku": text_value(raw.get("sku")),
        "title": text_value(raw.get("title")),
        "author": text_value(raw.get("author")),
        "publisher": text_value(raw.get("publisher")),
        "qty": to_number(raw.get("qty", raw.get("quantity")), 1.0),
        "mrp": to_number(raw.get("mrp", raw.get("list_price"))),
        "rate": text_value(rate) if is_present(rate) else "",
        "discount_pct": to_number(raw.get("discount_pct", raw.get("discount_percent"))),
        "tax_pct": to_number(raw.get("tax_pct", raw.get("tax_percent"))),
    }
    order_value = raw.get("order", order)
    if is_present(order_value):
        line["order"] = to_number(order_value)
    return line
