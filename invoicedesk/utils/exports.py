from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional
from zipfile import ZIP_DEFLATED, ZipFile

from ..brands import BrandProfile, BrandRegistry
from ..pdf_service import invoice_filename, render_invoice_pdf
from ..pricing import aggregate, to_number
from .normalize import normalize_line_item, text_value

logger = logging.getLogger(__name__)


class BatchPreconditionError(ValueError):
    """Raised when a batch cannot start, e.g. no customers are loaded."""


@dataclass
class BatchResult:
    content: bytes
    filename: str
    rendered: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _match_book(catalog: Iterable[Mapping[str, Any]], reference: Any) -> Optional[Mapping[str, Any]]:
    wanted = text_value(reference)
    if not wanted:
        return None
    for book in catalog:
        if text_value(book.get("sku")) == wanted or text_value(book.get("title")).lower() == wanted.lower():
            return book
    return None


def batch_line(row: Mapping[str, Any], catalog: Iterable[Mapping[str, Any]], default_tax_pct: Any) -> dict[str, Any]:
    """One invoice line from a line-items CSV row, enriched from the catalog."""
    match = _match_book(catalog, row.get("sku_or_title")) or {}
    tax = _first(row.get("tax_pct_override"), match.get("default_tax_pct"), default_tax_pct, 0)
    return normalize_line_item(
        {
            "sku": match.get("sku") or "",
            "title": match.get("title") or row.get("sku_or_title") or row.get("title") or "Item",
            "author": match.get("author") or row.get("author") or "",
            "publisher": match.get("publisher") or row.get("publisher") or "",
            "qty": row.get("qty") or 1,
            "mrp": to_number(_first(row.get("mrp"), match.get("mrp"), row.get("rate_override"), 0)),
            "rate": _first(row.get("rate_override"), ""),
            "discount_pct": to_number(_first(row.get("discount_pct_override"), match.get("default_discount_pct"), 0)),
            "tax_pct": to_number(tax),
        }
    )


def build_customer_items(
    customer: Mapping[str, Any],
    batch_items: list[Mapping[str, Any]],
    catalog: list[Mapping[str, Any]],
    shared_lines: list[Mapping[str, Any]],
    default_tax_pct: Any,
    reuse_shared_lines: bool = True,
) -> list[dict[str, Any]]:
    """Line items for one customer's invoice.

    Rows from the line-items CSV are matched on ``invoice_no``. Without a
    line-items CSV, or when nothing matches, the shared working lines are
    used if ``reuse_shared_lines`` is set; otherwise the result is empty.
    """
    invoice_no = text_value(customer.get("invoice_no"))
    items = [
        batch_line(row, catalog, default_tax_pct)
        for row in batch_items
        if text_value(row.get("invoice_no")) == invoice_no
    ]
    if items:
        return items
    return [dict(line) for line in shared_lines] if reuse_shared_lines else []


def archive_filename(now: Optional[datetime] = None) -> str:
    return f"invoices_{(now or datetime.now()):%Y%m%d_%H%M}.zip"


def _unique_name(name: str, used: set[str]) -> str:
    if name not in used:
        return name
    stem = name[: -len(".pdf")]
    counter = 2
    while f"{stem}_{counter}.pdf" in used:
        counter += 1
    return f"{stem}_{counter}.pdf"


def generate_batch_zip(
    customers: list[Mapping[str, Any]],
    batch_items: list[Mapping[str, Any]],
    catalog: list[Mapping[str, Any]],
    shared_lines: list[Mapping[str, Any]],
    default_tax_pct: Any,
    *,
    brand: Optional[BrandProfile] = None,
    registry: Optional[BrandRegistry] = None,
    column_options: Optional[Mapping[str, Any]] = None,
    reuse_shared_lines: bool = True,
    terms: Iterable[str] = (),
    place_of_supply: str = "Karnataka",
    now: Optional[datetime] = None,
) -> BatchResult:
    """Render one PDF per customer, in input order, into a single ZIP.

    Rendering is strictly sequential; each document is finished before the
    next one starts.
    """
    if not customers:
        raise BatchPreconditionError("Load customers.csv first")

    now = now or datetime.now()
    terms = list(terms)
    result = BatchResult(content=b"", filename=archive_filename(now))
    used: set[str] = set()
    buffer = io.BytesIO()
    with ZipFile(buffer, "w", ZIP_DEFLATED) as archive:
        for customer in customers:
            items = build_customer_items(
                customer, batch_items, catalog, shared_lines, default_tax_pct, reuse_shared_lines
            )
            label = text_value(customer.get("invoice_no")) or "invoice"
            if not items and not reuse_shared_lines:
                logger.info("Skipping invoice %s: no matching line items", label)
                result.skipped.append(label)
                continue
            pdf = render_invoice_pdf(
                customer,
                items,
                aggregate(items),
                brand,
                column_options,
                registry=registry,
                terms=terms,
                place_of_supply=place_of_supply,
                today=now,
            )
            name = _unique_name(invoice_filename(customer), used)
            used.add(name)
            archive.writestr(name, pdf)
            result.rendered.append(name)

    if not result.rendered:
        raise BatchPreconditionError("No line items matched any customer")
    result.content = buffer.getvalue()
    return result
