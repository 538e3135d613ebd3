from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Any, Iterable, Mapping, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .brands import BUILTIN_BRANDS, BrandProfile, BrandRegistry
from .pricing import compute_line, line_discount_pct, line_quantity, line_tax_pct
from .utils.formatting import amount_in_words, format_decimal, format_inr, format_quantity
from .workspace import export_order, resolve_column_options

PAGE_MARGIN = 40
REQUIRED_TOTALS = ("qty", "taxable", "discount", "tax", "net")

COLUMN_TITLES = {
    "index": "#",
    "title": "Title / Description",
    "qty": "Qty",
    "rate": "Rate",
    "discount": "Disc%",
    "tax": "Tax%",
    "amount": "Amount",
    "net": "Net",
}
COLUMN_WIDTHS = {"index": 22, "qty": 34, "rate": 70, "discount": 44, "tax": 44, "amount": 80, "net": 80}
RIGHT_ALIGNED = {"amount"}


class RenderError(ValueError):
    """Raised when the renderer receives items/totals that break its contract."""


@dataclass
class InvoiceLayout:
    brand: BrandProfile
    invoice_no: str
    meta_cells: list[str]
    columns: list[str]
    head: list[str]
    body: list[list[str]]
    totals_row: Optional[list[str]] = None
    summary: list[tuple[str, str]] = field(default_factory=list)
    amount_words: Optional[str] = None
    notes: str = ""
    titles_only: bool = False


def _totals_mapping(totals: Any) -> dict[str, float]:
    if totals is None:
        raise RenderError("Invoice totals are required.")
    if hasattr(totals, "as_dict"):
        data = totals.as_dict()
    elif isinstance(totals, Mapping):
        data = dict(totals)
    else:
        raise RenderError("Invoice totals must be a mapping.")
    missing = [
        key for key in REQUIRED_TOTALS
        if isinstance(data.get(key), bool)
        or not isinstance(data.get(key), (int, float))
        or not math.isfinite(data[key])
    ]
    if missing:
        raise RenderError(f"Invoice totals missing numeric fields: {', '.join(missing)}")
    return data


def _or_dash(value: Any) -> str:
    text = str(value).strip() if value is not None else ""
    return text or "-"


def _describe(item: Mapping[str, Any]) -> str:
    text = _or_dash(item.get("title"))
    author = str(item.get("author") or "").strip()
    publisher = str(item.get("publisher") or "").strip()
    byline = " • ".join(part for part in (author, publisher) if part)
    return f"{text}\n{byline}" if byline else text


def _meta_cells(meta: Mapping[str, Any], place_of_supply: str, today: datetime) -> list[str]:
    billing = meta.get("billing_address")
    identifiers = [
        ("Invoice No.", _or_dash(meta.get("invoice_no"))),
        ("Invoice Date", meta.get("invoice_date") or today.strftime("%d-%m-%Y")),
        ("Due Date", _or_dash(meta.get("due_date"))),
        ("Place of Supply", meta.get("place_of_supply") or place_of_supply),
        ("GSTIN", _or_dash(meta.get("gstin"))),
        ("PAN", _or_dash(meta.get("pan"))),
    ]
    return [
        f"Bill To\n{_or_dash(meta.get('customer_name'))}\n{_or_dash(billing)}",
        f"Ship To\n{_or_dash(meta.get('shipping_address') or billing)}",
        "\n".join(f"{label}: {value}" for label, value in identifiers),
    ]


def _notes_block(meta: Mapping[str, Any], terms: Iterable[str]) -> str:
    notes = str(meta.get("notes") or "").strip()
    text = f"Notes: {notes}\n\n" if notes else ""
    terms = list(terms)
    if terms:
        text += "TERMS AND CONDITIONS\n" + "\n".join(f"{i}. {term}" for i, term in enumerate(terms, start=1))
    return text


def build_invoice_layout(
    meta: Optional[Mapping[str, Any]],
    items: Any,
    totals: Any,
    brand: BrandProfile,
    column_options: Optional[Mapping[str, Any]] = None,
    terms: Iterable[str] = (),
    place_of_supply: str = "Karnataka",
    today: Optional[datetime] = None,
) -> InvoiceLayout:
    """Decide every string that goes on the page, in drawing order."""
    if not isinstance(items, list):
        raise RenderError("Invoice items must be a list.")
    data = _totals_mapping(totals)
    meta = meta or {}
    today = today or datetime.now()
    options = resolve_column_options(column_options, items, data)
    ordered = export_order(items)

    layout = InvoiceLayout(
        brand=brand,
        invoice_no=str(meta.get("invoice_no") or "").strip(),
        meta_cells=_meta_cells(meta, place_of_supply, today),
        columns=[],
        head=[],
        body=[],
        notes=_notes_block(meta, terms),
        titles_only=options["titles_only"],
    )

    if options["titles_only"]:
        layout.columns = ["index", "title"]
        layout.head = ["#", "Title / Author / Publisher"]
        layout.body = [[str(i), _describe(item)] for i, item in enumerate(ordered, start=1)]
        return layout

    columns = ["index", "title", "qty", "rate"]
    columns += [key for key in ("discount", "tax", "amount") if options[key]]
    columns.append("net")
    layout.columns = columns
    layout.head = [COLUMN_TITLES[key] for key in columns]

    for position, item in enumerate(ordered, start=1):
        line = compute_line(item)
        cells = {
            "index": str(position),
            "title": _describe(item),
            "qty": format_quantity(line_quantity(item)),
            "rate": format_inr(line.effective_rate),
            "discount": format_decimal(line_discount_pct(item)),
            "tax": format_decimal(line_tax_pct(item)),
            "amount": format_inr(line.gross),
            "net": format_inr(line.net),
        }
        layout.body.append([cells[key] for key in columns])

    if ordered:
        total_cells = {
            "index": "",
            "title": "Total",
            "qty": format_quantity(data["qty"]),
            "rate": "",
            "discount": format_inr(data["discount"]),
            "tax": format_inr(data["tax"]),
            "amount": format_inr(data["taxable"]),
            "net": format_inr(data["net"]),
        }
        layout.totals_row = [total_cells[key] for key in columns]

    summary = [
        ("Total Quantity", format_quantity(data["qty"])),
        ("Taxable Amount", format_inr(data["taxable"])),
    ]
    if options["discount"]:
        summary.append(("Total Discount", format_inr(data["discount"])))
    summary += [
        ("Total Tax", format_inr(data["tax"])),
        ("Grand Total", format_inr(data["net"])),
    ]
    layout.summary = summary
    layout.amount_words = amount_in_words(data["net"])
    return layout


# Drawing --------------------------------------------------------------------------

def _markup(text: str) -> str:
    return escape(text).replace("\n", "<br/>")


def _styles(brand: BrandProfile, regular: str, bold: str) -> dict[str, ParagraphStyle]:
    base = ParagraphStyle("body", fontName=regular, fontSize=brand.body_size, leading=brand.body_size + 3)
    return {
        "title": ParagraphStyle("title", parent=base, fontName=bold, fontSize=brand.title_size,
                                leading=brand.title_size + 4),
        "body": base,
        "meta": ParagraphStyle("meta", parent=base, fontSize=10, leading=13),
        "cell": base,
        "head": ParagraphStyle("head", parent=base, fontName=bold, textColor=colors.white),
        "label": ParagraphStyle("label", parent=base, fontName=bold, fontSize=11, leading=14,
                                textColor=colors.HexColor(brand.primary_color)),
        "words": ParagraphStyle("words", parent=base, fontSize=10, leading=13),
        "notes": ParagraphStyle("notes", parent=base, alignment=TA_CENTER),
    }


def _items_table(layout: InvoiceLayout, styles, usable: float, regular: str, bold: str) -> Table:
    brand = layout.brand
    widths = [COLUMN_WIDTHS.get(key, 0) for key in layout.columns]
    title_index = layout.columns.index("title")
    widths[title_index] = max(usable - sum(widths), 120)

    rows = [[Paragraph(_markup(text), styles["head"]) for text in layout.head]]
    for row in layout.body:
        rows.append([Paragraph(_markup(text), styles["cell"]) if key == "title" else text
                     for key, text in zip(layout.columns, row)])
    if layout.totals_row:
        rows.append(layout.totals_row)

    commands = [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(brand.primary_color)),
        ("GRID", (0, 0), (-1, -1), 0.4, colors.HexColor("#94A3B8")),
        ("FONTNAME", (0, 1), (-1, -1), regular),
        ("FONTSIZE", (0, 0), (-1, -1), brand.body_size),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ALIGN", (0, 1), (0, -1), "CENTER"),
    ]
    for index, key in enumerate(layout.columns):
        if key in ("index", "title"):
            continue
        align = "RIGHT" if key in RIGHT_ALIGNED else "CENTER"
        commands.append(("ALIGN", (index, 1), (index, -1), align))
    if layout.totals_row:
        commands += [
            ("FONTNAME", (0, -1), (-1, -1), bold),
            ("BACKGROUND", (0, -1), (-1, -1), colors.HexColor(brand.label_color)),
        ]
    table = Table(rows, colWidths=widths, repeatRows=1)
    table.setStyle(TableStyle(commands))
    return table


def _summary_table(layout: InvoiceLayout, styles, usable: float, bold: str) -> Table:
    brand = layout.brand
    rows = [["Summary", "Amount"]] + [[label, value] for label, value in layout.summary]
    table = Table(rows, colWidths=[usable * 0.55, usable * 0.45])
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(brand.primary_color)),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("ALIGN", (0, 0), (-1, 0), "CENTER"),
                ("ALIGN", (1, 1), (1, -1), "RIGHT"),
                ("ALIGN", (1, 1), (1, 1), "CENTER"),
                ("FONTNAME", (0, 0), (-1, -1), bold),
                ("FONTSIZE", (0, 0), (-1, -1), 11),
                ("TOPPADDING", (0, 0), (-1, -1), 8),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
                ("LEFTPADDING", (0, 0), (-1, -1), 12),
                ("RIGHTPADDING", (0, 0), (-1, -1), 12),
                ("GRID", (0, 0), (-1, -1), 0.4, colors.HexColor("#94A3B8")),
                ("BACKGROUND", (0, -1), (-1, -1), colors.HexColor(brand.highlight_color)),
                ("TEXTCOLOR", (1, -1), (1, -1), colors.HexColor(brand.accent_color)),
            ]
        )
    )
    return table


def _words_table(layout: InvoiceLayout, styles, usable: float) -> Table:
    brand = layout.brand
    table = Table(
        [[Paragraph("Amount in Words", styles["label"]), Paragraph(_markup(layout.amount_words or ""), styles["words"])]],
        colWidths=[usable * 0.3, usable * 0.7],
    )
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.4, colors.HexColor("#94A3B8")),
                ("BACKGROUND", (0, 0), (0, 0), colors.HexColor(brand.label_color)),
                ("TOPPADDING", (0, 0), (-1, -1), 10),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 10),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ]
        )
    )
    return table


def draw_invoice(layout: InvoiceLayout, fonts: tuple[str, str]) -> bytes:
    regular, bold = fonts
    brand = layout.brand
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=PAGE_MARGIN,
        leftMargin=PAGE_MARGIN,
        topMargin=PAGE_MARGIN,
        bottomMargin=PAGE_MARGIN,
        title=f"Invoice {layout.invoice_no}".strip(),
    )
    usable = A4[0] - 2 * PAGE_MARGIN
    styles = _styles(brand, regular, bold)

    elements: list = [
        Paragraph(_markup(brand.name), styles["title"]),
        Paragraph(_markup(brand.address), styles["body"]),
        Paragraph(_markup(f"{brand.phone}    {brand.gstin}"), styles["body"]),
        Spacer(1, 12),
    ]

    meta_table = Table(
        [[Paragraph(_markup(cell), styles["meta"]) for cell in layout.meta_cells]],
        colWidths=[usable * 0.34, usable * 0.33, usable * 0.33],
    )
    meta_table.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    elements += [meta_table, Spacer(1, 10), _items_table(layout, styles, usable, regular, bold)]

    if not layout.titles_only:
        elements += [Spacer(1, 12), _summary_table(layout, styles, usable, bold)]
        elements += [Spacer(1, 6), _words_table(layout, styles, usable)]

    if layout.notes:
        elements += [Spacer(1, 8), Paragraph(_markup(layout.notes), styles["notes"])]

    doc.build(elements)
    return buffer.getvalue()


def render_invoice_pdf(
    meta: Optional[Mapping[str, Any]],
    items: Any,
    totals: Any,
    brand: Optional[BrandProfile] = None,
    column_options: Optional[Mapping[str, Any]] = None,
    *,
    registry: Optional[BrandRegistry] = None,
    terms: Iterable[str] = (),
    place_of_supply: str = "Karnataka",
    today: Optional[datetime] = None,
) -> bytes:
    """Render one A4 invoice and return the PDF bytes."""
    if registry is None:
        registry = BrandRegistry.build(BUILTIN_BRANDS, brand.key if brand else "garani")
    brand = brand or registry.get(None)
    layout = build_invoice_layout(meta, items, totals, brand, column_options, terms, place_of_supply, today)
    return draw_invoice(layout, registry.fonts_for(brand))


def invoice_filename(meta: Optional[Mapping[str, Any]]) -> str:
    invoice_no = str((meta or {}).get("invoice_no") or "").strip()
    return f"{invoice_no or 'invoice'}.pdf"
