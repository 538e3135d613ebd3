from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping


def to_number(value: Any, default: float = 0.0) -> float:
    """Coerce CSV/form input to a finite float, falling back to ``default``."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    return number if math.isfinite(number) else default


def is_present(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def _pick(item: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


@dataclass(frozen=True)
class LineComputation:
    effective_rate: float
    gross: float
    discount: float
    taxable: float
    tax: float
    net: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass
class InvoiceTotals:
    amount: float = 0.0
    discount: float = 0.0
    taxable: float = 0.0
    tax: float = 0.0
    net: float = 0.0
    qty: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def line_quantity(item: Mapping[str, Any]) -> float:
    return to_number(_pick(item, "qty", "quantity"), 1.0)


def line_discount_pct(item: Mapping[str, Any]) -> float:
    return to_number(_pick(item, "discount_pct", "discount_percent"))


def line_tax_pct(item: Mapping[str, Any]) -> float:
    return to_number(_pick(item, "tax_pct", "tax_percent"))


def compute_line(item: Mapping[str, Any]) -> LineComputation:
    """Monetary breakdown for one invoice line. Nothing is rounded here."""
    qty = line_quantity(item)
    mrp = to_number(_pick(item, "mrp", "list_price"))
    rate = _pick(item, "rate")
    discount_pct = line_discount_pct(item)
    tax_pct = line_tax_pct(item)

    effective_rate = to_number(rate) if is_present(rate) else mrp
    gross = qty * effective_rate
    discount = gross * discount_pct / 100
    taxable = gross - discount
    tax = taxable * tax_pct / 100
    net = taxable + tax
    return LineComputation(
        effective_rate=effective_rate,
        gross=gross,
        discount=discount,
        taxable=taxable,
        tax=tax,
        net=net,
    )


def aggregate(items: Iterable[Mapping[str, Any]]) -> InvoiceTotals:
    """Fold ``compute_line`` over ``items`` in input order."""
    totals = InvoiceTotals()
    for item in items:
        line = compute_line(item)
        totals.amount += line.gross
        totals.discount += line.discount
        totals.taxable += line.taxable
        totals.tax += line.tax
        totals.net += line.net
        totals.qty += line_quantity(item)
    return totals
