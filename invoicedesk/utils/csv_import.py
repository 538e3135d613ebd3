from __future__ import annotations

import csv
import io
import re
from typing import IO, Any

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")


class CSVImportError(ValueError):
    """Raised when an uploaded file cannot be read as CSV."""


def coerce_cell(value: Any) -> Any:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if _INT_RE.match(text):
        digits = text.lstrip("+-")
        if len(digits) > 1 and digits.startswith("0"):
            return text
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    return text


def read_csv_rows(stream: IO[bytes] | IO[str] | bytes | str) -> list[dict[str, Any]]:
    """Header-keyed rows with blank lines skipped and numeric cells typed.

    Leading-zero integers (pin codes, phone numbers) stay as text.
    """
    if isinstance(stream, (bytes, bytearray)):
        raw = bytes(stream)
    elif isinstance(stream, str):
        raw = stream
    else:
        raw = stream.read()
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise CSVImportError("File is not UTF-8 encoded CSV.") from exc

    try:
        reader = csv.DictReader(io.StringIO(raw))
        if not reader.fieldnames:
            return []
        reader.fieldnames = [(name or "").strip() for name in reader.fieldnames]
        rows = []
        for record in reader:
            cells = {key: coerce_cell(value) for key, value in record.items() if key}
            if all(value is None for value in cells.values()):
                continue
            rows.append(cells)
    except csv.Error as exc:
        raise CSVImportError(f"Unable to parse CSV: {exc}") from exc
    return rows


def rows_from_upload(upload, body: bytes = b"") -> list[dict[str, Any]]:
    """Rows from a multipart ``file`` upload, or from a raw CSV request body."""
    if upload is not None:
        return read_csv_rows(upload.stream)
    if body:
        return read_csv_rows(body)
    raise CSVImportError("No CSV file uploaded.")
