from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence
from urllib.parse import urlencode

import requests

logger = logging.getLogger(__name__)


class RemoteStoreError(RuntimeError):
    """Raised when the remote row store rejects a request or is unreachable."""


class RemoteNotConfiguredError(RemoteStoreError):
    """Raised when a remote call is attempted without URL/key configured."""


@dataclass(frozen=True)
class Filter:
    column: str
    operator: str
    value: Any


@dataclass(frozen=True)
class Order:
    column: str
    ascending: bool = True


def encode_filter_value(operator: str, value: Any) -> str:
    if operator == "in":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("Value for 'in' operator must be a list")
        encoded = []
        for item in value:
            if isinstance(item, bool):
                encoded.append(str(item).lower())
            elif isinstance(item, (int, float)):
                encoded.append(str(item))
            elif item is None:
                encoded.append("null")
            else:
                escaped = str(item).replace('"', '\\"')
                encoded.append(f'"{escaped}"')
        return f"in.({','.join(encoded)})"
    return f"{operator}.{value}"


def build_query(
    select: Optional[str] = None,
    filters: Iterable[Filter] = (),
    order: Optional[Order] = None,
    limit: Optional[int] = None,
    **extra: str,
) -> str:
    params: list[tuple[str, str]] = []
    if select:
        params.append(("select", select))
    for flt in filters:
        if not flt.column or not flt.operator:
            continue
        params.append((flt.column, encode_filter_value(flt.operator, flt.value)))
    if order and order.column:
        params.append(("order", f"{order.column}.{'asc' if order.ascending else 'desc'}"))
    if isinstance(limit, int):
        params.append(("limit", str(limit)))
    params.extend((key, value) for key, value in extra.items() if value)
    return urlencode(params, safe='(),."*')


class SupabaseClient:
    """Thin PostgREST client scoped to one workspace."""

    def __init__(self, url: str, key: str, workspace: str = "default", timeout: float = 15) -> None:
        self.base_url = f"{url.rstrip('/')}/rest/v1" if url else ""
        self._key = key or ""
        self.workspace = workspace or "default"
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self._key)

    def workspace_filter(self) -> Filter:
        return Filter("workspace_id", "eq", self.workspace)

    def with_workspace(self, rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        return [{"workspace_id": self.workspace, **row} for row in rows]

    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
        }
        headers.update(extra or {})
        return headers

    def _request(self, method: str, path: str, body: Any = None, headers: Optional[dict[str, str]] = None) -> Any:
        if not self.configured:
            raise RemoteNotConfiguredError("Supabase environment variables are not configured")
        url = f"{self.base_url}/{path}"
        data = json.dumps(body, default=str) if body is not None else None
        try:
            resp = requests.request(method, url, data=data, headers=self._headers(headers), timeout=self.timeout)
        except requests.RequestException as exc:
            raise RemoteStoreError(f"Supabase request failed: {exc}") from exc

        if resp.status_code >= 400:
            message = resp.reason or "Supabase request failed"
            try:
                payload = resp.json()
                if isinstance(payload, dict) and payload.get("message"):
                    message = payload["message"]
            except ValueError:
                if resp.text:
                    message = resp.text
            raise RemoteStoreError(message)

        if resp.status_code == 204 or not resp.text:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text

    def select(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        order: Optional[Order] = None,
        limit: Optional[int] = None,
        select: str = "*",
    ) -> Any:
        query = build_query(select=select, filters=filters, order=order, limit=limit)
        return self._request("GET", f"{table}?{query}" if query else table)

    def upsert(self, table: str, rows: Sequence[dict[str, Any]], on_conflict: Optional[str] = None,
               returning: str = "minimal") -> Any:
        if not isinstance(rows, (list, tuple)):
            raise ValueError("Rows for upsert must be a list")
        if not rows:
            return None
        query = build_query(on_conflict=on_conflict or "")
        return self._request(
            "POST",
            f"{table}?{query}" if query else table,
            body=list(rows),
            headers={"Prefer": f"resolution=merge-duplicates,return={returning}"},
        )

    def delete(self, table: str, filters: Iterable[Filter] = ()) -> Any:
        query = build_query(filters=filters)
        return self._request("DELETE", f"{table}?{query}" if query else table)

    def insert(self, table: str, rows: Sequence[dict[str, Any]], returning: str = "minimal") -> Any:
        if not isinstance(rows, (list, tuple)):
            raise ValueError("Rows for insert must be a list")
        if not rows:
            return None
        return self._request("POST", table, body=list(rows), headers={"Prefer": f"return={returning}"})


def persist_invoice_record(
    client: Optional[SupabaseClient],
    *,
    invoice_no: Optional[str],
    customer_name: Optional[str],
    meta: Optional[dict[str, Any]],
    items: Any,
    totals: Optional[dict[str, Any]],
    pdf_column_prefs: Optional[dict[str, Any]],
    source: str = "manual",
) -> bool:
    """Archive a generated invoice remotely. Failures are logged, never raised."""
    if client is None or not client.configured:
        return False
    if items is None:
        items = []
    elif not isinstance(items, list):
        items = [items]
    payload = {
        "workspace_id": client.workspace,
        "invoice_no": invoice_no or None,
        "customer_name": customer_name or None,
        "meta": meta or {},
        "items": items,
        "totals": totals or {},
        "pdf_column_prefs": pdf_column_prefs or {},
        "source": source or "manual",
        "created_at": datetime.utcnow().isoformat() + "Z",
    }
    try:
        client.insert("invoices", [payload])
    except RemoteStoreError as exc:
        logger.error("Failed to persist invoice record %s: %s", invoice_no, exc)
        return False
    return True
