"""Local-first reconciliation of working collections with the remote store.

Each synced collection (books, customers, drafts) gets one
``CollectionSync``. Loading replaces the local collection with the remote
rows (remote wins at load time). Every later local change is pushed as an
upsert of all current rows followed by a delete of the identities that
disappeared since the last successful sync.
"""

from __future__ import annotations

import enum
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from ..utils.normalize import normalize_book, normalize_customer
from .client import Filter, Order, RemoteStoreError, SupabaseClient

logger = logging.getLogger(__name__)

Row = dict[str, Any]
Setter = Callable[[list[Row]], Any]


class SyncState(enum.Enum):
    disabled = "disabled"
    loading = "loading"
    suppress_echo = "suppress_echo"
    idle = "idle"
    syncing = "syncing"
    error = "error"


def _now_iso() -> str:
    return datetime.utcnow().isoformat(timespec="milliseconds") + "Z"


class CollectionSync:
    def __init__(
        self,
        table: str,
        client: SupabaseClient,
        identity: Callable[[Row], Any],
        from_row: Callable[[Row], Row],
        to_row: Callable[[Row], Row],
        conflict_target: str = "workspace_id,uid",
        order_by: Optional[Order] = None,
    ) -> None:
        self.table = table
        self.client = client
        self.identity = identity
        self.from_row = from_row
        self.to_row = to_row
        self.conflict_target = conflict_target
        self.order_by = order_by

        self.state = SyncState.loading if client.configured else SyncState.disabled
        self.error: Optional[str] = None
        self.last_synced_at: Optional[str] = None
        self.loaded = False
        self._baseline: list[Any] = []
        self._lock = threading.Lock()

    @property
    def baseline(self) -> set[Any]:
        return set(self._baseline)

    def _fail(self, action: str, exc: RemoteStoreError) -> None:
        logger.exception("Supabase %s failed for %s", action, self.table)
        self.state = SyncState.error
        self.error = str(exc) or exc.__class__.__name__

    def load(self, setter: Setter) -> Optional[list[Row]]:
        """Fetch the workspace rows and hand them to ``setter``.

        The setter is expected to persist the rows locally and report the
        change back through :meth:`observe`; that first observation is the
        echo of the load and is not pushed.
        """
        if not self.client.configured:
            self.state = SyncState.disabled
            return None
        with self._lock:
            self.state = SyncState.loading
            self.error = None
            try:
                data = self.client.select(self.table, filters=[self.client.workspace_filter()], order=self.order_by)
            except RemoteStoreError as exc:
                self._fail("load", exc)
                return None
            mapped = [self.from_row(row) for row in data] if isinstance(data, list) else []
            self._baseline = [self.identity(item) for item in mapped]
            self.state = SyncState.suppress_echo
            self.loaded = True
            self.last_synced_at = _now_iso()
        setter(mapped)
        return mapped

    def observe(self, items: Iterable[Row]) -> bool:
        """React to a local change. Returns True when a push was attempted."""
        if not self.client.configured or not self.loaded:
            return False
        items = list(items)
        with self._lock:
            if self.state is SyncState.suppress_echo:
                self.state = SyncState.idle
                return False
            self._push(items)
        return True

    def _push(self, items: list[Row]) -> None:
        current = [self.identity(item) for item in items]
        current_set = set(current)
        removed = [uid for uid in self._baseline if uid not in current_set]
        rows = self.client.with_workspace(self.to_row(item) for item in items)
        stamp = _now_iso()
        for row in rows:
            row["created_at"] = row.get("created_at") or stamp
            row["updated_at"] = row.get("updated_at") or stamp

        self.state = SyncState.syncing
        self.error = None
        workspace = self.client.workspace_filter()
        try:
            if rows:
                self.client.upsert(self.table, rows, on_conflict=self.conflict_target)
            if not rows and self._baseline:
                # an emptied collection clears the whole workspace, orphans included
                self.client.delete(self.table, [workspace])
            elif removed:
                self.client.delete(self.table, [workspace, Filter("uid", "in", removed)])
        except RemoteStoreError as exc:
            self._fail("sync", exc)
            return
        self._baseline = current
        self.state = SyncState.idle
        self.last_synced_at = _now_iso()

    def status(self) -> dict[str, Any]:
        return {
            "available": self.client.configured,
            "loading": self.state is SyncState.loading and self.client.configured,
            "syncing": self.state is SyncState.syncing,
            "error": self.error if self.state is SyncState.error else None,
            "last_synced_at": self.last_synced_at,
            "state": self.state.value,
        }


# Row mappers: every row of a table carries the same columns, None for null.

def book_to_row(book: Row) -> Row:
    return {
        "uid": book.get("uid"),
        "sku": book.get("sku") or "",
        "title": book.get("title") or "",
        "author": book.get("author") or "",
        "publisher": book.get("publisher") or "",
        "mrp": book.get("mrp") or 0,
        "default_discount_pct": book.get("default_discount_pct") or 0,
        "default_tax_pct": book.get("default_tax_pct"),
        "created_at": book.get("created_at"),
        "updated_at": book.get("updated_at"),
    }


CUSTOMER_COLUMNS = (
    "invoice_no", "customer_name", "billing_address", "shipping_address", "gstin", "pan",
    "place_of_supply", "email", "phone", "invoice_date", "due_date", "notes",
)


def customer_to_row(customer: Row) -> Row:
    row = {"uid": customer.get("uid")}
    row.update({column: customer.get(column) or "" for column in CUSTOMER_COLUMNS})
    row["created_at"] = customer.get("created_at")
    row["updated_at"] = customer.get("updated_at")
    return row


def draft_to_row(draft: Row) -> Row:
    return {
        "uid": draft.get("id"),
        "label": draft.get("label") or "",
        "meta": draft.get("meta") or {},
        "lines": draft.get("lines") or [],
        "pdf_column_prefs": draft.get("pdf_column_prefs") or {},
        "created_at": draft.get("created_at"),
        "updated_at": draft.get("updated_at"),
    }


def draft_from_row(row: Row) -> Row:
    return {
        "id": row.get("uid") or row.get("id"),
        "label": row.get("label") or "",
        "meta": row.get("meta") or {},
        "lines": row.get("lines") or [],
        "pdf_column_prefs": row.get("pdf_column_prefs") or {},
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
    }


def build_syncers(client: SupabaseClient) -> dict[str, CollectionSync]:
    return {
        "books": CollectionSync(
            "books", client,
            identity=lambda book: book.get("uid"),
            from_row=normalize_book,
            to_row=book_to_row,
            order_by=Order("title"),
        ),
        "customers": CollectionSync(
            "customers", client,
            identity=lambda customer: customer.get("uid"),
            from_row=normalize_customer,
            to_row=customer_to_row,
            order_by=Order("invoice_no"),
        ),
        "drafts": CollectionSync(
            "drafts", client,
            identity=lambda draft: draft.get("id"),
            from_row=draft_from_row,
            to_row=draft_to_row,
            order_by=Order("updated_at", ascending=False),
        ),
    }


class SyncManager:
    """Owns the remote client and one syncer per collection."""

    def __init__(self, client: SupabaseClient, syncers: Optional[dict[str, CollectionSync]] = None) -> None:
        self.client = client
        self.syncers = syncers if syncers is not None else build_syncers(client)

    @classmethod
    def from_config(cls, config) -> "SyncManager":
        client = SupabaseClient(
            config.get("SUPABASE_URL", ""),
            config.get("SUPABASE_ANON_KEY", ""),
            workspace=config.get("SUPABASE_WORKSPACE", "default"),
            timeout=config.get("SUPABASE_TIMEOUT", 15),
        )
        return cls(client)

    @property
    def configured(self) -> bool:
        return self.client.configured

    def get(self, name: str) -> CollectionSync:
        try:
            return self.syncers[name]
        except KeyError:
            raise KeyError(f"Unknown synced collection: {name}") from None

    def ensure_loaded(self, name: str, setter: Setter) -> None:
        """First read of a collection pulls the remote copy once."""
        syncer = self.syncers.get(name)
        if syncer is None or syncer.loaded or syncer.state is not SyncState.loading:
            return
        syncer.load(setter)

    def refresh(self, name: str, setter: Setter) -> Optional[list[Row]]:
        return self.get(name).load(setter)

    def observe(self, name: str, items: Iterable[Row]) -> bool:
        syncer = self.syncers.get(name)
        return syncer.observe(items) if syncer else False

    def status(self) -> dict[str, dict[str, Any]]:
        return {name: syncer.status() for name, syncer in self.syncers.items()}
