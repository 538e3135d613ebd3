import pytest

from invoicedesk.sync.client import Filter, SupabaseClient
from invoicedesk.sync.reconciler import (CollectionSync, SyncManager, SyncState, book_to_row, build_syncers,
                                         customer_to_row, draft_from_row, draft_to_row)
from invoicedesk.utils.normalize import normalize_book, normalize_customer

from .conftest import FakeRemote

REMOTE_BOOKS = [
    {"workspace_id": "test-ws", "uid": "kn-001", "sku": "KN-001", "title": "Kannada Reader", "mrp": 250},
    {"workspace_id": "test-ws", "uid": "kn-002", "sku": "KN-002", "title": "Vachana Sahitya", "mrp": 180},
]


class LocalCollection:
    """Mimics local persistence: every write is reported back to the syncer."""

    def __init__(self):
        self.items = []
        self.syncer = None

    def set(self, items):
        self.items = list(items)
        if self.syncer is not None:
            self.syncer.observe(self.items)


@pytest.fixture
def remote():
    return FakeRemote({"books": [dict(row) for row in REMOTE_BOOKS]})


@pytest.fixture
def books(remote):
    return build_syncers(remote)["books"]


@pytest.fixture
def local(books):
    collection = LocalCollection()
    collection.syncer = books
    return collection


class TestLoad:
    def test_load_replaces_local_and_sets_baseline(self, books, local, remote):
        rows = books.load(local.set)
        assert [book["uid"] for book in local.items] == ["kn-001", "kn-002"]
        assert rows == local.items
        assert books.baseline == {"kn-001", "kn-002"}
        method, table, kwargs = remote.calls[0]
        assert (method, table) == ("select", "books")
        assert kwargs["filters"] == [Filter("workspace_id", "eq", "test-ws")]
        assert kwargs["order"].column == "title"

    def test_load_echo_is_not_pushed(self, books, local, remote):
        books.load(local.set)
        assert books.state is SyncState.idle
        assert remote.calls_for("upsert") == []

    def test_echo_suppressed_when_setter_does_not_report(self, books, remote):
        books.load(lambda rows: None)
        assert books.state is SyncState.suppress_echo
        assert books.observe([]) is False
        assert books.state is SyncState.idle
        assert remote.calls_for("delete") == []

    def test_load_failure_sets_error(self, books, remote):
        remote.fail_on.add("select")
        received = []
        assert books.load(received.append) is None
        assert received == []
        assert books.state is SyncState.error
        assert books.status()["error"] == "select refused"

    def test_changes_before_load_are_not_pushed(self, books, remote):
        assert books.observe([normalize_book({"sku": "X"})]) is False
        assert remote.calls == []


class TestPush:
    def test_removing_one_item_deletes_only_that_identity(self, books, local, remote):
        books.load(local.set)
        local.set([item for item in local.items if item["uid"] != "kn-002"])

        upserts = remote.calls_for("upsert")
        deletes = remote.calls_for("delete")
        assert len(upserts) == 1
        assert [row["uid"] for row in upserts[0][2]["rows"]] == ["kn-001"]
        assert upserts[0][2]["on_conflict"] == "workspace_id,uid"
        assert len(deletes) == 1
        assert deletes[0][2]["filters"] == [Filter("workspace_id", "eq", "test-ws"), Filter("uid", "in", ["kn-002"])]
        assert books.baseline == {"kn-001"}
        assert books.state is SyncState.idle
        assert books.last_synced_at

    def test_bulk_upsert_rows_share_one_key_set(self, books, local, remote):
        books.load(local.set)
        local.set([
            normalize_book({"sku": "KN-002", "title": "Vachana Sahitya", "mrp": 180, "gst": ""}),
            normalize_book({"sku": "KN-004", "title": "Hampi Guide", "mrp": 90, "gst": 5}),
        ])
        rows = remote.calls_for("upsert")[0][2]["rows"]
        assert len(rows) == 2
        assert set(rows[0]) == set(rows[1])
        assert rows[0]["default_tax_pct"] is None
        assert rows[1]["default_tax_pct"] == 5.0
        assert all(row["created_at"] for row in rows)
        assert books.state is SyncState.idle

    def test_upsert_rows_are_workspace_scoped_and_stamped(self, books, local, remote):
        books.load(local.set)
        local.set(local.items + [normalize_book({"sku": "KN-003", "title": "Mysore Tales"})])
        rows = remote.calls_for("upsert")[0][2]["rows"]
        assert all(row["workspace_id"] == "test-ws" for row in rows)
        assert all(row["updated_at"] for row in rows)
        assert remote.calls_for("delete") == []

    def test_emptying_collection_clears_workspace(self, books, local, remote):
        books.load(local.set)
        local.set([])
        deletes = remote.calls_for("delete")
        assert remote.calls_for("upsert") == []
        assert len(deletes) == 1
        assert deletes[0][2]["filters"] == [Filter("workspace_id", "eq", "test-ws")]
        assert books.baseline == set()

    def test_empty_baseline_and_empty_collection_is_a_noop(self):
        syncer = build_syncers(FakeRemote())["books"]
        syncer.load(lambda rows: None)
        syncer.observe([])
        syncer.observe([])
        assert syncer.client.calls_for("delete") == []

    def test_push_failure_keeps_baseline_and_recovers(self, books, local, remote):
        books.load(local.set)
        remote.fail_on.add("upsert")
        local.set(local.items[:1])
        assert books.state is SyncState.error
        assert books.status()["error"] == "upsert refused"
        assert books.baseline == {"kn-001", "kn-002"}

        remote.fail_on.clear()
        local.set(local.items)
        assert books.state is SyncState.idle
        assert books.status()["error"] is None
        assert books.baseline == {"kn-001"}


class TestDisabled:
    def test_unconfigured_syncer_is_disabled(self):
        syncer = build_syncers(SupabaseClient("", ""))["books"]
        assert syncer.state is SyncState.disabled
        assert syncer.load(lambda rows: None) is None
        assert syncer.observe([{"uid": "a"}]) is False
        status = syncer.status()
        assert status["available"] is False
        assert status["loading"] is False
        assert status["state"] == "disabled"


class TestManager:
    def test_ensure_loaded_runs_once(self, remote):
        manager = SyncManager(remote)
        received = []
        manager.ensure_loaded("books", received.append)
        manager.ensure_loaded("books", received.append)
        assert len(received) == 1
        assert len(remote.calls_for("select")) == 1

    def test_refresh_always_reloads(self, remote):
        manager = SyncManager(remote)
        manager.refresh("books", lambda rows: None)
        manager.refresh("books", lambda rows: None)
        assert len(remote.calls_for("select")) == 2

    def test_status_per_collection(self, remote):
        manager = SyncManager(remote)
        assert set(manager.status()) == {"books", "customers", "drafts"}
        assert manager.status()["drafts"]["state"] == "loading"

    def test_unknown_collection(self, remote):
        with pytest.raises(KeyError):
            SyncManager(remote).get("invoices")

    def test_from_config(self):
        manager = SyncManager.from_config({"SUPABASE_URL": "https://x.supabase.co", "SUPABASE_ANON_KEY": "k"})
        assert manager.configured
        assert manager.client.workspace == "default"


class TestRowMappers:
    def test_book_row_sends_unset_values_as_null(self):
        row = book_to_row(normalize_book({"sku": "A", "title": "B"}))
        assert row["uid"] == "a"
        assert row["default_tax_pct"] is None
        assert row["created_at"] is None

    def test_customer_rows_share_columns(self):
        sparse = customer_to_row(normalize_customer({"name": "Sapna"}))
        full = customer_to_row({**normalize_customer({"invoice_no": "INV-1", "gstin": "29AB"}),
                                "created_at": "2024-03-01T00:00:00Z"})
        assert set(sparse) == set(full)

    def test_draft_identity_travels_as_uid(self):
        draft = {"id": "d1", "label": "March", "meta": {}, "lines": [{"title": "x"}], "pdf_column_prefs": {},
                 "created_at": "2024-03-01", "updated_at": "2024-03-02"}
        row = draft_to_row(draft)
        assert row["uid"] == "d1"
        assert "id" not in row
        assert draft_from_row(row) == draft


def test_collection_sync_custom_conflict_target():
    remote = FakeRemote({"drafts": []})
    syncer = CollectionSync("drafts", remote, identity=lambda d: d["id"], from_row=draft_from_row,
                            to_row=draft_to_row, conflict_target="workspace_id,uid")
    syncer.load(lambda rows: None)
    syncer.observe([])
    syncer.observe([{"id": "d1", "label": "x"}])
    assert remote.calls_for("upsert")[0][2]["rows"][0]["uid"] == "d1"
