import pytest

from invoicedesk import create_app
from invoicedesk.config import TestConfig
from invoicedesk.datasets import SYNC_EXTENSION
from invoicedesk.extensions import db
from invoicedesk.sync.client import RemoteStoreError, SupabaseClient
from invoicedesk.sync.reconciler import SyncManager


class FakeRemote(SupabaseClient):
    """In-memory stand-in for the Supabase REST API that records every call."""

    def __init__(self, tables=None):
        super().__init__("https://fake.supabase.co", "test-key", workspace="test-ws")
        self.tables = tables or {}
        self.calls = []
        self.fail_on = set()

    def _record(self, method, table, **kwargs):
        self.calls.append((method, table, kwargs))
        if method in self.fail_on:
            raise RemoteStoreError(f"{method} refused")

    def calls_for(self, method):
        return [call for call in self.calls if call[0] == method]

    def select(self, table, filters=(), order=None, limit=None, select="*"):
        self._record("select", table, filters=list(filters), order=order)
        return [dict(row) for row in self.tables.get(table, [])]

    def upsert(self, table, rows, on_conflict=None, returning="minimal"):
        self._record("upsert", table, rows=list(rows), on_conflict=on_conflict)

    def delete(self, table, filters=()):
        self._record("delete", table, filters=list(filters))

    def insert(self, table, rows, returning="minimal"):
        self._record("insert", table, rows=list(rows))


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def remote(app):
    fake = FakeRemote()
    app.extensions[SYNC_EXTENSION] = SyncManager(fake)
    return fake


@pytest.fixture
def books_csv():
    return (
        "SKU,Title,Author,Publisher,MRP,Discount,GST\n"
        "KN-001,Kannada Reader,S. Rao,Garani,250,10,5\n"
        "KN-002,Vachana Sahitya,Basava,Garani,180,,\n"
        "\n"
        "KN-003,Mysore Tales,R. K. Iyer,Sahitya,320,0,12\n"
    ).encode("utf-8")


@pytest.fixture
def customers_csv():
    return (
        "invoice_no,customer_name,billing_address,gstin,place_of_supply\n"
        "INV-101,Sapna Book House,\"Gandhinagar, Bengaluru\",29ABCDE1234F1Z5,Karnataka\n"
        "INV-102,Ankita Pustaka,Malleshwaram,,Karnataka\n"
    ).encode("utf-8")
