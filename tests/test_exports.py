import io
from datetime import datetime
from zipfile import ZipFile

import pytest

from invoicedesk.utils.exports import (BatchPreconditionError, archive_filename, build_customer_items,
                                       generate_batch_zip)

CATALOG = [
    {"uid": "kn-001", "sku": "KN-001", "title": "Kannada Reader", "author": "S. Rao", "publisher": "Garani",
     "mrp": 250.0, "default_discount_pct": 10.0, "default_tax_pct": 5.0},
    {"uid": "mysore-tales", "sku": "", "title": "Mysore Tales", "author": "", "publisher": "",
     "mrp": 320.0, "default_discount_pct": 0.0, "default_tax_pct": None},
]

SHARED = [{"title": "Shared Book", "qty": 1, "mrp": 100, "tax_pct": 18, "order": 1}]


class TestCustomerItems:
    def test_matches_by_sku_with_catalog_defaults(self):
        rows = [{"invoice_no": 101, "sku_or_title": "KN-001", "qty": 3}]
        items = build_customer_items({"invoice_no": "101"}, rows, CATALOG, SHARED, 18)
        assert len(items) == 1
        item = items[0]
        assert item["title"] == "Kannada Reader"
        assert item["author"] == "S. Rao"
        assert item["qty"] == 3.0
        assert item["mrp"] == 250.0
        assert item["rate"] == ""
        assert item["discount_pct"] == 10.0
        assert item["tax_pct"] == 5.0

    def test_matches_title_case_insensitively_and_applies_overrides(self):
        rows = [{
            "invoice_no": "INV-1", "sku_or_title": "mysore TALES", "rate_override": 300,
            "discount_pct_override": 2, "tax_pct_override": 0,
        }]
        item = build_customer_items({"invoice_no": "INV-1"}, rows, CATALOG, SHARED, 18)[0]
        assert item["title"] == "Mysore Tales"
        assert item["mrp"] == 320.0
        assert item["rate"] == "300"
        assert item["discount_pct"] == 2.0
        assert item["tax_pct"] == 0.0

    def test_unknown_reference_keeps_row_values(self):
        rows = [{"invoice_no": "INV-1", "sku_or_title": "Loose Leaf", "rate_override": 45}]
        item = build_customer_items({"invoice_no": "INV-1"}, rows, CATALOG, SHARED, 12)[0]
        assert item["title"] == "Loose Leaf"
        assert item["mrp"] == 45.0
        assert item["tax_pct"] == 12.0
        assert item["qty"] == 1.0

    def test_falls_back_to_shared_lines(self):
        rows = [{"invoice_no": "OTHER", "sku_or_title": "KN-001"}]
        assert build_customer_items({"invoice_no": "INV-1"}, rows, CATALOG, SHARED, 18) == SHARED
        assert build_customer_items({"invoice_no": "INV-1"}, [], CATALOG, SHARED, 18) == SHARED

    def test_fallback_can_be_disabled(self):
        assert build_customer_items({"invoice_no": "INV-1"}, [], CATALOG, SHARED, 18, reuse_shared_lines=False) == []


class TestBatchZip:
    @pytest.fixture
    def customers(self):
        return [
            {"invoice_no": "INV-2", "customer_name": "Ankita Pustaka"},
            {"invoice_no": "INV-1", "customer_name": "Sapna Book House"},
        ]

    def test_requires_customers(self):
        with pytest.raises(BatchPreconditionError, match="customers"):
            generate_batch_zip([], [], CATALOG, SHARED, 18)

    def test_one_pdf_per_customer_in_input_order(self, customers):
        result = generate_batch_zip(customers, [], CATALOG, SHARED, 18, now=datetime(2024, 3, 5, 9, 7))
        assert result.filename == "invoices_20240305_0907.zip"
        assert result.rendered == ["INV-2.pdf", "INV-1.pdf"]
        with ZipFile(io.BytesIO(result.content)) as archive:
            assert archive.namelist() == ["INV-2.pdf", "INV-1.pdf"]
            assert archive.read("INV-1.pdf").startswith(b"%PDF")

    def test_duplicate_invoice_numbers_get_suffix(self):
        customers = [{"invoice_no": "INV-1"}, {"invoice_no": "INV-1"}, {}]
        result = generate_batch_zip(customers, [], CATALOG, SHARED, 18)
        assert result.rendered == ["INV-1.pdf", "INV-1_2.pdf", "invoice.pdf"]

    def test_customers_without_items_skipped_when_fallback_off(self, customers):
        rows = [{"invoice_no": "INV-1", "sku_or_title": "KN-001"}]
        result = generate_batch_zip(customers, rows, CATALOG, SHARED, 18, reuse_shared_lines=False)
        assert result.rendered == ["INV-1.pdf"]
        assert result.skipped == ["INV-2"]

    def test_nothing_to_render(self, customers):
        with pytest.raises(BatchPreconditionError):
            generate_batch_zip(customers, [], CATALOG, SHARED, 18, reuse_shared_lines=False)


def test_archive_filename():
    assert archive_filename(datetime(2025, 12, 31, 23, 59)) == "invoices_20251231_2359.zip"
