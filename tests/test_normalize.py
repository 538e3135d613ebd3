"""Tests for book/customer normalization and identity-based upserts."""

import pytest

from invoicedesk.utils.csv_import import CSVImportError, coerce_cell, read_csv_rows
from invoicedesk.utils.normalize import (book_key, merge_all, normalize_book, normalize_customer,
                                         normalize_line_item, slugify, upsert_book, upsert_customer)


class TestNormalizeBook:
    @pytest.fixture
    def raw_book(self):
        return {"SKU": "KN-001", "Book Title": "  Kannada Reader ", "Author": "S. Rao", "MRP": "250", "GST": 5}

    def test_synonyms_and_trimming(self, raw_book):
        book = normalize_book(raw_book)
        assert book["sku"] == "KN-001"
        assert book["title"] == "Kannada Reader"
        assert book["author"] == "S. Rao"
        assert book["publisher"] == ""
        assert book["mrp"] == 250.0
        assert book["default_tax_pct"] == 5.0
        assert book["default_discount_pct"] == 0.0
        assert book["uid"] == "kn-001"

    def test_title_slug_when_no_sku(self):
        assert normalize_book({"title": "Mysore Tales!"})["uid"] == "mysore-tales"

    def test_random_uid_when_no_identity(self):
        book = normalize_book({"author": "Anonymous"})
        assert book["uid"].startswith("book-")

    def test_missing_tax_stays_unset(self):
        assert normalize_book({"title": "Vachana"})["default_tax_pct"] is None

    def test_idempotent(self, raw_book):
        once = normalize_book(raw_book)
        assert normalize_book(once) == once

    def test_idempotent_with_random_uid(self):
        once = normalize_book({"publisher": "Garani"})
        assert normalize_book(once) == once

    def test_integer_floats_render_as_text(self):
        assert normalize_book({"isbn": 9788123456789.0, "title": "x"})["sku"] == "9788123456789"


class TestNormalizeCustomer:
    def test_shipping_defaults_to_billing(self):
        customer = normalize_customer({"Invoice No": "INV-001", "Name": "Sapna", "Address": "Gandhinagar"})
        assert customer["invoice_no"] == "INV-001"
        assert customer["customer_name"] == "Sapna"
        assert customer["shipping_address"] == "Gandhinagar"
        assert customer["uid"] == "inv-001"

    def test_identity_falls_back_to_gstin_then_name(self):
        assert normalize_customer({"gstin": "29ABCDE1234F1Z5", "name": "A"})["uid"] == "29abcde1234f1z5"
        assert normalize_customer({"customer_name": "Ankita Pustaka"})["uid"] == "ankita-pustaka"

    def test_idempotent(self):
        once = normalize_customer({"invoice_no": 101, "customer_name": "Sapna", "email": "a@b.in"})
        assert once["invoice_no"] == "101"
        assert normalize_customer(once) == once


class TestUpsert:
    def test_same_sku_updates_in_place(self):
        catalog, _, created = upsert_book([], {"sku": "KN-001", "title": "Reader", "mrp": 200})
        assert created
        catalog, record, created = upsert_book(catalog, {"sku": "kn 001", "title": "Reader 2nd Ed", "mrp": 220})
        assert not created
        assert len(catalog) == 1
        assert record["uid"] == "kn-001"
        assert record["title"] == "Reader 2nd Ed"
        assert record["mrp"] == 220.0

    def test_keeps_created_at(self):
        catalog, first, _ = upsert_book([], {"sku": "A"})
        catalog, second, _ = upsert_book(catalog, {"sku": "A", "title": "B"})
        assert second["created_at"] == first["created_at"]
        assert "updated_at" in second

    def test_input_collection_not_mutated(self):
        original = [normalize_book({"sku": "A"})]
        upsert_book(original, {"sku": "B"})
        assert len(original) == 1

    def test_matches_on_existing_uid(self):
        customers, _, _ = upsert_customer([], {"uid": "cust-1", "customer_name": "Old Name"})
        customers, record, created = upsert_customer(customers, {"uid": "cust-1", "customer_name": "New Name"})
        assert not created
        assert len(customers) == 1
        assert record["customer_name"] == "New Name"

    def test_partial_candidate_keeps_stored_fields(self):
        catalog = [normalize_book({"sku": "KN-001", "title": "Kannada Reader", "mrp": 250, "gst": 5,
                                   "publisher": "Garani"})]
        catalog, record, created = upsert_book(catalog, {"sku": "KN-001", "author": "S. Rao (ed.)"})
        assert not created
        assert record["author"] == "S. Rao (ed.)"
        assert record["title"] == "Kannada Reader"
        assert record["mrp"] == 250.0
        assert record["default_tax_pct"] == 5.0
        assert record["publisher"] == "Garani"

    def test_blank_cells_do_not_clear_stored_fields(self):
        customers, _, _ = upsert_customer([], {"invoice_no": "INV-001", "name": "Sapna", "email": "a@b.in"})
        customers, record, _ = upsert_customer(customers, {"Invoice No": "INV-001", "Email": "", "Phone": "98450"})
        assert record["customer_name"] == "Sapna"
        assert record["email"] == "a@b.in"
        assert record["phone"] == "98450"

    def test_merge_all_counts(self):
        rows = [{"sku": "A"}, {"sku": "B"}, {"sku": "a"}]
        catalog, created, updated = merge_all([], rows, upsert_book)
        assert (len(catalog), created, updated) == (2, 2, 1)


class TestLineItems:
    def test_blank_rate_and_defaults(self):
        line = normalize_line_item({"title": "Reader", "mrp": "250", "rate": "  "})
        assert line["rate"] == ""
        assert line["qty"] == 1.0
        assert "order" not in line

    def test_order_kept(self):
        assert normalize_line_item({"title": "x", "order": "3"})["order"] == 3.0
        assert normalize_line_item({"title": "x"}, order=4)["order"] == 4.0


class TestCSV:
    def test_rows_are_typed_and_blank_lines_skipped(self):
        rows = read_csv_rows(b"\xef\xbb\xbfsku , qty,pin\nA,2,0560\n,,\nB,1.5,\n")
        assert rows == [{"sku": "A", "qty": 2, "pin": "0560"}, {"sku": "B", "qty": 1.5, "pin": None}]

    def test_coerce_cell(self):
        assert coerce_cell("true") is True
        assert coerce_cell("  ") is None
        assert coerce_cell("-3") == -3

    def test_non_utf8_rejected(self):
        with pytest.raises(CSVImportError):
            read_csv_rows(b"\xff\xfe\x00a")

    def test_empty_file(self):
        assert read_csv_rows("") == []


def test_slug_helpers():
    assert slugify(" Kannada  Reader ") == "kannada-reader"
    assert book_key({"sku": "", "title": ""}) is None
