import unittest
from datetime import datetime

from quoteflow.errors import ValidationError
from quoteflow.money import MAX_AMOUNT_CENTS, format_cents, parse_amount
from quoteflow.time_utils import parse_iso_datetime, to_utc_z
from quoteflow.validation import coerce_int, parse_item_ids, validate_item_payload, validate_items


class MoneyTests(unittest.TestCase):
    def test_parse_amount(self):
        self.assertEqual(parse_amount("12.50"), 1250)
        self.assertEqual(parse_amount("12.5"), 1250)
        self.assertEqual(parse_amount(7), 700)
        self.assertEqual(parse_amount(0.1), 10)

    def test_parse_amount_rejects_sub_cent(self):
        with self.assertRaises(ValidationError):
            parse_amount("1.005")

    def test_parse_amount_rejects_non_numbers(self):
        for value in ("abc", "NaN", "Infinity", True, None):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    parse_amount(value)

    def test_format_cents(self):
        self.assertEqual(format_cents(123456), "1234.56")
        self.assertEqual(format_cents(5), "0.05")
        self.assertEqual(format_cents(-5), "-0.05")
        self.assertIsNone(format_cents(None))


class CoercionTests(unittest.TestCase):
    def test_coerce_int(self):
        self.assertEqual(coerce_int(" 42 ", "n"), 42)
        self.assertEqual(coerce_int(-3, "n"), -3)

    def test_coerce_int_rejects(self):
        for value in (True, 1.0, "1.0", "1e3", "", "x", None):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    coerce_int(value, "n")

    def test_parse_item_ids(self):
        self.assertIsNone(parse_item_ids(None))
        self.assertEqual(parse_item_ids(["3", 4]), (3, 4))
        self.assertEqual(parse_item_ids([]), ())
        with self.assertRaises(ValidationError):
            parse_item_ids("1,2")

    def test_item_payload_line_total(self):
        item = validate_item_payload(
            {"product_id": 9, "product_name": " Cable ", "quantity": "3", "unit_price": "2.25"},
            index=0,
        )
        self.assertEqual(item["product_id"], "9")
        self.assertEqual(item["product_name"], "Cable")
        self.assertEqual(item["unit_price_cents"], 225)
        self.assertEqual(item["line_total_cents"], 675)
        self.assertIsNone(item["product_sku"])

    def test_item_text_fields_respect_column_lengths(self):
        base = {"product_id": "P-1", "product_name": "Cable", "quantity": 1, "unit_price_cents": 100}
        cases = {
            "product_id": "X" * 65,
            "product_name": "N" * 256,
            "product_sku": "S" * 65,
        }
        for key, value in cases.items():
            with self.subTest(field=key):
                with self.assertRaises(ValidationError) as ctx:
                    validate_item_payload({**base, key: value}, index=2)
                self.assertIn(f"items[2].{key} exceeds max length", ctx.exception.message)

        item = validate_item_payload({**base, "product_id": "X" * 64, "product_sku": "S" * 64}, index=0)
        self.assertEqual(len(item["product_id"]), 64)

    def test_line_total_capped(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_item_payload(
                {"product_id": "P-1", "product_name": "Bulk", "quantity": 1_000_000, "unit_price_cents": 1000},
                index=0,
            )
        self.assertIn("line total", ctx.exception.message)

        item = validate_item_payload(
            {"product_id": "P-1", "product_name": "Bulk", "quantity": 999_999, "unit_price_cents": 1000},
            index=0,
        )
        self.assertEqual(item["line_total_cents"], MAX_AMOUNT_CENTS - 999)

    def test_quotation_total_capped(self):
        line = {"product_id": "P-1", "product_name": "Bulk", "quantity": 6, "unit_price_cents": 100_000_000}
        with self.assertRaises(ValidationError) as ctx:
            validate_items([line, dict(line, product_id="P-2")])
        self.assertIn("quotation total", ctx.exception.message)
        self.assertEqual(len(validate_items([line])), 1)


class TimeTests(unittest.TestCase):
    def test_offsets_normalized_to_utc(self):
        self.assertEqual(
            parse_iso_datetime("2026-03-01T10:00:00+02:00"),
            datetime(2026, 3, 1, 8, 0, 0),
        )
        self.assertEqual(parse_iso_datetime("2026-03-01T10:00:00Z"), datetime(2026, 3, 1, 10, 0, 0))
        self.assertIsNone(parse_iso_datetime("  "))

    def test_to_utc_z(self):
        self.assertEqual(to_utc_z(datetime(2026, 3, 1, 8, 0, 0, 999)), "2026-03-01T08:00:00Z")


if __name__ == "__main__":
    unittest.main()
