import unittest
from datetime import datetime, timezone

from flowbuilder.domain.contracts import QuoteLine
from flowbuilder.domain.inputs import (
    MAX_INTEGER,
    parse_deadline,
    parse_email,
    parse_material_lines,
    parse_number,
    parse_positive_int,
    parse_quote_input,
    parse_rfq_input,
    parse_supplier_ids,
    parse_timestamp,
)
from flowbuilder.errors import ValidationError


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class MaterialSelectionParsingTest(unittest.TestCase):
    def test_list_shape(self) -> None:
        lines = parse_material_lines([{"material_id": 5, "quantity": 100}, {"id": "7", "quantity": "2.5"}])
        self.assertEqual([(line.material_id, line.quantity) for line in lines], [(5, 100.0), (7, 2.5)])

    def test_keyed_shape_skips_unselected_entries(self) -> None:
        lines = parse_material_lines(
            {
                "5": {"selected": True, "quantity": 100},
                "6": {"selected": "off", "quantity": 3},
                "8": {"quantity": 1},
            }
        )
        self.assertEqual({line.material_id for line in lines}, {5, 8})

    def test_duplicate_material_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_material_lines([{"material_id": 5, "quantity": 1}, {"material_id": 5, "quantity": 2}])
        self.assertEqual(ctx.exception.code, "duplicate_material")

    def test_quantity_must_be_positive(self) -> None:
        for quantity in (0, -1, "abc", None):
            with self.assertRaises(ValidationError):
                parse_material_lines([{"material_id": 5, "quantity": quantity}])

    def test_supplier_ids_accept_lists_and_checkbox_maps(self) -> None:
        self.assertEqual(parse_supplier_ids([3, "4", {"company_id": 9}, 3]), (3, 4, 9))
        self.assertEqual(parse_supplier_ids({"3": "on", "4": "", "5": True}), (3, 5))


class NumberParsingTest(unittest.TestCase):
    def test_ids_accept_ints_digit_strings_and_whole_floats(self) -> None:
        self.assertEqual(parse_positive_int(12, "id"), 12)
        self.assertEqual(parse_positive_int(" 12 ", "id"), 12)
        self.assertEqual(parse_positive_int(12.0, "id"), 12)
        self.assertEqual(parse_positive_int(MAX_INTEGER, "id"), MAX_INTEGER)
        self.assertEqual(parse_positive_int(str(MAX_INTEGER), "id"), MAX_INTEGER)

    def test_ids_beyond_storage_range_are_field_errors(self) -> None:
        for value in (2**63, str(2**63), 10**400, "9" * 500, 1e300):
            with self.assertRaises(ValidationError) as ctx:
                parse_positive_int(value, "materials.material_id")
            self.assertEqual(ctx.exception.payload["field"], "materials.material_id")

    def test_overflowing_numbers_are_field_errors(self) -> None:
        for value in (10**400, -(10**400), "1e999", "nan"):
            with self.assertRaises(ValidationError) as ctx:
                parse_number(value, "items.price")
            self.assertEqual(ctx.exception.code, "validation_error")
            self.assertEqual(ctx.exception.payload["field"], "items.price")

    def test_booleans_are_not_numbers(self) -> None:
        with self.assertRaises(ValidationError):
            parse_positive_int(True, "duration")


class DeadlineParsingTest(unittest.TestCase):
    def test_date_only_is_midnight_utc(self) -> None:
        self.assertEqual(parse_deadline("2026-11-01", now=NOW), "2026-11-01T00:00:00+00:00")

    def test_zulu_suffix(self) -> None:
        parsed = parse_timestamp("2026-11-01T08:30:00Z")
        self.assertEqual(parsed, datetime(2026, 11, 1, 8, 30, tzinfo=timezone.utc))

    def test_past_deadline_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_deadline("2026-10-18", now=NOW)
        self.assertEqual(ctx.exception.code, "deadline_in_past")

    def test_garbage_deadline(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_deadline("next tuesday", now=NOW)
        self.assertEqual(ctx.exception.code, "deadline_invalid")


class RfqInputTest(unittest.TestCase):
    def _payload(self, **overrides):
        payload = {
            "name": "  Framing lumber  ",
            "deadline": "2026-11-01",
            "materials": [{"material_id": 1, "quantity": 10}],
            "suppliers": [2],
        }
        payload.update(overrides)
        return payload

    def test_valid_payload(self) -> None:
        rfq_input = parse_rfq_input(self._payload(), now=NOW)
        self.assertEqual(rfq_input.name, "Framing lumber")
        self.assertEqual(rfq_input.suppliers, (2,))
        self.assertIsNone(rfq_input.description)

    def test_name_required(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_rfq_input(self._payload(name="   "), now=NOW)
        self.assertEqual(ctx.exception.code, "field_required")
        self.assertEqual(ctx.exception.payload["field"], "name")

    def test_materials_and_suppliers_required(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_rfq_input(self._payload(materials=[]), now=NOW)
        self.assertEqual(ctx.exception.code, "materials_required")
        with self.assertRaises(ValidationError) as ctx:
            parse_rfq_input(self._payload(suppliers=[]), now=NOW)
        self.assertEqual(ctx.exception.code, "suppliers_required")


class QuoteInputTest(unittest.TestCase):
    def test_valid_quote(self) -> None:
        quote_input = parse_quote_input(
            {
                "duration": "14",
                "items": [{"material_id": 1, "price": "12.50", "quantity": 4, "discount_rate": 10}],
            }
        )
        self.assertEqual(quote_input.duration, 14)
        line = quote_input.items[0]
        self.assertEqual(line.total_price, 50.0)
        self.assertAlmostEqual(line.original_unit_price, 13.8889, places=4)

    def test_duration_must_be_a_positive_integer(self) -> None:
        for duration in (0, -3, 2.5, None):
            with self.assertRaises(ValidationError):
                parse_quote_input({"duration": duration, "items": [{"material_id": 1, "price": 1, "quantity": 1}]})

    def test_items_required(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_quote_input({"duration": 3, "items": []})
        self.assertEqual(ctx.exception.code, "quote_items_required")

    def test_discount_bounds(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_quote_input({"duration": 3, "items": [{"material_id": 1, "price": 1, "quantity": 1, "discount_rate": 100}]})
        self.assertEqual(ctx.exception.code, "discount_invalid")

    def test_line_without_discount_keeps_list_price(self) -> None:
        line = QuoteLine(material_id=1, price=9.5, quantity=2)
        self.assertEqual(line.original_unit_price, 9.5)
        self.assertEqual(line.total_price, 19.0)


class EmailParsingTest(unittest.TestCase):
    def test_normalizes_case(self) -> None:
        self.assertEqual(parse_email(" Buyer@Acme.Example "), "buyer@acme.example")

    def test_rejects_malformed(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_email("not-an-email")
        self.assertEqual(ctx.exception.code, "email_invalid")


if __name__ == "__main__":
    unittest.main()
