import os
import sys
import unittest
from datetime import date, datetime, timedelta, timezone


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from lookupcore.cells import DATA_TYPES, MISSING, format_number, is_valid_data_type, normalize_cell


class TestNumberCells(unittest.TestCase):
    def test_integral_forms_agree(self) -> None:
        self.assertEqual(normalize_cell("number", 10), 10)
        self.assertEqual(normalize_cell("number", 10.0), 10)
        self.assertEqual(normalize_cell("number", "10"), 10)
        self.assertIsInstance(normalize_cell("number", 10.0), int)

    def test_decimal_strings(self) -> None:
        self.assertEqual(normalize_cell("number", " 1.5 "), 1.5)
        self.assertEqual(normalize_cell("number", "-.25"), -0.25)
        self.assertEqual(normalize_cell("number", "1e3"), 1000)

    def test_unparsable_becomes_null(self) -> None:
        for raw in ("abc", "", "   ", "0x10", "0b1", "1,5", "inf", "Infinity", "-Infinity", "NaN"):
            self.assertIsNone(normalize_cell("number", raw), raw)

    def test_booleans_are_not_numbers(self) -> None:
        self.assertIsNone(normalize_cell("number", True))
        self.assertIsNone(normalize_cell("number", False))

    def test_non_finite_becomes_null(self) -> None:
        self.assertIsNone(normalize_cell("number", float("inf")))
        self.assertIsNone(normalize_cell("number", float("nan")))

    def test_large_integers_stay_exact_within_safe_range(self) -> None:
        self.assertEqual(normalize_cell("number", 2**53), 2**53)
        self.assertIsInstance(normalize_cell("number", 2**60), float)


class TestBooleanCells(unittest.TestCase):
    def test_accepted_spellings(self) -> None:
        for raw in ("true", "TRUE", " Yes ", "y", "1"):
            self.assertIs(normalize_cell("boolean", raw), True, raw)
        for raw in ("false", "No", " n", "0"):
            self.assertIs(normalize_cell("boolean", raw), False, raw)

    def test_numbers(self) -> None:
        self.assertIs(normalize_cell("boolean", 0), False)
        self.assertIs(normalize_cell("boolean", 2), True)
        self.assertIs(normalize_cell("boolean", 0.0), False)

    def test_other_strings_become_null(self) -> None:
        self.assertIsNone(normalize_cell("boolean", "maybe"))
        self.assertIsNone(normalize_cell("boolean", ""))


class TestStringCells(unittest.TestCase):
    def test_strings_kept_verbatim(self) -> None:
        self.assertEqual(normalize_cell("string", " bolt "), " bolt ")
        self.assertEqual(normalize_cell("string", ""), "")

    def test_scalars_rendered(self) -> None:
        self.assertEqual(normalize_cell("string", 10), "10")
        self.assertEqual(normalize_cell("string", 10.0), "10")
        self.assertEqual(normalize_cell("string", 1.5), "1.5")
        self.assertEqual(normalize_cell("string", True), "true")
        self.assertEqual(normalize_cell("string", False), "false")

    def test_non_finite_becomes_null(self) -> None:
        self.assertIsNone(normalize_cell("string", float("nan")))

    def test_large_and_tiny_numbers_render_like_javascript(self) -> None:
        self.assertEqual(normalize_cell("string", 1e16), "10000000000000000")
        self.assertEqual(normalize_cell("string", 1.5e20), "150000000000000000000")
        self.assertEqual(normalize_cell("string", 1e21), "1e+21")
        self.assertEqual(normalize_cell("string", 1e-7), "1e-7")
        self.assertEqual(normalize_cell("string", 1.5e-7), "1.5e-7")
        self.assertEqual(normalize_cell("string", 0.000001), "0.000001")
        self.assertEqual(normalize_cell("string", -2.5e-8), "-2.5e-8")

    def test_format_number(self) -> None:
        self.assertEqual(format_number(3.0), "3")
        self.assertEqual(format_number(0.1), "0.1")
        self.assertIsNone(format_number(float("inf")))


class TestDatetimeCells(unittest.TestCase):
    def test_strings_pass_through(self) -> None:
        self.assertEqual(normalize_cell("datetime", "2024-01-02"), "2024-01-02")
        self.assertEqual(normalize_cell("datetime", "not a date"), "not a date")
        self.assertIsNone(normalize_cell("datetime", ""))

    def test_datetime_objects_render_utc(self) -> None:
        naive = datetime(2024, 1, 2, 3, 4, 5)
        self.assertEqual(normalize_cell("datetime", naive), "2024-01-02T03:04:05.000Z")
        offset = datetime(2024, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual(normalize_cell("datetime", offset), "2024-01-02T03:04:05.000Z")

    def test_dates(self) -> None:
        self.assertEqual(normalize_cell("datetime", date(2024, 1, 2)), "2024-01-02")

    def test_other_types_become_null(self) -> None:
        self.assertIsNone(normalize_cell("datetime", 5))
        self.assertIsNone(normalize_cell("datetime", True))


class TestNormalizeCell(unittest.TestCase):
    SAMPLES = [
        None,
        "",
        " ",
        "10",
        "10.0",
        "1.5",
        "abc",
        "yes",
        "N",
        "2024-01-02T03:04:05Z",
        0,
        1,
        10.0,
        -2.5,
        True,
        False,
        float("inf"),
        datetime(2024, 1, 2, 3, 4, 5),
        date(2024, 1, 2),
        [1, 2],
        {"a": 1},
    ]

    def test_absent_and_null(self) -> None:
        for data_type in DATA_TYPES:
            self.assertIsNone(normalize_cell(data_type))
            self.assertIsNone(normalize_cell(data_type, MISSING))
            self.assertIsNone(normalize_cell(data_type, None))

    def test_unknown_data_type(self) -> None:
        self.assertIsNone(normalize_cell("currency", "10"))
        self.assertFalse(is_valid_data_type("currency"))
        self.assertFalse(is_valid_data_type(None))
        self.assertTrue(is_valid_data_type("datetime"))

    def test_structured_input_becomes_null(self) -> None:
        for data_type in DATA_TYPES:
            self.assertIsNone(normalize_cell(data_type, [1, 2]))
            self.assertIsNone(normalize_cell(data_type, {"a": 1}))

    def test_idempotent(self) -> None:
        for data_type in DATA_TYPES:
            for raw in self.SAMPLES:
                once = normalize_cell(data_type, raw)
                twice = normalize_cell(data_type, once)
                self.assertEqual(once, twice, (data_type, raw))
                self.assertIs(type(once), type(twice), (data_type, raw))


if __name__ == "__main__":
    unittest.main()
