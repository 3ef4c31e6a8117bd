import math
import pytest

from mage.mage_printer import Printer, display, format_number


@pytest.fixture
def printer():
    return Printer()


# Test cases: (id, value, expected_string)
FORMAT_TEST_CASES = [
    ("str", "hello", "hello"),
    ("str_keeps_quotes_out", 'say "hi"', 'say "hi"'),
    ("integral", 5.0, "5"),
    ("negative_integral", -3.0, "-3"),
    ("fraction", 2.5, "2.5"),
    ("small", 1e-7, "0.0000001"),
    ("large", 1e21, "1000000000000000000000"),
    ("repeating", 0.1 + 0.2, "0.30000000000000004"),
    ("int_input", 7, "7"),
    ("true", True, "true"),
    ("false", False, "false"),
    ("empty_list", [], "[]"),
    ("list", ["a", 1.0, False], "[a, 1, false]"),
    ("nested_list", [["x"], [2.5]], "[[x], [2.5]]"),
    ("empty_map", {}, "{}"),
    ("map", {"name": "Mage", "level": 3.0}, "{name: Mage, level: 3}"),
    ("map_of_lists", {"xs": [1.0, 2.0]}, "{xs: [1, 2]}"),
]


@pytest.mark.parametrize("case_id, value, expected", FORMAT_TEST_CASES, ids=[c[0] for c in FORMAT_TEST_CASES])
def test_pformat(printer, case_id, value, expected):
    assert printer.pformat(value) == expected


def test_display_matches_printer(printer):
    value = {"a": [1.0, "b"], "c": True}
    assert display(value) == printer.pformat(value)


@pytest.mark.parametrize("n, expected", [
    (math.nan, "NaN"),
    (math.inf, "inf"),
    (-math.inf, "-inf"),
    (-0.0, "-0"),
    (0.0, "0"),
    (-1.25, "-1.25"),
])
def test_format_number_special_values(n, expected):
    assert format_number(n) == expected


def test_pformat_rejects_foreign_objects(printer):
    with pytest.raises(TypeError):
        printer.pformat(object())
