"""
Operators, comparison and built-in methods of the Mage value model.

Values are plain Python objects (`str`, `float`, `bool`, `list`, `dict`).
Invalid combinations never raise: they write a diagnostic to the error
stream of the given `OutputSink` and return a safe default.
"""
import math
import re
from typing import Any, List, Optional

from mage.mage_output import OutputSink
from mage.mage_printer import display


I32_MIN = -2**31
I32_MAX = 2**31 - 1

_INT_RE = re.compile(r'[+-]?[0-9]+')

ADDITIVE_OPS = ('+', '-')


def type_name(value: Any) -> str:
    match value:
        case bool():
            return 'boolean'
        case str():
            return 'string'
        case int() | float():
            return 'number'
        case list():
            return 'list'
        case dict():
            return 'map'
    raise TypeError(f"Not a Mage value: {value!r}")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _invalid(left, op, right, output: OutputSink) -> float:
    output.eprintln(f"Invalid operation: {display(left)} {op} {display(right)}")
    return 0.0


# =================================================================
# Arithmetic
# =================================================================

def add_values(left: Any, op: str, right: Any, output: OutputSink) -> Any:
    """Applies an additive operator (`+` or `-`)."""
    if is_number(left) and is_number(right):
        if op == '+':
            return float(left) + float(right)
        if op == '-':
            return float(left) - float(right)
        return 0.0
    if op == '+':
        if isinstance(left, str) and isinstance(right, str):
            return left + right
        if isinstance(left, str):
            return left + display(right)
        if isinstance(right, str):
            return display(left) + right
        if isinstance(left, list) and isinstance(right, list):
            return left + right
        if isinstance(left, dict) and isinstance(right, dict):
            return {**left, **right}
    return _invalid(left, op, right, output)


def mul_values(left: Any, op: str, right: Any, output: OutputSink) -> Any:
    """Applies a multiplicative operator (`*`, `/` or `%`). Numbers only."""
    if not (is_number(left) and is_number(right)):
        return _invalid(left, op, right, output)
    l, r = float(left), float(right)
    match op:
        case '*':
            return l * r
        case '/':
            return l / r if r != 0.0 else 0.0
        case '%':
            # remainder takes the sign of the dividend
            return math.fmod(l, r) if r != 0.0 else 0.0
    return 0.0


# =================================================================
# Comparison
# =================================================================

def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def compare_values(left: Any, right: Any) -> int:
    """Three-way comparison. Returns -1, 0 or 1."""
    if isinstance(left, bool) and isinstance(right, bool):
        return _cmp(left, right)
    if is_number(left) and is_number(right):
        # NaN is unordered and compares as equal
        return _cmp(float(left), float(right))
    if isinstance(left, str) and isinstance(right, str):
        return _cmp(left, right)
    if isinstance(left, list) and isinstance(right, list):
        for l_val, r_val in zip(left, right):
            ord_ = compare_values(l_val, r_val)
            if ord_ != 0:
                return ord_
        return _cmp(len(left), len(right))
    if isinstance(left, dict) and isinstance(right, dict):
        return _cmp(sorted(left), sorted(right))
    return _cmp(display(left), display(right))


def compare(left: Any, op: str, right: Any) -> bool:
    """Applies a comparison operator. Unknown operators are false."""
    ord_ = compare_values(left, right)
    match op:
        case '==':
            return ord_ == 0
        case '!=':
            return ord_ != 0
        case '>':
            return ord_ > 0
        case '<':
            return ord_ < 0
        case '>=':
            return ord_ >= 0
        case '<=':
            return ord_ <= 0
    return False


# =================================================================
# Coercion
# =================================================================

def _saturate(n: float) -> int:
    if math.isnan(n):
        return 0
    if n >= I32_MAX:
        return I32_MAX
    if n <= I32_MIN:
        return I32_MIN
    return int(n)


def to_loop_int(value: Any, label: str, output: OutputSink) -> Optional[int]:
    """Coerces a chant bound to an integer, or reports why it can't."""
    match value:
        case bool():
            output.eprintln(f"{label} value must be a number")
            return None
        case int() | float():
            return _saturate(float(value))
        case str():
            if _INT_RE.fullmatch(value):
                n = int(value)
                if I32_MIN <= n <= I32_MAX:
                    return n
            output.eprintln(f"{label} value must be a number, got string: {value}")
            return None
        case list() | dict():
            return len(value)
    raise TypeError(f"Not a Mage value: {value!r}")


def iteration_items(value: Any) -> List[Any]:
    """Returns the sequence a `recite` loop walks over."""
    match value:
        case bool():
            return [0.0]
        case str():
            return [part.strip() for part in value.split(',') if part.strip()]
        case int() | float():
            return [float(i) for i in range(_saturate(float(value)))]
        case list():
            return list(value)
        case dict():
            return list(value.keys())
    raise TypeError(f"Not a Mage value: {value!r}")


# =================================================================
# Methods
# =================================================================

def _split(s: str, delim: str) -> List[str]:
    if delim == "":
        return ["", *s, ""]
    return s.split(delim)


def call_string_method(s: str, name: str, args: List[Any], output: OutputSink) -> Any:
    first = args[0] if args else None
    match name:
        case 'upper':
            return s.upper()
        case 'lower':
            return s.lower()
        case 'trim':
            return s.strip()
        case 'len':
            return float(len(s.encode('utf-8')))
        case 'contains':
            if isinstance(first, str):
                return first in s
            output.eprintln("contains requires a string argument")
            return False
        case 'replace':
            if len(args) < 2:
                output.eprintln("replace requires two arguments")
                return s
            if isinstance(args[0], str) and isinstance(args[1], str):
                return s.replace(args[0], args[1])
            output.eprintln("replace requires two string arguments")
            return s
        case 'split':
            if isinstance(first, str):
                return _split(s, first)
            output.eprintln("split requires a string delimiter")
            return []
    output.eprintln(f"Unknown string method: {name}")
    return ""


def call_list_method(items: List[Any], name: str, args: List[Any], output: OutputSink) -> Any:
    match name:
        case 'len':
            return float(len(items))
        case 'first':
            return items[0] if items else ""
        case 'last':
            return items[-1] if items else ""
        case 'join':
            delim = args[0] if args and isinstance(args[0], str) else ""
            return delim.join(display(v) for v in items)
    output.eprintln(f"Unknown list method: {name}")
    return ""


def call_map_method(m: dict, name: str, args: List[Any], output: OutputSink) -> Any:
    match name:
        case 'len':
            return float(len(m))
        case 'keys':
            return list(m.keys())
        case 'values':
            return list(m.values())
        case 'has':
            if args and isinstance(args[0], str):
                return args[0] in m
            output.eprintln("has requires a string key")
            return False
    output.eprintln(f"Unknown map method: {name}")
    return ""


def call_method(receiver: Any, name: str, args: List[Any], output: OutputSink) -> Any:
    """Dispatches a method call on the receiver's type."""
    match receiver:
        case bool() | int() | float():
            output.eprintln(f"Cannot call method on {type_name(receiver)}: {display(receiver)}")
            return ""
        case str():
            return call_string_method(receiver, name, args, output)
        case list():
            return call_list_method(receiver, name, args, output)
        case dict():
            return call_map_method(receiver, name, args, output)
    raise TypeError(f"Not a Mage value: {receiver!r}")
