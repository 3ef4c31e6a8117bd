"""
Display rendering for Mage values.

This is the text a value turns into when it is printed, interpolated,
concatenated with a string or passed to a builtin.
"""
import collections.abc
import math
from decimal import Decimal


def format_number(n: float) -> str:
    """Formats a number the way Mage prints it.

    Integral values have no fractional part (`5`, `-3`); everything else
    is the shortest round-trip decimal, never in exponent notation.
    """
    if math.isnan(n):
        return "NaN"
    if math.isinf(n):
        return "inf" if n > 0 else "-inf"
    if n == 0:
        return "-0" if math.copysign(1.0, n) < 0 else "0"
    if float(n).is_integer():
        return str(int(n))
    return format(Decimal(repr(float(n))), 'f')


class Printer:
    """Formats Mage values into their display strings."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> str:
        """Public entry point to format a value."""
        handler = self._get_handler(obj)
        return handler(obj)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        # bool must be checked before the numeric fallback
        if isinstance(obj, bool): return self._pformat_bool
        if isinstance(obj, str): return self._pformat_str
        if isinstance(obj, (int, float)): return self._pformat_number
        if isinstance(obj, collections.abc.Mapping): return self._pformat_map
        if isinstance(obj, (list, tuple)): return self._pformat_list
        raise TypeError(f"Not a Mage value: {obj!r}")

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            bool: self._pformat_bool,
            float: self._pformat_number,
            int: self._pformat_number,
            list: self._pformat_list,
            dict: self._pformat_map,
        }

    def _pformat_str(self, obj):
        return obj

    def _pformat_bool(self, obj):
        return "true" if obj else "false"

    def _pformat_number(self, obj):
        return format_number(float(obj))

    def _pformat_list(self, obj):
        return "[" + ", ".join(self.pformat(v) for v in obj) + "]"

    def _pformat_map(self, obj):
        return "{" + ", ".join(f"{k}: {self.pformat(v)}" for k, v in obj.items()) + "}"


_printer = Printer()


def display(value) -> str:
    """Returns the display rendering of a value."""
    return _printer.pformat(value)
