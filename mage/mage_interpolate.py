"""
String escape processing and variable interpolation.

These are two separate passes. Escapes are processed once, when a string
literal becomes a value. Interpolation runs every time a string is printed
or used as a shell command, so a value may go through it more than once.
"""
from typing import Any

from mage.mage_printer import display


_ESCAPES = {
    '\\': '\\',
    'n': '\n',
    't': '\t',
    'r': '\r',
    '"': '"',
    "'": "'",
    '0': '\0',
}

_MISSING = object()


def process_escape_sequences(text: str) -> str:
    """Replaces `\\n`, `\\t` and friends with the characters they name.

    Unknown sequences such as `\\q` are kept as written, and so is a
    trailing lone backslash.
    """
    out = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch == '\\' and i + 1 < n:
            nxt = text[i + 1]
            out.append(_ESCAPES.get(nxt, '\\' + nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return ''.join(out)


def _is_ident_char(c: str) -> bool:
    return c.isalnum() or c == '_'


def interpolate(text: str, scope: Any) -> str:
    """Substitutes `$name` and `${name}` with the display of bound values.

    Unbound references are left verbatim. A backslash makes the next
    character literal and is itself dropped; a trailing lone backslash
    disappears.
    """
    out = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch == '\\':
            if i + 1 < n:
                out.append(text[i + 1])
            i += 2
            continue
        if ch != '$':
            out.append(ch)
            i += 1
            continue

        if i + 1 < n and text[i + 1] == '{':
            end = text.find('}', i + 2)
            if end == -1:
                name, i = text[i + 2:], n
            else:
                name, i = text[i + 2:end], end + 1
            value = scope.get(name, _MISSING)
            out.append(display(value) if value is not _MISSING else f"${{{name}}}")
            continue

        j = i + 1
        while j < n and _is_ident_char(text[j]):
            j += 1
        name, i = text[i + 1:j], j
        value = scope.get(name, _MISSING)
        out.append(display(value) if value is not _MISSING else f"${name}")
    return ''.join(out)
