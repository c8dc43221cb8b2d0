"""
Category name handling.

Product categories arrive from Shopify with HTML entities and ``\\uXXXX``
escapes (``Wound &amp; Care``, ``Incontinence \\u0026 Skin``). Names are
decoded once when rows enter the report pipeline; everything downstream
compares decoded names only.
"""

import html
import re

UNCATEGORIZED = 'Uncategorized'
PARENT_SEPARATOR = '>'

_UNICODE_ESCAPE_RE = re.compile(r'\\u([0-9a-fA-F]{4})')


def _decode_once(text):
    text = _UNICODE_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), text)
    return html.unescape(text)


def decode_category_name(name):
    """Decode escapes until the value stops changing.

    Running to a fixed point makes the function idempotent, so a name that
    was already decoded (or double-encoded upstream) is handled the same way.
    """
    if name is None:
        return None
    text = str(name)
    # Each pass shortens the string or leaves it unchanged
    while True:
        decoded = _decode_once(text)
        if decoded == text:
            return decoded
        text = decoded


def category_key(raw_name):
    """Decoded category name, or ``Uncategorized`` for null/blank values."""
    decoded = decode_category_name(raw_name)
    if decoded is None or not decoded.strip():
        return UNCATEGORIZED
    return decoded.strip()


def parent_category(name):
    """``Incontinence`` for ``Incontinence>Briefs``; None without a separator."""
    if not name or PARENT_SEPARATOR not in name:
        return None
    return name.split(PARENT_SEPARATOR, 1)[0].strip() or None


def category_code(name):
    """Short upper-case code from the first two words, e.g. ``WOUCAR``."""
    words = [w for w in re.split(r'[\s>&/-]+', decode_category_name(name or '')) if w]
    code = ''.join(w[:3] for w in words[:2])
    return re.sub(r'[^A-Za-z0-9]', '', code).upper()
