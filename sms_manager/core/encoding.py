from __future__ import annotations

import html
import math
import re
from urllib.parse import quote_plus


DOUBLE_BYTE_LANGUAGES = frozenset({'ar'})

LANGUAGE_CODE_LATIN = 1
LANGUAGE_CODE_DOUBLE_BYTE = 3

# Single-part limit, then per-part limit once a UDH header is needed.
_GSM_LIMITS = (160, 153)
_UCS2_LIMITS = (70, 67)

_GATEWAY_BREAKING_CHARS_RE = re.compile(r'[*\[\]\\]')


def is_double_byte(language: str) -> bool:
    return str(language or '').strip().lower() in DOUBLE_BYTE_LANGUAGES


def sanitize(text: str) -> str:
    """Decode HTML entities and drop characters that break gateway URL parsing."""
    decoded = html.unescape(str(text or ''))
    return _GATEWAY_BREAKING_CHARS_RE.sub('', decoded)


def encode(text: str, language: str) -> str:
    if is_double_byte(language):
        # UCS-2: fixed two bytes per character, uppercase hex.
        return text.encode('utf-16-be').hex().upper()
    return quote_plus(text)


def language_code(language: str) -> int:
    if is_double_byte(language):
        return LANGUAGE_CODE_DOUBLE_BYTE
    return LANGUAGE_CODE_LATIN


def segment_count(text: str, language: str) -> int:
    if not text:
        return 0
    single, multi = _UCS2_LIMITS if is_double_byte(language) or not text.isascii() else _GSM_LIMITS
    if len(text) <= single:
        return 1
    return math.ceil(len(text) / multi)
