# move_inventory/domain/barcode.py
import re
from typing import Optional
from urllib.parse import parse_qs, unquote, urlsplit

BARCODE_PREFIX = "barcode:"
MIN_BARCODE_LENGTH = 8
MAX_BARCODE_LENGTH = 18

_DIGIT_RUN = re.compile(r"[0-9]{8,18}")
_ALL_DIGITS = re.compile(r"[0-9]+")
_NON_DIGITS = re.compile(r"[^0-9]")
_SEPARATORS = re.compile(r"[_-]+")

KEYWORD_QUERY_KEYS = ("name", "title", "product", "item")


def is_valid_barcode(value: Optional[str]) -> bool:
    if not value:
        return False
    if not (MIN_BARCODE_LENGTH <= len(value) <= MAX_BARCODE_LENGTH):
        return False
    return bool(_ALL_DIGITS.fullmatch(value))


def digits_only(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", value or "")


def normalize_barcode(value: Optional[str]) -> Optional[str]:
    """Digits-only form of `value` if it is a valid barcode, else None."""
    if value is None:
        return None
    compact = digits_only(value)
    return compact if is_valid_barcode(compact) else None


def _has_prefix(raw: str) -> bool:
    return raw[:len(BARCODE_PREFIX)].lower() == BARCODE_PREFIX


def _split(raw: str):
    try:
        return urlsplit(raw)
    except ValueError:
        # e.g. unbalanced IPv6 brackets
        return None


def _first_param(query: str, key: str) -> Optional[str]:
    values = parse_qs(query, keep_blank_values=True).get(key)
    return values[0] if values else None


def extract_barcode(raw_value: Optional[str]) -> Optional[str]:
    """
    Turn a raw scan payload into a candidate barcode. First match wins:
      1. "barcode:<digits>" prefix (case-insensitive)
      2. the whole trimmed value
      3. URI query parameter `barcode`, else `code`
      4. first 8-18 digit run in the URI path
      5. first 8-18 digit run anywhere in the value
      6. every digit in the value, concatenated
    """
    raw = (raw_value or "").strip()
    if not raw:
        return None

    if _has_prefix(raw):
        candidate = raw[len(BARCODE_PREFIX):].strip()
        if is_valid_barcode(candidate):
            return candidate

    if is_valid_barcode(raw):
        return raw

    parts = _split(raw)
    if parts is not None:
        from_query = _first_param(parts.query, "barcode")
        if from_query is None:
            from_query = _first_param(parts.query, "code")
        if from_query is not None and is_valid_barcode(from_query):
            return from_query

        m = _DIGIT_RUN.search(parts.path)
        if m and is_valid_barcode(m.group(0)):
            return m.group(0)

    m = _DIGIT_RUN.search(raw)
    if m and is_valid_barcode(m.group(0)):
        return m.group(0)

    compact = digits_only(raw)
    if is_valid_barcode(compact):
        return compact

    return None


def extract_keyword(raw_value: Optional[str]) -> str:
    """
    Free-text search keyword carried by a scan payload, or "" when the payload
    is nothing but a code.
    """
    raw = (raw_value or "").strip()
    if not raw:
        return ""

    parts = _split(raw)
    if parts is not None:
        for key in KEYWORD_QUERY_KEYS:
            value = _first_param(parts.query, key)
            if value and value.strip():
                return value.strip()

        # path segments only count for real URLs; plain text falls through
        if parts.scheme and parts.netloc:
            segments = [s for s in parts.path.split("/") if s]
            if segments:
                decoded = unquote(segments[-1]).strip()
                if decoded and not _ALL_DIGITS.fullmatch(decoded):
                    return decoded

    without_prefix = raw[len(BARCODE_PREFIX):].strip() if _has_prefix(raw) else raw
    cleaned = _SEPARATORS.sub(" ", without_prefix).strip()
    if not cleaned or _ALL_DIGITS.fullmatch(cleaned):
        return ""
    return cleaned
