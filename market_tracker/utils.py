from __future__ import annotations

import hashlib
import html
import math
import re
from datetime import datetime, timezone
from urllib.parse import urlsplit

from dateutil import parser as date_parser


DISTANT_PAST = datetime.min.replace(tzinfo=timezone.utc)

MOJIBAKE_REPLACEMENTS = (
    ("â€“", "–"),
    ("â€”", "—"),
    ("â€˜", "‘"),
    ("â€™", "’"),
    ("â€œ", "“"),
    ("â€\u009d", "”"),
    ("â€¦", "…"),
    ("â€¢", "•"),
    ("â€", "”"),
    ("Â ", " "),
    ("Â", ""),
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def normalize_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def strip_html(value: str) -> str:
    text = re.sub(r"<[^>]+>", " ", as_text(value))
    text = html.unescape(text)
    return normalize_whitespace(text)


def as_text(value) -> str:
    """Trimmed string form of a payload scalar; containers and None become empty."""
    if value is None or isinstance(value, (dict, list, tuple)):
        return ""
    return str(value).strip()


def as_mapping(value) -> dict:
    return value if isinstance(value, dict) else {}


def fix_mojibake(value: str | None) -> str:
    text = as_text(value)
    for bad, good in MOJIBAKE_REPLACEMENTS:
        text = text.replace(bad, good)
    return text


def stable_id(*parts: str) -> str:
    payload = "|".join(part for part in parts if part)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def extract_host(url: str) -> str:
    try:
        return (urlsplit(url or "").hostname or "").lower()
    except ValueError:
        return ""


def published_sort_key(value: datetime | None) -> datetime:
    return value or DISTANT_PAST


def parse_datetime(value: str | int | float | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value > 1_000_000_000_000:
            value = value / 1000.0
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        parsed = date_parser.parse(str(value))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (ValueError, TypeError, OverflowError, OSError):
        return None


def to_float(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_int(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None
