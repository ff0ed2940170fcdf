from __future__ import annotations

import unicodedata
import uuid
from urllib.parse import unquote_plus, urlsplit, urlunsplit

from .config import TITLE_SIGNATURE_TOKENS, TRACKING_PARAMS
from .models import NewsRecord


def _lower_netloc(netloc: str) -> str:
    userinfo, sep, hostport = netloc.rpartition("@")
    return f"{userinfo}{sep}{hostport.lower()}"


def _clean_query(query: str) -> str:
    kept: list[str] = []
    for pair in query.split("&"):
        if not pair:
            continue
        name, sep, value = pair.partition("=")
        if not sep or not value:
            continue
        if unquote_plus(name).lower() in TRACKING_PARAMS:
            continue
        kept.append(pair)
    return "&".join(kept)


def normalize_url(url: str) -> str:
    """Canonical form of an article URL used for identity comparison.

    Scheme and host are lowercased, tracking and empty query parameters are
    removed, and a single trailing slash is stripped from non-root paths.
    Surviving parameters keep their original encoding and order.
    """
    raw = (url or "").strip()
    if not raw:
        return ""
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw
    path = parts.path
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return urlunsplit(
        (
            parts.scheme.lower(),
            _lower_netloc(parts.netloc),
            path,
            _clean_query(parts.query),
            parts.fragment,
        )
    )


def _fold_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def title_signature(title: str | None) -> str:
    text = (title or "").lower()
    if not text:
        return ""
    text = _fold_diacritics(text)
    mapped = []
    for char in text:
        if char.isalnum():
            mapped.append(char)
        elif char.isspace():
            mapped.append(" ")
    tokens = "".join(mapped).split()
    return " ".join(tokens[:TITLE_SIGNATURE_TOKENS])


def canonical_key(record: NewsRecord) -> str:
    url = normalize_url(record.link)
    if url:
        return f"url:{url}"
    signature = title_signature(record.title)
    if signature:
        return f"title:{signature}"
    source_id = (record.id or "").strip()
    if source_id:
        return f"id:{source_id}"
    return f"uuid:{uuid.uuid4().hex}"
