from __future__ import annotations

import logging

from .config import DEFAULT_PREFERRED_LANGUAGE
from .models import NewsRecord
from .normalizer import canonical_key
from .utils import fix_mojibake, published_sort_key


log = logging.getLogger(__name__)


def _description_length(record: NewsRecord) -> int:
    return len(fix_mojibake(record.description))


def better(incumbent: NewsRecord, challenger: NewsRecord, preferred_language: str) -> NewsRecord:
    """Pick the stronger of two duplicate records; ties keep ``incumbent``."""
    wanted = preferred_language.lower()
    incumbent_lang = wanted in (incumbent.language or "").lower()
    challenger_lang = wanted in (challenger.language or "").lower()
    if incumbent_lang != challenger_lang:
        return incumbent if incumbent_lang else challenger

    incumbent_image = bool(incumbent.image_url)
    challenger_image = bool(challenger.image_url)
    if incumbent_image != challenger_image:
        return incumbent if incumbent_image else challenger

    incumbent_len = _description_length(incumbent)
    challenger_len = _description_length(challenger)
    if incumbent_len != challenger_len:
        return incumbent if incumbent_len > challenger_len else challenger

    incumbent_date = published_sort_key(incumbent.published_at)
    challenger_date = published_sort_key(challenger.published_at)
    if incumbent_date != challenger_date:
        return incumbent if incumbent_date > challenger_date else challenger

    return incumbent


def bucket_records(records: list[NewsRecord]) -> dict[str, list[NewsRecord]]:
    buckets: dict[str, list[NewsRecord]] = {}
    for record in records:
        if not record.has_identity():
            continue
        buckets.setdefault(canonical_key(record), []).append(record)
    return buckets


def resolve(
    records: list[NewsRecord],
    preferred_language: str = DEFAULT_PREFERRED_LANGUAGE,
) -> list[NewsRecord]:
    representatives: list[NewsRecord] = []
    for members in bucket_records(records).values():
        best = members[0]
        for member in members[1:]:
            best = better(best, member, preferred_language)
        representatives.append(best)
    log.debug("Resolved %d record(s) into %d representative(s).", len(records), len(representatives))
    return representatives
