from __future__ import annotations

from .config import DEFAULT_MAX_CONSECUTIVE_PER_SOURCE, DEFAULT_PREFERRED_LANGUAGE
from .dedup import resolve
from .models import NewsRecord
from .utils import extract_host, published_sort_key


def source_of(record: NewsRecord) -> str:
    name = record.source_name.strip()
    if name:
        return name
    source_id = record.source_id.strip()
    if source_id:
        return source_id
    host = extract_host(record.link)
    if host:
        return host
    return "unknown"


def sort_by_published(records: list[NewsRecord]) -> list[NewsRecord]:
    return sorted(records, key=lambda record: published_sort_key(record.published_at), reverse=True)


def schedule(records: list[NewsRecord], max_consecutive_per_source: int) -> list[NewsRecord]:
    """Reorder newest-first so one source never runs past the threshold.

    When only one source is left in the queue the run is allowed to continue.
    A non-positive threshold returns the input unchanged.
    """
    if max_consecutive_per_source <= 0:
        return list(records)

    queue = sort_by_published(records)
    ordered: list[NewsRecord] = []
    last_source = ""
    run_count = 0

    while queue:
        candidate = queue[0]
        source = source_of(candidate)
        if source == last_source and run_count >= max_consecutive_per_source:
            swap_idx = next(
                (idx for idx, item in enumerate(queue) if source_of(item) != last_source),
                None,
            )
            if swap_idx is not None:
                pick = queue.pop(swap_idx)
                last_source = source_of(pick)
                run_count = 1
            else:
                pick = queue.pop(0)
                run_count += 1
            ordered.append(pick)
            continue

        ordered.append(queue.pop(0))
        if source == last_source:
            run_count += 1
        else:
            last_source = source
            run_count = 1
    return ordered


def merge_diverse(
    records: list[NewsRecord],
    preferred_language: str = DEFAULT_PREFERRED_LANGUAGE,
    max_consecutive_per_source: int = DEFAULT_MAX_CONSECUTIVE_PER_SOURCE,
) -> list[NewsRecord]:
    representatives = resolve(records, preferred_language=preferred_language)
    return schedule(sort_by_published(representatives), max_consecutive_per_source)
