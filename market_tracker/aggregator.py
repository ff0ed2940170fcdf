##########################################################################################
#
# Script name: aggregator.py
#
# Description: Concurrent feed fetching, news merge barrier, and refresh guarding.
#
##########################################################################################

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, TypeVar

from .config import Settings
from .diversity import merge_diverse
from .fetchers import fetch_news_feed
from .models import CoinSnapshot, Feed, FeedResult, NewsDigest, NewsRecord, Resource


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)
T = TypeVar('T')


# ****************************************************************************************
# Classes
# ****************************************************************************************


class RefreshGuard:
    '''
    One non-blocking lock per resource class. A refresh that arrives while
    another refresh of the same resource is pending is skipped, not queued.
    '''

    def __init__(self):
        self._locks = {resource: threading.Lock() for resource in Resource}

    def is_running(self, resource: Resource) -> bool:
        return self._locks[resource].locked()

    def run(self, resource: Resource, task: Callable[[], T]) -> T | None:
        lock = self._locks[resource]
        if not lock.acquire(blocking=False):
            log.debug('Refresh for %s already running. Skipping.', resource.value)
            return None
        try:
            return task()
        finally:
            lock.release()


class NewsHub:
    '''
    Owns the latest merged news list. ``refresh`` fetches every configured
    feed, waits for all of them, and replaces the digest in one step.
    '''

    def __init__(self, settings: Settings, fetcher=None, guard: RefreshGuard | None = None):
        self.settings = settings
        self.fetcher = fetcher or (lambda feed: fetch_news_feed(feed, settings))
        self.guard = guard or RefreshGuard()
        self.digest = NewsDigest(records=[])

    def refresh(self) -> NewsDigest | None:
        digest = self.guard.run(Resource.NEWS, self._refresh)
        if digest is not None:
            self.digest = digest
        return digest

    def _refresh(self) -> NewsDigest:
        results = fetch_feeds(self.settings.feeds, self.fetcher, max_workers=self.settings.max_workers)
        return aggregate_news(
            results,
            preferred_language=self.settings.preferred_language,
            max_consecutive_per_source=self.settings.max_consecutive_per_source,
        )


# ****************************************************************************************
# Functions
# ****************************************************************************************


def _fetch_one(feed: Feed, fetcher: Callable[[Feed], list[NewsRecord]]) -> FeedResult:
    try:
        records = fetcher(feed)
    except Exception as exc:  # noqa: BLE001
        log.exception('Feed fetch failed for %s: %s', feed.name, exc)
        return FeedResult(feed=feed, records=[], error=f'{feed.name}: {exc}')
    return FeedResult(feed=feed, records=list(records or []))


def fetch_feeds(
    feeds: list[Feed],
    fetcher: Callable[[Feed], list[NewsRecord]],
    max_workers: int = 4,
) -> list[FeedResult]:
    '''
    Fetch all feeds concurrently and return once every one has settled.
    Results keep the order of ``feeds``.
    '''
    if not feeds:
        return []
    workers = max(1, min(int(max_workers), len(feeds)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(_fetch_one, feed, fetcher) for feed in feeds]
        results = [future.result() for future in futures]
    log.info(
        'Fetched %s feed(s): %s record(s), %s failure(s).',
        len(results),
        sum(len(result.records) for result in results),
        sum(1 for result in results if not result.ok),
    )
    return results


def aggregate_news(
    results: list[FeedResult],
    preferred_language: str,
    max_consecutive_per_source: int,
) -> NewsDigest:
    combined: list[NewsRecord] = []
    errors: list[str] = []
    for result in results:
        combined.extend(result.records)
        if result.error:
            errors.append(result.error)

    merged = merge_diverse(
        combined,
        preferred_language=preferred_language,
        max_consecutive_per_source=max_consecutive_per_source,
    )
    message = '\n'.join(errors) if errors else None
    blocking = bool(results) and all(not result.ok for result in results)
    if blocking:
        log.error('All %s feed(s) failed.', len(results))
    return NewsDigest(records=merged, message=message, blocking=blocking)


def filter_for_coin(records: list[NewsRecord], snapshot: CoinSnapshot) -> list[NewsRecord]:
    name = snapshot.name.lower()
    symbol = snapshot.symbol.lower()

    def mentions(record: NewsRecord) -> bool:
        title = record.title.lower()
        if name and name in title:
            return True
        if not symbol:
            return False
        return (
            f' {symbol} ' in title
            or title.startswith(f'{symbol} ')
            or f'({symbol})' in title
            or f'#{symbol}' in title
            or f'${symbol}' in title
        )

    return [record for record in records if mentions(record)]
