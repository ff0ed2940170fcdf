##########################################################################################
#
# Script name: market.py
#
# Description: Listings paging with logo lookup, and per-mode NFT collection caches.
#
##########################################################################################

import logging

from .aggregator import RefreshGuard
from .config import LISTINGS_PAGE_SIZE, Settings
from .fetchers import FetchError, fetch_asset_meta, fetch_listings, fetch_nft_collections, sort_by_rank
from .models import CoinSnapshot, NFTCollection, NFTMode, Resource


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)


# ****************************************************************************************
# Classes
# ****************************************************************************************


class ListingsBook:
    '''
    Latest listing snapshots plus their logos. ``load`` replaces everything;
    ``load_more`` appends a single extra page once.
    '''

    def __init__(self, settings: Settings, listings_fetcher=None, meta_fetcher=None,
                 guard: RefreshGuard | None = None, page_size: int = LISTINGS_PAGE_SIZE):
        self.page_size = page_size
        self.fetch_page = listings_fetcher or (
            lambda start, limit: fetch_listings(settings, start=start, limit=limit)
        )
        self.fetch_meta = meta_fetcher or (lambda ids: fetch_asset_meta(settings, ids))
        self.guard = guard or RefreshGuard()
        self.snapshots: list[CoinSnapshot] = []
        self.logo_urls: dict[int, str] = {}
        self.error_message: str | None = None
        self.has_loaded_second_page = False

    def load(self) -> bool | None:
        return self.guard.run(Resource.LISTINGS, self._load)

    def load_more(self) -> bool | None:
        if self.has_loaded_second_page:
            return False
        return self.guard.run(Resource.LISTINGS, self._load_more)

    def _logos_for(self, ids: list[int]) -> dict[int, str]:
        try:
            meta = self.fetch_meta(ids)
        except FetchError as exc:
            # Snapshots already loaded are kept; only logos go missing.
            log.warning('Logo lookup failed: %s', exc)
            self.error_message = str(exc)
            return {}
        return {coin_id: item.logo_url for coin_id, item in meta.items() if item.logo_url}

    def _load(self) -> bool:
        self.error_message = None
        self.has_loaded_second_page = False
        try:
            snapshots = sort_by_rank(self.fetch_page(1, self.page_size))
        except FetchError as exc:
            log.warning('Listings load failed: %s', exc)
            self.error_message = str(exc)
            self.snapshots = []
            self.logo_urls = {}
            return False
        self.snapshots = snapshots
        self.logo_urls = self._logos_for([snapshot.id for snapshot in snapshots])
        return True

    def _load_more(self) -> bool:
        try:
            more = self.fetch_page(self.page_size + 1, self.page_size)
        except FetchError as exc:
            # Flag stays unset so the next scroll can retry.
            log.warning('Listings second page failed: %s', exc)
            self.error_message = str(exc)
            return False
        self.error_message = None
        existing = {snapshot.id for snapshot in self.snapshots}
        new_ones = [snapshot for snapshot in more if snapshot.id not in existing]
        self.snapshots = sort_by_rank(self.snapshots + new_ones)
        self.has_loaded_second_page = True
        if new_ones:
            updates = dict(self.logo_urls)
            updates.update(self._logos_for([snapshot.id for snapshot in new_ones]))
            self.logo_urls = updates
        return True


class NFTBook:
    '''
    NFT collections per mode with an in-memory cache that lives as long as
    the book. ``force`` bypasses the cache.
    '''

    def __init__(self, settings: Settings, fetcher=None, guard: RefreshGuard | None = None):
        self.fetcher = fetcher or (lambda mode: fetch_nft_collections(settings, mode))
        self.guard = guard or RefreshGuard()
        self.mode = NFTMode.TOP
        self.collections: list[NFTCollection] = []
        self.error_message: str | None = None
        self._cache: dict[NFTMode, list[NFTCollection]] = {}

    def load(self, mode: NFTMode | None = None, force: bool = False) -> bool | None:
        if mode is not None:
            self.mode = mode
        return self.guard.run(Resource.NFTS, lambda: self._load(force))

    def _load(self, force: bool) -> bool:
        self.error_message = None
        if not force and self.mode in self._cache:
            self.collections = self._cache[self.mode]
            return True
        try:
            items = self.fetcher(self.mode)
        except FetchError as exc:
            log.warning('NFT %s load failed: %s', self.mode.value, exc)
            self.error_message = str(exc)
            self.collections = []
            return False
        if self.mode == NFTMode.TOP:
            ordered = sorted(items, key=lambda item: item.rank if item.rank is not None else float('inf'))
        elif self.mode == NFTMode.HOTTEST:
            ordered = sorted(items, key=lambda item: item.volume_usd or 0.0, reverse=True)
        else:
            raise ValueError(f'Unhandled NFT mode: {self.mode}')
        self.collections = ordered
        self._cache[self.mode] = ordered
        return True


# ****************************************************************************************
# Functions
# ****************************************************************************************


def find_snapshot(snapshots: list[CoinSnapshot], query: str) -> CoinSnapshot | None:
    wanted = query.strip().lower()
    for snapshot in snapshots:
        keys = (str(snapshot.id), snapshot.symbol.lower(), snapshot.name.lower(), (snapshot.slug or '').lower())
        if wanted in keys:
            return snapshot
    return None
