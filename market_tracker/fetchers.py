##########################################################################################
#
# Script name: fetchers.py
#
# Description: Fetches and decodes listings, asset info, NFT collections, and news feeds
#              from CoinMarketCap, Moralis, CoinGecko, Finnhub, NewsData, and RSS.
#
##########################################################################################

import logging
from datetime import timedelta

import feedparser
import requests

from .cache import TTLCache
from .config import (
    COINGECKO_SEARCH_URL,
    COINMARKETCAP_INFO_URL,
    COINMARKETCAP_LISTINGS_URL,
    FINNHUB_NEWS_URL,
    LISTINGS_PAGE_SIZE,
    MORALIS_COLLECTIONS_URLS,
    NEWSDATA_URL,
    REQUEST_TIMEOUT,
    USER_AGENT,
    Settings,
)
from .models import CoinMeta, CoinSnapshot, Feed, FeedProvider, NewsRecord, NFTCollection, NFTMode
from .utils import (
    as_mapping,
    as_text,
    fix_mojibake,
    parse_datetime,
    published_sort_key,
    stable_id,
    strip_html,
    to_float,
    to_int,
    utc_now,
)


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)
SNIPPET_CHARS = 2048


# ****************************************************************************************
# Exceptions
# ****************************************************************************************


class FetchError(Exception):
    '''
    Base class for failures at the fetch boundary.
    '''
    pass


class TransportError(FetchError):
    '''
    The request never produced a response (DNS, timeout, connection reset).
    '''
    def __init__(self, url, cause):
        self.url = url
        self.message = f'Network error for {url}: {cause}'
        super().__init__(self.message)


class BadStatusError(FetchError):
    def __init__(self, url, status):
        self.url = url
        self.status = status
        self.message = f'Bad HTTP status {status} from {url}'
        super().__init__(self.message)


class DecodingError(FetchError):
    '''
    The response arrived but did not have the expected shape.
    '''
    def __init__(self, url, detail, snippet=''):
        self.url = url
        self.snippet = snippet
        self.message = f'Failed to decode response from {url}: {detail}'
        super().__init__(self.message)


class APIMessageError(FetchError):
    def __init__(self, url, api_message):
        self.url = url
        self.message = api_message
        super().__init__(self.message)


class MissingCredentialsError(FetchError):
    def __init__(self, service, env_name):
        self.service = service
        self.message = f'No API key configured for {service}. Set {env_name}.'
        super().__init__(self.message)


class NotFoundError(FetchError):
    pass


# ****************************************************************************************
# HTTP helpers
# ****************************************************************************************


def _extract_api_message(payload) -> str:
    if not isinstance(payload, dict):
        return ''
    error = payload.get('error')
    if isinstance(error, str) and error:
        return error
    status = payload.get('status')
    if isinstance(status, dict):
        message = status.get('error_message')
        if message:
            return str(message)
    message = payload.get('message')
    if isinstance(message, str) and message:
        return message
    return ''


def _response_payload(response):
    try:
        return response.json()
    except ValueError:
        return None


def _get_json(url: str, params: dict | None = None, headers: dict | None = None, session=None):
    http = session or requests
    request_headers = {'Accept': 'application/json', 'User-Agent': USER_AGENT}
    request_headers.update(headers or {})
    try:
        response = http.get(url, params=params, headers=request_headers, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        raise TransportError(url, exc) from exc

    if not 200 <= response.status_code < 300:
        message = _extract_api_message(_response_payload(response))
        if message:
            raise APIMessageError(url, message)
        raise BadStatusError(url, response.status_code)

    try:
        return response.json()
    except ValueError as exc:
        raise DecodingError(url, exc, snippet=(response.text or '')[:SNIPPET_CHARS]) from exc


def _require_key(settings: Settings, service: str, env_name: str) -> str:
    key = settings.api_key(service)
    if not key:
        raise MissingCredentialsError(service, env_name)
    return key


# ****************************************************************************************
# Decoders
# ****************************************************************************************


def _decode_rows(rows, url: str, decode_row) -> list:
    '''
    Apply ``decode_row`` to every mapping in ``rows``. Rows that decode to
    None are skipped; a row with an unexpected shape fails the whole payload
    as a DecodingError.
    '''
    items = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            item = decode_row(row)
        except (AttributeError, TypeError, ValueError) as exc:
            raise DecodingError(url, f'malformed row: {exc}') from exc
        if item is not None:
            items.append(item)
    return items


def _listing_from_row(row: dict) -> CoinSnapshot | None:
    quote = as_mapping(as_mapping(row.get('quote')).get('USD'))
    coin_id = to_int(row.get('id'))
    price = to_float(quote.get('price'))
    if coin_id is None or price is None:
        log.debug('Skipping listing without id or USD price: %s', row.get('symbol'))
        return None
    return CoinSnapshot(
        id=coin_id,
        name=as_text(row.get('name')),
        symbol=as_text(row.get('symbol')),
        price=price,
        slug=as_text(row.get('slug')) or None,
        rank=to_int(row.get('cmc_rank')),
        percent_change_1h=to_float(quote.get('percent_change_1h')),
        percent_change_24h=to_float(quote.get('percent_change_24h')),
        percent_change_7d=to_float(quote.get('percent_change_7d')),
        market_cap=to_float(quote.get('market_cap')),
        volume_24h=to_float(quote.get('volume_24h')),
    )


def decode_listings(payload, url: str = COINMARKETCAP_LISTINGS_URL) -> list[CoinSnapshot]:
    rows = payload.get('data') if isinstance(payload, dict) else None
    if not isinstance(rows, list):
        raise DecodingError(url, 'listings payload has no data array')
    return sort_by_rank(_decode_rows(rows, url, _listing_from_row))


def sort_by_rank(snapshots: list[CoinSnapshot]) -> list[CoinSnapshot]:
    return sorted(snapshots, key=lambda item: item.rank if item.rank is not None else float('inf'))


def decode_asset_meta(payload, url: str = COINMARKETCAP_INFO_URL) -> dict[int, CoinMeta]:
    rows = payload.get('data') if isinstance(payload, dict) else None
    if not isinstance(rows, dict):
        raise DecodingError(url, 'info payload has no data mapping')
    meta: dict[int, CoinMeta] = {}
    for key, value in rows.items():
        coin_id = to_int(key)
        if coin_id is None or not isinstance(value, dict):
            continue
        meta[coin_id] = CoinMeta(id=coin_id, logo_url=as_text(value.get('logo')) or None)
    return meta


def _record_id(source_id: str, link: str, title: str) -> str:
    if source_id:
        return source_id
    return stable_id(link or title)


def _newsdata_record(row: dict, feed: Feed) -> NewsRecord | None:
    title = fix_mojibake(row.get('title'))
    link = as_text(row.get('link'))
    if not title and not link:
        return None
    return NewsRecord(
        id=_record_id(as_text(row.get('article_id') or row.get('articleId')), link, title),
        title=title,
        link=link,
        source_name=as_text(row.get('source_name') or row.get('sourceName')),
        source_id=as_text(row.get('source_id') or row.get('sourceId')),
        published_at=parse_datetime(row.get('pubDate') or row.get('pub_date')),
        language=as_text(row.get('language')) or None,
        image_url=as_text(row.get('image_url') or row.get('imageUrl')) or None,
        description=fix_mojibake(row.get('description')) or None,
        feed=feed.provider,
    )


def decode_newsdata(payload, feed: Feed, url: str = NEWSDATA_URL) -> list[NewsRecord]:
    if not isinstance(payload, dict):
        raise DecodingError(url, 'NewsData payload is not an object')
    status = as_text(payload.get('status') or payload.get('Status')) or 'unknown'
    if status.lower() != 'success':
        message = _extract_api_message(payload)
        if message:
            raise APIMessageError(url, message)
    rows = payload.get('results')
    if not isinstance(rows, list):
        rows = payload.get('data')
    if not isinstance(rows, list):
        rows = []
    return _decode_rows(rows, url, lambda row: _newsdata_record(row, feed))


def _finnhub_record(row: dict, feed: Feed) -> NewsRecord | None:
    title = strip_html(row.get('headline'))
    link = as_text(row.get('url'))
    if not title and not link:
        return None
    return NewsRecord(
        id=_record_id(as_text(row.get('id')), link, title),
        title=title,
        link=link,
        source_name=as_text(row.get('source')),
        published_at=parse_datetime(row.get('datetime')),
        language='english',
        image_url=as_text(row.get('image')) or None,
        description=strip_html(row.get('summary')) or None,
        feed=feed.provider,
    )


def decode_finnhub(payload, feed: Feed, url: str = FINNHUB_NEWS_URL) -> list[NewsRecord]:
    if not isinstance(payload, list):
        message = _extract_api_message(payload)
        if message:
            raise APIMessageError(url, message)
        raise DecodingError(url, 'Finnhub payload is not an array')
    records = _decode_rows(payload, url, lambda row: _finnhub_record(row, feed))
    return sorted(records, key=lambda record: published_sort_key(record.published_at), reverse=True)


def _rss_image(entry) -> str | None:
    for key in ('media_thumbnail', 'media_content'):
        for media in entry.get(key) or []:
            url = as_text(as_mapping(media).get('url'))
            if url:
                return url
    for link in entry.get('links') or []:
        link = as_mapping(link)
        if link.get('rel') == 'enclosure' and 'image' in as_text(link.get('type')):
            url = as_text(link.get('href'))
            if url:
                return url
    return None


def _rss_record(entry, feed: Feed, language: str | None) -> NewsRecord | None:
    title = strip_html(entry.get('title'))
    link = as_text(entry.get('link'))
    if not title and not link:
        return None
    published = None
    for field_name in ('published', 'updated', 'created'):
        published = parse_datetime(entry.get(field_name))
        if published is not None:
            break
    return NewsRecord(
        id=_record_id(as_text(entry.get('id')), link, title),
        title=title,
        link=link,
        source_name=feed.name,
        published_at=published,
        language=language,
        image_url=_rss_image(entry),
        description=strip_html(entry.get('summary') or entry.get('description')) or None,
        feed=feed.provider,
    )


def decode_rss(parsed, feed: Feed) -> list[NewsRecord]:
    language = as_text(as_mapping(parsed.get('feed')).get('language')) or None
    return _decode_rows(parsed.get('entries') or [], feed.key, lambda entry: _rss_record(entry, feed, language))


def _nft_from_row(row: dict) -> NFTCollection:
    return NFTCollection(
        rank=to_int(row.get('rank')),
        title=as_text(row.get('collection_title')) or None,
        image_url=as_text(row.get('collection_image')) or None,
        address=as_text(row.get('collection_address')) or None,
        floor_price_usd=to_float(row.get('floor_price_usd')),
        floor_change_24h=to_float(row.get('floor_price_24hr_percent_change')),
        market_cap_usd=to_float(row.get('market_cap_usd')),
        volume_usd=to_float(row.get('volume_usd')),
        volume_change_24h=to_float(row.get('volume_24hr_percent_change')),
    )


def decode_nft_collections(payload, url: str = '') -> list[NFTCollection]:
    if not isinstance(payload, list):
        raise DecodingError(url, 'collections payload is not an array')
    return _decode_rows(payload, url, _nft_from_row)


# ****************************************************************************************
# Fetchers
# ****************************************************************************************


def fetch_listings(settings: Settings, start: int = 1, limit: int = LISTINGS_PAGE_SIZE, session=None) -> list[CoinSnapshot]:
    api_key = _require_key(settings, 'coinmarketcap', 'CMC_API_KEY')
    payload = _get_json(
        COINMARKETCAP_LISTINGS_URL,
        params={'start': start, 'limit': limit, 'convert': 'USD'},
        headers={'X-CMC_PRO_API_KEY': api_key},
        session=session,
    )
    snapshots = decode_listings(payload)
    log.info('Fetched %s listing(s) starting at %s.', len(snapshots), start)
    return snapshots


def fetch_asset_meta(settings: Settings, ids: list[int], session=None) -> dict[int, CoinMeta]:
    if not ids:
        return {}
    api_key = _require_key(settings, 'coinmarketcap', 'CMC_API_KEY')
    payload = _get_json(
        COINMARKETCAP_INFO_URL,
        params={'id': ','.join(str(coin_id) for coin_id in ids)},
        headers={'X-CMC_PRO_API_KEY': api_key},
        session=session,
    )
    return decode_asset_meta(payload)


def fetch_nft_collections(settings: Settings, mode: NFTMode, session=None) -> list[NFTCollection]:
    api_key = _require_key(settings, 'moralis', 'MORALIS_API_KEY')
    url = MORALIS_COLLECTIONS_URLS[mode.value]
    payload = _get_json(url, headers={'X-API-Key': api_key}, session=session)
    return decode_nft_collections(payload, url=url)


def fetch_newsdata_feed(feed: Feed, settings: Settings, session=None) -> list[NewsRecord]:
    api_key = _require_key(settings, 'newsdata', 'NEWSDATA_API_KEY')
    url = NEWSDATA_URL.format(path=feed.key)
    payload = _get_json(url, params={'apikey': api_key}, session=session)
    records = decode_newsdata(payload, feed, url=url)
    log.debug('NewsData %s returned %s record(s).', feed.key, len(records))
    return records


def fetch_finnhub_feed(feed: Feed, settings: Settings, session=None) -> list[NewsRecord]:
    token = _require_key(settings, 'finnhub', 'FINNHUB_TOKEN')
    payload = _get_json(
        FINNHUB_NEWS_URL,
        params={'category': feed.key, 'token': token},
        session=session,
    )
    return decode_finnhub(payload, feed)


def fetch_rss_feed(feed: Feed) -> list[NewsRecord]:
    parsed = feedparser.parse(feed.key, agent=USER_AGENT)
    status = parsed.get('status')
    if status is not None and not 200 <= int(status) < 300:
        raise BadStatusError(feed.key, status)
    if parsed.get('bozo') and not parsed.get('entries'):
        raise DecodingError(feed.key, parsed.get('bozo_exception') or 'unparseable feed')
    if parsed.get('bozo'):
        log.warning('RSS parse warning for %s', feed.name)
    return decode_rss(parsed, feed)


def fetch_news_feed(feed: Feed, settings: Settings, session=None) -> list[NewsRecord]:
    if feed.provider == FeedProvider.NEWSDATA:
        return fetch_newsdata_feed(feed, settings, session=session)
    if feed.provider == FeedProvider.FINNHUB:
        return fetch_finnhub_feed(feed, settings, session=session)
    if feed.provider == FeedProvider.RSS:
        return fetch_rss_feed(feed)
    raise ValueError(f'Unsupported feed provider: {feed.provider}')


def resolve_coingecko_id(snapshot: CoinSnapshot, cache: TTLCache, session=None) -> str:
    cached = cache.get(snapshot.id)
    if cached:
        return cached

    query = snapshot.slug or snapshot.name
    payload = _get_json(COINGECKO_SEARCH_URL, params={'query': query}, session=session)
    coins = payload.get('coins') if isinstance(payload, dict) else None
    if not isinstance(coins, list):
        raise DecodingError(COINGECKO_SEARCH_URL, 'search payload has no coins array')
    coins = [coin for coin in coins if isinstance(coin, dict) and as_text(coin.get('id'))]

    symbol = snapshot.symbol.lower()
    name = snapshot.name.lower()
    match = None
    slug = (snapshot.slug or '').lower()
    if slug:
        match = next(
            (
                coin
                for coin in coins
                if coin.get('id') == slug
                or coin.get('api_symbol') == slug
                or (as_text(coin.get('symbol')).lower() == symbol and as_text(coin.get('name')).lower() == name)
            ),
            None,
        )
    if match is None:
        match = (
            next((coin for coin in coins if as_text(coin.get('symbol')).lower() == symbol), None)
            or next((coin for coin in coins if as_text(coin.get('name')).lower() == name), None)
            or (coins[0] if coins else None)
        )
    if match is None:
        raise NotFoundError(f'No CoinGecko id for {snapshot.symbol}')
    gecko_id = as_text(match['id'])
    cache.set(snapshot.id, gecko_id)
    return gecko_id


# ****************************************************************************************
# Sample data
# ****************************************************************************************


def build_sample_snapshots() -> list[CoinSnapshot]:
    return [
        CoinSnapshot(id=1, name='Bitcoin', symbol='BTC', slug='bitcoin', rank=1, price=64250.0,
                     percent_change_1h=0.21, percent_change_24h=1.84, percent_change_7d=-3.2,
                     market_cap=1.26e12, volume_24h=3.1e10),
        CoinSnapshot(id=1027, name='Ethereum', symbol='ETH', slug='ethereum', rank=2, price=3120.5,
                     percent_change_1h=-0.12, percent_change_24h=2.6, percent_change_7d=4.1,
                     market_cap=3.75e11, volume_24h=1.4e10),
        CoinSnapshot(id=5426, name='Solana', symbol='SOL', slug='solana', rank=5, price=142.3,
                     percent_change_1h=0.5, percent_change_24h=-1.1, percent_change_7d=None,
                     market_cap=6.4e10, volume_24h=2.2e9),
    ]


def build_sample_records() -> list[NewsRecord]:
    now = utc_now()
    sources = ['CoinDesk', 'CoinTelegraph', 'Decrypt']
    headlines = [
        'Bitcoin holds above $64K as ETF inflows continue',
        'Ethereum developers schedule next network upgrade',
        'Solana DeFi volume climbs to a monthly high',
        'Regulators publish draft stablecoin framework',
    ]
    records: list[NewsRecord] = []
    for idx in range(12):
        source = sources[idx % 3] if idx < 9 else sources[0]
        title = headlines[idx % len(headlines)]
        link = f'https://news.example.com/{source.lower()}/story-{idx % 8}/?utm_source=feed'
        records.append(
            NewsRecord(
                id=stable_id(link, title),
                title=title,
                link=link,
                source_name=source,
                published_at=now - timedelta(minutes=15 * idx),
                language='english',
                image_url=f'https://img.example.com/{idx}.png' if idx % 2 == 0 else None,
                description=f'Sample coverage for {title.lower()}.',
                feed=FeedProvider.RSS,
            )
        )
    return records
