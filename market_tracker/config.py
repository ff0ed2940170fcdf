##########################################################################################
#
# Script name: config.py
#
# Description: Static tables, feed catalog, and YAML settings/holdings loaders.
#
##########################################################################################

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone

import yaml
from dateutil import parser as date_parser

from .models import Currency, Feed, FeedProvider, Holding, PriceRange


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)

TRACKING_PARAMS = frozenset(
    {
        'utm_source',
        'utm_medium',
        'utm_campaign',
        'utm_term',
        'utm_content',
        'gclid',
        'fbclid',
        'mc_cid',
        'mc_eid',
    }
)
TITLE_SIGNATURE_TOKENS = 12

DEFAULT_PREFERRED_LANGUAGE = 'english'
DEFAULT_MAX_CONSECUTIVE_PER_SOURCE = 1
DEFAULT_MAX_WORKERS = 4
REQUEST_TIMEOUT = 15
USER_AGENT = 'market-tracker/1.0'

COINMARKETCAP_LISTINGS_URL = 'https://pro-api.coinmarketcap.com/v1/cryptocurrency/listings/latest'
COINMARKETCAP_INFO_URL = 'https://pro-api.coinmarketcap.com/v2/cryptocurrency/info'
COINGECKO_SEARCH_URL = 'https://api.coingecko.com/api/v3/search'
MORALIS_COLLECTIONS_URLS = {
    'top': 'https://deep-index.moralis.io/api/v2.2/market-data/nfts/top-collections',
    'hottest': 'https://deep-index.moralis.io/api/v2.2/market-data/nfts/hottest-collections',
}
FINNHUB_NEWS_URL = 'https://finnhub.io/api/v1/news'
NEWSDATA_URL = 'https://newsdata.io/api/1/{path}'

LISTINGS_PAGE_SIZE = 50
GECKO_ID_CACHE_TTL = 6 * 60 * 60


@dataclass(frozen=True)
class RangeSpec:
    tag: str
    points: int
    granularity: int
    wiggle_scale: float


RANGE_SPECS = {
    PriceRange.HOUR: RangeSpec(tag='h1', points=60, granularity=60, wiggle_scale=0.0025),
    PriceRange.DAY: RangeSpec(tag='d1', points=96, granularity=15 * 60, wiggle_scale=0.005),
    PriceRange.WEEK: RangeSpec(tag='w1', points=168, granularity=60 * 60, wiggle_scale=0.01),
    PriceRange.MONTH: RangeSpec(tag='m1', points=120, granularity=6 * 60 * 60, wiggle_scale=0.015),
    PriceRange.YEAR: RangeSpec(tag='y1', points=180, granularity=24 * 60 * 60, wiggle_scale=0.02),
}

# Days covered by the ranges that have no native percent-change statistic.
EXTRAPOLATED_RANGE_DAYS = {
    PriceRange.MONTH: 30.0,
    PriceRange.YEAR: 365.0,
}

# Static USD conversion rates; there is no live FX source.
FX_RATES = {
    Currency.USD: 1.0,
    Currency.EUR: 0.92,
    Currency.GBP: 0.79,
    Currency.JPY: 150.0,
}

CURRENCY_CODES = {
    Currency.USD: ('USD', '$'),
    Currency.EUR: ('EUR', '€'),
    Currency.GBP: ('GBP', '£'),
    Currency.JPY: ('JPY', '¥'),
}

DEFAULT_FEEDS = [
    Feed(provider=FeedProvider.NEWSDATA, key='crypto', name='NewsData Crypto'),
    Feed(provider=FeedProvider.NEWSDATA, key='market', name='NewsData Market'),
    Feed(provider=FeedProvider.RSS, key='https://www.coindesk.com/arc/outboundfeeds/rss/', name='CoinDesk'),
    Feed(provider=FeedProvider.RSS, key='https://cointelegraph.com/rss', name='CoinTelegraph'),
]

FINNHUB_CATEGORIES = ('general', 'forex', 'crypto', 'merger')

API_KEY_ENV = {
    'coinmarketcap': 'CMC_API_KEY',
    'moralis': 'MORALIS_API_KEY',
    'finnhub': 'FINNHUB_TOKEN',
    'newsdata': 'NEWSDATA_API_KEY',
}


@dataclass
class Settings:
    preferred_language: str = DEFAULT_PREFERRED_LANGUAGE
    max_consecutive_per_source: int = DEFAULT_MAX_CONSECUTIVE_PER_SOURCE
    currency: Currency = Currency.USD
    max_workers: int = DEFAULT_MAX_WORKERS
    feeds: list[Feed] = field(default_factory=lambda: list(DEFAULT_FEEDS))
    api_keys: dict[str, str] = field(default_factory=dict)

    def api_key(self, service: str) -> str:
        return self.api_keys.get(service, '')


# ****************************************************************************************
# Functions
# ****************************************************************************************


def _read_yaml(path: str) -> dict:
    with open(path, 'r', encoding='utf-8') as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, dict):
        raise ValueError(f'{path} must contain a mapping at the top level')
    return payload


def _parse_feed(entry: dict, idx: int) -> Feed:
    if not isinstance(entry, dict):
        raise ValueError(f'feeds[{idx}] must be a mapping')
    provider_raw = (entry.get('provider') or '').strip().lower()
    try:
        provider = FeedProvider(provider_raw)
    except ValueError as exc:
        raise ValueError(f'feeds[{idx}] has unsupported provider: {provider_raw!r}') from exc
    key = str(entry.get('key') or '').strip()
    if not key:
        raise ValueError(f'feeds[{idx}] is missing a key')
    if provider == FeedProvider.FINNHUB and key not in FINNHUB_CATEGORIES:
        raise ValueError(f'feeds[{idx}] has unknown Finnhub category: {key!r}')
    name = entry.get('name') or f'{provider.value}:{key}'
    return Feed(provider=provider, key=key, name=name)


def _env_api_keys() -> dict[str, str]:
    keys: dict[str, str] = {}
    for service, env_name in API_KEY_ENV.items():
        value = (os.getenv(env_name) or '').strip()
        if value:
            keys[service] = value
    return keys


def load_settings(path: str | None = None) -> Settings:
    settings = Settings(api_keys=_env_api_keys())
    if not path:
        return settings
    if not os.path.exists(path):
        log.warning('Settings file %s not found. Using defaults.', path)
        return settings

    payload = _read_yaml(path)
    if 'preferred_language' in payload:
        settings.preferred_language = str(payload['preferred_language']).strip()
    if 'max_consecutive_per_source' in payload:
        settings.max_consecutive_per_source = int(payload['max_consecutive_per_source'])
    if 'max_workers' in payload:
        settings.max_workers = max(1, int(payload['max_workers']))
    if 'currency' in payload:
        try:
            settings.currency = Currency(str(payload['currency']).strip().lower())
        except ValueError as exc:
            raise ValueError(f'Unsupported currency: {payload["currency"]!r}') from exc

    feeds = payload.get('feeds')
    if feeds is not None:
        if not isinstance(feeds, list):
            raise ValueError('settings.feeds must be a list')
        settings.feeds = [_parse_feed(entry, idx) for idx, entry in enumerate(feeds)]
    log.info('Loaded settings from %s (%s feed(s)).', path, len(settings.feeds))
    return settings


def _parse_holding_date(value) -> datetime | None:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = date_parser.parse(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def load_holdings(path: str) -> list[Holding]:
    payload = _read_yaml(path)
    rows = payload.get('holdings', [])
    if not isinstance(rows, list):
        raise ValueError('holdings must be a list')

    holdings: list[Holding] = []
    for idx, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValueError(f'holdings[{idx}] must be a mapping')
        try:
            coin_id = int(row['coin_id'])
            amount = float(row['amount'])
            cost_per_unit = float(row['cost_per_unit'])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f'holdings[{idx}] needs numeric coin_id, amount and cost_per_unit') from exc
        if amount <= 0 or cost_per_unit <= 0:
            raise ValueError(f'holdings[{idx}] amount and cost_per_unit must be positive')
        holdings.append(
            Holding(
                id=str(row.get('id') or f'holding-{idx + 1}'),
                coin_id=coin_id,
                amount=amount,
                cost_per_unit=cost_per_unit,
                note=row.get('note'),
                date=_parse_holding_date(row.get('date')),
            )
        )
    return holdings
