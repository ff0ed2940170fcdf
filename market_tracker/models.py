from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class FeedProvider(Enum):
    NEWSDATA = 'newsdata'
    FINNHUB = 'finnhub'
    RSS = 'rss'


class PriceRange(Enum):
    HOUR = '1h'
    DAY = '24h'
    WEEK = '7d'
    MONTH = '30d'
    YEAR = '1y'


class NFTMode(Enum):
    TOP = 'top'
    HOTTEST = 'hottest'


class Currency(Enum):
    USD = 'usd'
    EUR = 'eur'
    GBP = 'gbp'
    JPY = 'jpy'


class Resource(Enum):
    LISTINGS = 'listings'
    NFTS = 'nfts'
    NEWS = 'news'


@dataclass(frozen=True)
class Feed:
    provider: FeedProvider
    key: str
    name: str


@dataclass
class NewsRecord:
    id: str
    title: str
    link: str
    source_name: str = ''
    published_at: datetime | None = None
    source_id: str = ''
    language: str | None = None
    image_url: str | None = None
    description: str | None = None
    feed: FeedProvider | None = None

    def has_identity(self) -> bool:
        return bool(self.title.strip() or self.link.strip())


@dataclass(frozen=True)
class CoinSnapshot:
    id: int
    name: str
    symbol: str
    price: float
    slug: str | None = None
    rank: int | None = None
    percent_change_1h: float | None = None
    percent_change_24h: float | None = None
    percent_change_7d: float | None = None
    market_cap: float | None = None
    volume_24h: float | None = None


@dataclass(frozen=True)
class CoinMeta:
    id: int
    logo_url: str | None = None


@dataclass(frozen=True)
class NFTCollection:
    rank: int | None
    title: str | None
    image_url: str | None = None
    address: str | None = None
    floor_price_usd: float | None = None
    floor_change_24h: float | None = None
    market_cap_usd: float | None = None
    volume_usd: float | None = None
    volume_change_24h: float | None = None

    @property
    def id(self) -> str:
        rank = f'#{self.rank}' if self.rank is not None else 'norank'
        title = (self.title or '').strip() or 'notitle'
        image = (self.image_url or '').strip() or 'noimg'
        return '|'.join([self.address or 'noaddr', rank, title, image])


@dataclass
class Holding:
    id: str
    coin_id: int
    amount: float
    cost_per_unit: float
    note: str | None = None
    date: datetime | None = None

    @property
    def cost_basis_total(self) -> float:
        return self.amount * self.cost_per_unit


@dataclass
class FeedResult:
    feed: Feed
    records: list[NewsRecord] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class NewsDigest:
    records: list[NewsRecord]
    message: str | None = None
    blocking: bool = False
