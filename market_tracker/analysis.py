##########################################################################################
#
# Script name: analysis.py
#
# Description: Market breadth, 24h change statistics, movers, and keyword-routed
#              replies over a listings snapshot.
#
##########################################################################################

import math
from dataclasses import dataclass, field

from .formatting import format_price, shorten_currency
from .models import CoinSnapshot, Currency


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

SUMMARY_LIMIT = 5
REPLY_LIMIT = 10

EMPTY_SNAPSHOT_TEXT = 'No market data available yet. Refresh the listings first.'
HELP_TEXT = (
    'I can summarize the market, show top gainers/losers, and largest market caps '
    'based on the latest data. Try: "overview", "top gainers", "top losers", or '
    '"largest market caps".'
)


@dataclass
class MarketSummary:
    advancers: int
    decliners: int
    unchanged: int
    mean_change: float
    median_change: float
    gainers: list[CoinSnapshot] = field(default_factory=list)
    losers: list[CoinSnapshot] = field(default_factory=list)
    largest: list[CoinSnapshot] = field(default_factory=list)


# ****************************************************************************************
# Functions
# ****************************************************************************************


def breadth(snapshots: list[CoinSnapshot]) -> tuple[int, int, int]:
    '''
    Advancers, decliners and unchanged by 24h change. A missing change counts
    as unchanged.
    '''
    advancers = sum(1 for item in snapshots if (item.percent_change_24h or 0.0) > 0)
    decliners = sum(1 for item in snapshots if (item.percent_change_24h or 0.0) < 0)
    return advancers, decliners, len(snapshots) - advancers - decliners


def _changes(snapshots: list[CoinSnapshot]) -> list[float]:
    return sorted(item.percent_change_24h for item in snapshots if item.percent_change_24h is not None)


def mean_change(snapshots: list[CoinSnapshot]) -> float:
    changes = _changes(snapshots)
    return sum(changes) / max(1, len(changes))


def median_change(snapshots: list[CoinSnapshot]) -> float:
    changes = _changes(snapshots)
    if not changes:
        return 0.0
    count = len(changes)
    return (changes[count // 2] + changes[(count - 1) // 2]) / 2.0


def top_gainers(snapshots: list[CoinSnapshot], limit: int = SUMMARY_LIMIT) -> list[CoinSnapshot]:
    def key(item: CoinSnapshot) -> float:
        return item.percent_change_24h if item.percent_change_24h is not None else -math.inf

    return sorted(snapshots, key=key, reverse=True)[:limit]


def top_losers(snapshots: list[CoinSnapshot], limit: int = SUMMARY_LIMIT) -> list[CoinSnapshot]:
    def key(item: CoinSnapshot) -> float:
        return item.percent_change_24h if item.percent_change_24h is not None else math.inf

    return sorted(snapshots, key=key)[:limit]


def largest_market_caps(snapshots: list[CoinSnapshot], limit: int = SUMMARY_LIMIT) -> list[CoinSnapshot]:
    return sorted(snapshots, key=lambda item: item.market_cap or 0.0, reverse=True)[:limit]


def summarize_market(snapshots: list[CoinSnapshot], limit: int = SUMMARY_LIMIT) -> MarketSummary | None:
    if not snapshots:
        return None
    advancers, decliners, unchanged = breadth(snapshots)
    return MarketSummary(
        advancers=advancers,
        decliners=decliners,
        unchanged=unchanged,
        mean_change=mean_change(snapshots),
        median_change=median_change(snapshots),
        gainers=top_gainers(snapshots, limit),
        losers=top_losers(snapshots, limit),
        largest=largest_market_caps(snapshots, limit),
    )


def _mover_line(item: CoinSnapshot, currency: Currency) -> str:
    return f'{item.symbol}: {format_price(item.price, currency)} ({item.percent_change_24h or 0.0:.2f}%)'


def _cap_line(item: CoinSnapshot, currency: Currency) -> str:
    return f'{item.symbol}: {shorten_currency(item.market_cap or 0.0, currency)}'


def render_summary(snapshots: list[CoinSnapshot], currency: Currency = Currency.USD) -> str:
    summary = summarize_market(snapshots)
    if summary is None:
        return EMPTY_SNAPSHOT_TEXT
    lines = [
        'Quick read on the market:',
        '',
        f'Breadth: {summary.advancers} advancers, {summary.decliners} decliners, '
        f'{summary.unchanged} unchanged.',
        f'Avg 24h change: {summary.mean_change:.2f}% | Median 24h change: {summary.median_change:.2f}%',
        '',
        'Top gainers (24h):',
        *[_mover_line(item, currency) for item in summary.gainers],
        '',
        'Top losers (24h):',
        *[_mover_line(item, currency) for item in summary.losers],
        '',
        'Largest market caps:',
        *[_cap_line(item, currency) for item in summary.largest],
    ]
    return '\n'.join(lines)


def reply(prompt: str, snapshots: list[CoinSnapshot], currency: Currency = Currency.USD) -> str:
    '''
    Answer a free-text question from the snapshot. Keywords are checked in
    order: gainers, losers, market cap, overview; anything else gets help text.
    '''
    query = prompt.lower()
    if 'gainer' in query or 'up' in query:
        top = top_gainers(snapshots, REPLY_LIMIT)
        if not top:
            return 'No gainers found in the current snapshot.'
        return '\n'.join(['Top gainers (24h):'] + [_mover_line(item, currency) for item in top])
    if 'loser' in query or 'down' in query:
        bottom = top_losers(snapshots, REPLY_LIMIT)
        if not bottom:
            return 'No losers found in the current snapshot.'
        return '\n'.join(['Top losers (24h):'] + [_mover_line(item, currency) for item in bottom])
    if 'market cap' in query or 'dominance' in query:
        largest = largest_market_caps(snapshots, REPLY_LIMIT)
        if not largest:
            return 'No market cap data available.'
        return '\n'.join(['Largest market caps:'] + [_cap_line(item, currency) for item in largest])
    if 'overview' in query or 'summary' in query or 'market' in query:
        return render_summary(snapshots, currency)
    return HELP_TEXT
