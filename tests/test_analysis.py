##########################################################################################
#
# Script name: test_analysis.py
#
# Description: Market breadth, change statistics, movers, and prompt routing.
#
##########################################################################################

import pytest

from market_tracker.analysis import (
    EMPTY_SNAPSHOT_TEXT,
    HELP_TEXT,
    breadth,
    largest_market_caps,
    mean_change,
    median_change,
    render_summary,
    reply,
    summarize_market,
    top_gainers,
    top_losers,
)
from market_tracker.formatting import format_price
from market_tracker.models import CoinSnapshot


def _coin(coin_id: int, symbol: str, change: float | None, cap: float | None = None) -> CoinSnapshot:
    return CoinSnapshot(
        id=coin_id,
        name=symbol.title(),
        symbol=symbol,
        price=float(coin_id),
        percent_change_24h=change,
        market_cap=cap,
    )


SNAPSHOTS = [
    _coin(1, 'AAA', 4.0, 500.0),
    _coin(2, 'BBB', -2.0, 900.0),
    _coin(3, 'CCC', None, None),
    _coin(4, 'DDD', 0.0, 100.0),
    _coin(5, 'EEE', 1.0, 300.0),
]


def test_breadth_counts_missing_change_as_unchanged() -> None:
    assert breadth(SNAPSHOTS) == (2, 1, 2)
    assert breadth([]) == (0, 0, 0)


def test_median_of_even_count_averages_middle_pair() -> None:
    # Changes present: -2, 0, 1, 4
    assert median_change(SNAPSHOTS) == pytest.approx(0.5)
    assert mean_change(SNAPSHOTS) == pytest.approx(0.75)


def test_median_of_odd_count_and_empty() -> None:
    assert median_change([_coin(1, 'A', 3.0), _coin(2, 'B', -1.0), _coin(3, 'C', 10.0)]) == 3.0
    assert median_change([_coin(1, 'A', None)]) == 0.0
    assert mean_change([]) == 0.0


def test_movers_put_missing_change_last() -> None:
    assert [item.symbol for item in top_gainers(SNAPSHOTS)] == ['AAA', 'EEE', 'DDD', 'BBB', 'CCC']
    assert [item.symbol for item in top_losers(SNAPSHOTS)] == ['BBB', 'DDD', 'EEE', 'AAA', 'CCC']
    assert [item.symbol for item in top_gainers(SNAPSHOTS, limit=2)] == ['AAA', 'EEE']


def test_largest_market_caps_treat_missing_as_zero() -> None:
    assert [item.symbol for item in largest_market_caps(SNAPSHOTS, limit=3)] == ['BBB', 'AAA', 'EEE']
    assert largest_market_caps(SNAPSHOTS)[-1].symbol == 'CCC'


def test_summarize_market() -> None:
    assert summarize_market([]) is None
    summary = summarize_market(SNAPSHOTS, limit=1)
    assert (summary.advancers, summary.decliners, summary.unchanged) == (2, 1, 2)
    assert [item.symbol for item in summary.gainers] == ['AAA']
    assert [item.symbol for item in summary.losers] == ['BBB']
    assert [item.symbol for item in summary.largest] == ['BBB']


def test_render_summary_text() -> None:
    text = render_summary(SNAPSHOTS)
    assert 'Breadth: 2 advancers, 1 decliners, 2 unchanged.' in text
    assert 'Avg 24h change: 0.75% | Median 24h change: 0.50%' in text
    assert f'AAA: {format_price(1.0)} (4.00%)' in text
    assert render_summary([]) == EMPTY_SNAPSHOT_TEXT


def test_reply_routes_by_keyword() -> None:
    assert reply('Show me the top gainers', SNAPSHOTS).startswith('Top gainers (24h):')
    assert reply('what is going DOWN?', SNAPSHOTS).startswith('Top losers (24h):')
    assert reply('BTC dominance', SNAPSHOTS).startswith('Largest market caps:')
    assert reply('give me an overview', SNAPSHOTS).startswith('Quick read on the market:')
    assert reply('hello', SNAPSHOTS) == HELP_TEXT


def test_reply_gainers_checked_before_market_cap() -> None:
    # "up" wins over "market cap" because gainers are matched first.
    assert reply('market cap pick up', SNAPSHOTS).startswith('Top gainers (24h):')


def test_reply_on_empty_snapshot() -> None:
    assert reply('gainers', []) == 'No gainers found in the current snapshot.'
    assert reply('losers', []) == 'No losers found in the current snapshot.'
    assert reply('market cap', []) == 'No market cap data available.'
    assert reply('summary', []) == EMPTY_SNAPSHOT_TEXT
