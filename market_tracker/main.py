##########################################################################################
#
# Script name: main.py
#
# Description: CLI entrypoint for news digests, charts, portfolio totals, market
#              summaries and the watchlist.
#
##########################################################################################

import argparse
import logging
import os
import sys
from datetime import date

from .aggregator import NewsHub, aggregate_news, filter_for_coin
from .analysis import render_summary, reply
from .cache import TTLCache
from .config import GECKO_ID_CACHE_TTL, Settings, load_holdings, load_settings
from .diversity import source_of
from .fetchers import FetchError, build_sample_records, build_sample_snapshots, resolve_coingecko_id
from .formatting import format_change, format_price, shorten_currency
from .market import ListingsBook, find_snapshot
from .models import Feed, FeedProvider, FeedResult, NewsDigest, PriceRange
from .portfolio import price_map, summarize
from .series import chart_points, range_params, series_for_snapshot
from .watchlist import load_watchlist, save_watchlist


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(os.path.basename(sys.argv[0]))
log.setLevel(logging.DEBUG)
log.propagate = False
formatter = logging.Formatter(
    '%(asctime)-15s [%(funcName)25s:%(lineno)-5s] %(levelname)-8s %(message)s'
)

root_log = logging.getLogger()
root_log.setLevel(logging.DEBUG)

SAMPLE_FEED = Feed(provider=FeedProvider.RSS, key='sample', name='Sample')
NEWS_LIMIT = 20


# ****************************************************************************************
# Functions
# ****************************************************************************************


def _configure_file_logging(path: str = 'market_tracker.log') -> None:
    # The log file is opened once per process; later runs append to it.
    if any(isinstance(handler, logging.FileHandler) for handler in log.handlers):
        return
    fh = logging.FileHandler(path, mode='w')
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)
    log.addHandler(fh)
    root_log.addHandler(fh)


def _configure_stdout_logging(level: int) -> None:
    for handler in log.handlers:
        if type(handler) is logging.StreamHandler:
            handler.setLevel(level)
            return
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(formatter)
    log.addHandler(ch)
    root_log.addHandler(ch)


def _load_snapshots(settings: Settings, use_sample_data: bool) -> list:
    if use_sample_data:
        return build_sample_snapshots()
    book = ListingsBook(settings)
    book.load()
    if book.error_message:
        log.warning('Listings unavailable: %s', book.error_message)
    return book.snapshots


def build_news_digest(settings: Settings, use_sample_data: bool = False) -> NewsDigest:
    if use_sample_data:
        log.debug('Using sample data for news digest.')
        results = [FeedResult(feed=SAMPLE_FEED, records=build_sample_records())]
        return aggregate_news(
            results,
            preferred_language=settings.preferred_language,
            max_consecutive_per_source=settings.max_consecutive_per_source,
        )
    hub = NewsHub(settings)
    return hub.refresh() or hub.digest


def report_news(settings: Settings, use_sample_data: bool, coin_query: str | None = None) -> int:
    digest = build_news_digest(settings, use_sample_data=use_sample_data)
    records = digest.records
    if coin_query:
        snapshot = find_snapshot(_load_snapshots(settings, use_sample_data), coin_query)
        if snapshot is None:
            log.error('Unknown coin: %s', coin_query)
            return 1
        records = filter_for_coin(records, snapshot)

    if digest.message:
        level = logging.ERROR if digest.blocking else logging.WARNING
        log.log(level, 'Feed problems:\n%s', digest.message)
    if digest.blocking:
        return 1
    for record in records[:NEWS_LIMIT]:
        stamp = record.published_at.strftime('%Y-%m-%d %H:%M') if record.published_at else '----'
        log.info('%s  [%s] %s', stamp, source_of(record), record.title)
    log.info('%s story(ies) after dedupe.', len(records))
    return 0


def report_chart(settings: Settings, coin_query: str, price_range: PriceRange, use_sample_data: bool) -> int:
    snapshot = find_snapshot(_load_snapshots(settings, use_sample_data), coin_query)
    if snapshot is None:
        log.error('Unknown coin: %s', coin_query)
        return 1
    series = series_for_snapshot(snapshot, price_range)
    if not series:
        log.warning('No data to chart %s over %s.', snapshot.symbol, price_range.value)
        return 1
    params = range_params(snapshot, price_range)
    log.info(
        '%s %s: %s -> %s (%s)',
        snapshot.symbol,
        price_range.value,
        format_price(series[0], settings.currency),
        format_price(series[-1], settings.currency),
        format_change(params.percent_change),
    )
    points = chart_points(series, params.granularity)
    step = max(1, len(points) // 12)
    for stamp, value in points[::step]:
        log.info('  %s  %s', stamp.strftime('%Y-%m-%d %H:%M'), format_price(value, settings.currency))
    return 0


def report_portfolio(settings: Settings, holdings_path: str, use_sample_data: bool) -> int:
    holdings = load_holdings(holdings_path)
    snapshots = _load_snapshots(settings, use_sample_data)
    prices = price_map(snapshots)
    summary = summarize(holdings, prices, snapshots)
    names = {snapshot.id: snapshot.symbol for snapshot in snapshots}
    currency = settings.currency

    log.info('Market value:  %s', format_price(summary.total_market_value, currency))
    log.info('Cost basis:    %s', format_price(summary.total_cost_basis, currency))
    log.info('Unrealized PL: %s', format_price(summary.unrealized_pl, currency))
    log.info('24h change:    %s', format_price(summary.day_change, currency))
    for allocation in summary.allocations:
        log.info(
            '  %-8s %12s  %5.1f%%',
            names.get(allocation.coin_id, allocation.coin_id),
            shorten_currency(allocation.value, currency),
            allocation.share * 100.0,
        )
    if summary.unpriced_coin_ids:
        log.warning('No live price for coin id(s): %s', ', '.join(str(coin_id) for coin_id in summary.unpriced_coin_ids))
    return 0


def report_gecko_id(settings: Settings, coin_query: str, use_sample_data: bool) -> int:
    snapshot = find_snapshot(_load_snapshots(settings, use_sample_data), coin_query)
    if snapshot is None:
        log.error('Unknown coin: %s', coin_query)
        return 1
    try:
        gecko_id = resolve_coingecko_id(snapshot, TTLCache(ttl=GECKO_ID_CACHE_TTL))
    except FetchError as exc:
        log.error('CoinGecko lookup failed for %s: %s', snapshot.symbol, exc)
        return 1
    log.info('%s -> CoinGecko id %s', snapshot.symbol, gecko_id)
    return 0


def report_summary(settings: Settings, use_sample_data: bool, prompt: str | None = None) -> int:
    snapshots = _load_snapshots(settings, use_sample_data)
    text = reply(prompt, snapshots, settings.currency) if prompt else render_summary(snapshots, settings.currency)
    for line in text.splitlines():
        log.info('%s', line)
    return 0 if snapshots else 1


def update_watchlist(settings: Settings, watchlist_path: str, coin_query: str, watch: bool, use_sample_data: bool) -> int:
    snapshot = find_snapshot(_load_snapshots(settings, use_sample_data), coin_query)
    if snapshot is None:
        log.error('Unknown coin: %s', coin_query)
        return 1
    watchlist = load_watchlist(watchlist_path)
    changed = watchlist.add(snapshot.id) if watch else watchlist.remove(snapshot.id)
    if not changed:
        log.info('%s was already %s.', snapshot.symbol, 'watched' if watch else 'unwatched')
        return 0
    save_watchlist(watchlist_path, watchlist)
    log.info('%s %s the watchlist.', snapshot.symbol, 'added to' if watch else 'removed from')
    return 0


def report_watchlist(settings: Settings, watchlist_path: str, use_sample_data: bool) -> int:
    watchlist = load_watchlist(watchlist_path)
    if not len(watchlist):
        log.info('Watchlist is empty.')
        return 0
    snapshots = watchlist.watched(_load_snapshots(settings, use_sample_data))
    for snapshot in snapshots:
        log.info(
            '  %-8s %14s  %s',
            snapshot.symbol,
            format_price(snapshot.price, settings.currency),
            format_change(snapshot.percent_change_24h),
        )
    missing = set(watchlist.ids) - {snapshot.id for snapshot in snapshots}
    if missing:
        log.warning('No listing for watched coin id(s): %s', ', '.join(str(coin_id) for coin_id in sorted(missing)))
    return 0


# ****************************************************************************************
# Handle the arguments
# ****************************************************************************************


def handle_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Track crypto prices, news, and a local portfolio.')
    parser.add_argument('--config', default='config/settings.yaml', help='Path to settings YAML.')
    parser.add_argument('--holdings', default='config/holdings.yaml', help='Path to holdings YAML.')
    parser.add_argument('--news', action='store_true', help='Print the merged news digest.')
    parser.add_argument('--coin', default=None, help='Restrict news to one coin (id, symbol, name, or slug).')
    parser.add_argument('--chart', metavar='COIN', default=None, help='Print a synthetic chart for a coin.')
    parser.add_argument(
        '--range',
        dest='price_range',
        default=PriceRange.DAY.value,
        choices=[item.value for item in PriceRange],
        help='Chart range.',
    )
    parser.add_argument('--gecko-id', metavar='COIN', default=None, help='Look up the CoinGecko id for a coin.')
    parser.add_argument('--portfolio', action='store_true', help='Print portfolio totals and allocations.')
    parser.add_argument('--summary', action='store_true', help='Print market breadth, movers and largest caps.')
    parser.add_argument('--ask', metavar='PROMPT', default=None, help='Ask a question about the current listings.')
    parser.add_argument('--watchlist-file', default='config/watchlist.yaml', help='Path to watchlist YAML.')
    parser.add_argument('--watchlist', action='store_true', help='Print prices for watched coins.')
    parser.add_argument('--watch', metavar='COIN', default=None, help='Add a coin to the watchlist.')
    parser.add_argument('--unwatch', metavar='COIN', default=None, help='Remove a coin from the watchlist.')
    parser.add_argument(
        '--sample',
        action='store_true',
        help='Use local sample data and skip all network requests.',
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose output to stdout.')
    parser.add_argument('-q', '--quiet', action='store_true', help='Minimal stdout.')
    args = parser.parse_args(argv)

    # Configure stdout logging based on arguments
    if args.verbose:
        _configure_stdout_logging(logging.DEBUG)
    elif args.quiet:
        _configure_stdout_logging(logging.ERROR)
    else:
        _configure_stdout_logging(logging.INFO)

    log.info('++++++++++++++++++++++++++++++++++++++++++++++')
    log.info('+  %s', os.path.basename(sys.argv[0]))
    log.info('+  Python Version: %s', sys.version.split()[0])
    log.info('+  Today is: %s', date.today())
    log.info('++++++++++++++++++++++++++++++++++++++++++++++')
    return args


# ****************************************************************************************
# Main
# ****************************************************************************************


def main(argv=None) -> int:
    _configure_file_logging()
    args = handle_args(argv)
    settings = load_settings(args.config)
    status = 0
    ran = False
    if args.news:
        ran = True
        status |= report_news(settings, args.sample, coin_query=args.coin)
    if args.chart:
        ran = True
        status |= report_chart(settings, args.chart, PriceRange(args.price_range), args.sample)
    if args.portfolio:
        ran = True
        status |= report_portfolio(settings, args.holdings, args.sample)
    if args.gecko_id:
        ran = True
        status |= report_gecko_id(settings, args.gecko_id, args.sample)
    if args.summary or args.ask:
        ran = True
        status |= report_summary(settings, args.sample, prompt=args.ask)
    if args.watch:
        ran = True
        status |= update_watchlist(settings, args.watchlist_file, args.watch, True, args.sample)
    if args.unwatch:
        ran = True
        status |= update_watchlist(settings, args.watchlist_file, args.unwatch, False, args.sample)
    if args.watchlist:
        ran = True
        status |= report_watchlist(settings, args.watchlist_file, args.sample)
    if not ran:
        log.info(
            'Nothing to do. Pass --news, --chart COIN, --gecko-id COIN, --portfolio, --summary, '
            '--ask PROMPT, --watchlist, --watch COIN, or --unwatch COIN.'
        )
    return status


if __name__ == '__main__':
    sys.exit(main())
