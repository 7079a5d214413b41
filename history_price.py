"""
Per-stock price lookups over the daily snapshot files.

Reading can write: with backfill enabled, a missing price is fetched live and
stored under the date being read, so the next read finds it on disk.
"""
import time
import logging
from datetime import datetime

import settings
from date_resolver import ResolvedHistoryFile, load_records_for_date, normalize_date
from history_store import (
    find_record, list_snapshot_dates, read_snapshot, snapshot_path, upsert_record,
)


def _default_fetch():
    from scraper import ShikihoClient
    return ShikihoClient().fetch_latest_quote


def _backfill(stock_code, date, history_dir, fetch_quote):
    """Fetch a live quote and store it as ``date``'s record.

    Returns the stored record, or None if the fetch failed (nothing is
    written in that case).
    """
    quote = fetch_quote(stock_code)
    if not quote:
        logging.warning(f"Backfill for {stock_code} on {date} failed; leaving price empty")
        return None

    record = {
        'stock_code': str(stock_code),
        'company_name': quote.get('company_name'),
        'ratio_of_price_to_200days_ma': quote.get('ratio_of_price_to_200days_ma'),
        'current_price': quote.get('current_price'),
        'fetched_at': date,
        'snapshotted_at': datetime.now().isoformat(),
    }
    upsert_record(date, record, history_dir)
    return record


def get_price_at_date(stock_code, date=None, backfill=True, history_dir=None, fetch_quote=None):
    """Price of ``stock_code`` on ``date`` (default today).

    Returns ``(resolved, price)``. The file for the exact date is tried first;
    if it has no price and backfill is on, a live quote is stored under that
    date. Without backfill, or when the live fetch fails, the latest snapshot
    on or before the date answers instead, and NoHistoryAvailable propagates
    if there is none.
    """
    directory = history_dir or settings.HISTORY_DIR
    requested = normalize_date(date)
    exact = ResolvedHistoryFile(requested, requested, snapshot_path(requested, directory))

    record = find_record(read_snapshot(requested, directory), stock_code)
    if record and record.get('current_price') is not None:
        return exact, record['current_price']

    if backfill:
        stored = _backfill(stock_code, requested, directory, fetch_quote or _default_fetch())
        if stored:
            return exact, stored.get('current_price')

    # No live price: answer from the files on disk.
    resolved, records = load_records_for_date(requested, directory)
    record = find_record(records, stock_code)
    return resolved, record.get('current_price') if record else None


def build_series(stock_code, end_date=None, points=None, backfill=True,
                 history_dir=None, fetch_quote=None, request_interval=None):
    """The last ``points`` snapshot dates up to ``end_date`` for one stock.

    ``points`` counts snapshot files, not calendar days: days with no file
    are skipped rather than zero-filled. Each point is
    ``{"date", "price", "ratio_to_ma200"}``, ascending by date.
    """
    points = settings.DEFAULT_SERIES_POINTS if points is None else int(points)
    if points < 1:
        raise ValueError("points must be at least 1")

    directory = history_dir or settings.HISTORY_DIR
    end = normalize_date(end_date)
    interval = settings.REQUEST_INTERVAL if request_interval is None else request_interval
    fetch = None
    fetched_once = False

    def fetch_throttled(code):
        nonlocal fetch, fetched_once
        if fetch is None:
            fetch = fetch_quote or _default_fetch()
        if fetched_once and interval > 0:
            time.sleep(interval)
        fetched_once = True
        return fetch(code)

    dates = list_snapshot_dates(directory, on_or_before=end)

    if backfill and end not in dates:
        if _backfill(stock_code, end, directory, fetch_throttled):
            dates.append(end)
            dates.sort()

    series = []
    for date in dates[-points:]:
        record = find_record(read_snapshot(date, directory), stock_code)
        if backfill and (record is None or record.get('current_price') is None):
            record = _backfill(stock_code, date, directory, fetch_throttled) or record

        record = record or {}
        series.append({
            'date': date,
            'price': record.get('current_price'),
            'ratio_to_ma200': record.get('ratio_of_price_to_200days_ma'),
        })
    return series
