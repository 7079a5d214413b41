#!/usr/bin/env python3
"""
fetch_daily_history.py — Record today's price / 200-day MA ratio snapshot.

Reads the stock codes saved from the dashboard (selected-stocks.json), or a
default list when nothing has been selected, fetches each one from the
Shikiho API and upserts it into history/<date>.json.

Cron setup:
  - Schedule: 0 7 * * 1-5   (weekdays 7 AM JST, after the close)
  - Command:  python fetch_daily_history.py
"""
import sys
import argparse
from datetime import datetime

import settings
from companies import read_selected_stocks
from date_resolver import normalize_date
from errors import InvalidDateFormat
from history_store import read_snapshot, snapshot_path, write_snapshot, find_record
from scraper import ShikihoClient, fetch_many

DEFAULT_STOCK_CODES = [
    '1301', '1332', '1333', '1605', '1721', '1801', '1802', '1803', '1808', '1812',
    '1925', '1928', '1963', '2002', '2053', '2112', '2153', '2170', '2181', '2201',
    '2269', '2282', '2371', '2432', '2453', '2502', '2503', '2531', '2579', '2801',
    '2802', '2871', '2914', '3003', '3048', '3099', '3101', '3105', '3116', '3254',
    '3360', '3401', '3402', '3407', '3626', '3659', '3861', '3863', '3865', '4004',
]


def load_stock_codes(path=None):
    """Selected codes from the dashboard, falling back to the default list."""
    try:
        codes = read_selected_stocks(path)
    except ValueError as e:
        print(f"Warning: could not parse selected stocks: {e}", file=sys.stderr)
        codes = []
    if isinstance(codes, list) and codes:
        print(f"Using {len(codes)} selected stocks")
        return [str(c) for c in codes]
    print(f"Using default {len(DEFAULT_STOCK_CODES)} stocks")
    return list(DEFAULT_STOCK_CODES)


def build_records(results, date):
    now = datetime.now().isoformat()
    records = []
    for code, quote in results:
        if not quote:
            continue
        records.append({
            'stock_code': str(code),
            'company_name': quote.get('company_name'),
            'ratio_of_price_to_200days_ma': quote.get('ratio_of_price_to_200days_ma'),
            'current_price': quote.get('current_price'),
            'fetched_at': date,
            'snapshotted_at': now,
        })
    return records


def merge_records(existing, fresh):
    """Upsert ``fresh`` into ``existing`` by stock code."""
    merged = [dict(r) for r in existing]
    for record in fresh:
        current = find_record(merged, record['stock_code'])
        if current is not None:
            current.update(record)
        else:
            merged.append(record)
    return merged


def run(codes, date=None, delay=None, history_dir=None, client=None):
    date = normalize_date(date)
    client = client or ShikihoClient()
    results = fetch_many(codes, client.fetch_latest_quote, delay=delay)
    fresh = build_records(results, date)
    records = merge_records(read_snapshot(date, history_dir), fresh)
    path = write_snapshot(date, records, history_dir)
    return path, len(fresh)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Fetch today's history snapshot")
    parser.add_argument('--date', help='snapshot date label (default: today)')
    parser.add_argument('--codes', help='comma-separated stock codes (default: selected stocks)')
    parser.add_argument('--delay', type=float, default=settings.REQUEST_INTERVAL,
                        help='seconds between API requests')
    args = parser.parse_args(argv)

    codes = [c.strip() for c in args.codes.split(',') if c.strip()] if args.codes else load_stock_codes()
    try:
        date = normalize_date(args.date)
    except InvalidDateFormat as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(f"{'='*60}")
    print(f"  History snapshot — {date}")
    print(f"  Output: {snapshot_path(date)}")
    print(f"{'='*60}")
    print(f"{len(codes)} stocks, ~{len(codes) * args.delay / 60:.1f} min")

    path, count = run(codes, date, delay=args.delay)
    print(f"\nSaved {count}/{len(codes)} stocks to {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
