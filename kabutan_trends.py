#!/usr/bin/env python3
"""
kabutan_trends.py — Scrape Kabutan's moving-average trend table.

For each stock, records the up/down direction and deviation for the 5, 25,
75 and 200-day averages into trends/<date>.json (plus trends/latest.json),
then prints every horizon whose direction flipped since the previous run.
"""
import sys
import argparse

import settings
from date_resolver import today
from history_store import list_snapshot_dates, read_snapshot, write_snapshot
from scraper import KabutanScraper, fetch_many
from trend_analyzer import detect_direction_changes
from fetch_daily_history import load_stock_codes


def previous_trends(trends_dir, before):
    """(date, records) of the newest trends file dated before ``before``."""
    earlier = [d for d in list_snapshot_dates(trends_dir) if d < before]
    if not earlier:
        return None, []
    return earlier[-1], read_snapshot(earlier[-1], trends_dir)


def run(codes, trends_dir=None, date=None, delay=None, scraper=None):
    trends_dir = trends_dir or settings.TRENDS_DIR
    date = date or today()
    scraper = scraper or KabutanScraper()

    prev_date, prev = previous_trends(trends_dir, date)
    results = [data for _, data in fetch_many(codes, scraper.scrape_trends, delay=delay)]

    write_snapshot(date, results, trends_dir)
    write_snapshot('latest', results, trends_dir)
    return results, prev_date, detect_direction_changes(results, prev)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Scrape Kabutan trend directions')
    parser.add_argument('--codes', help='comma-separated stock codes (default: selected stocks)')
    parser.add_argument('--delay', type=float, default=settings.REQUEST_INTERVAL)
    args = parser.parse_args(argv)

    codes = [c.strip() for c in args.codes.split(',') if c.strip()] if args.codes else load_stock_codes()
    results, prev_date, flips = run(codes, delay=args.delay)

    ok = sum(1 for r in results if r.get('trends'))
    print(f"\nScraped {ok}/{len(results)} stocks into {settings.TRENDS_DIR}")
    if prev_date is None:
        print("No previous run to compare against")
    elif not flips:
        print(f"No direction changes since {prev_date}")
    else:
        print(f"{len(flips)} direction changes since {prev_date}:")
        for f in flips:
            print(f"  {f['company_name']} ({f['stock_code']}) {f['horizon']}: "
                  f"{f['from']} → {f['to']} ({f['rate']})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
