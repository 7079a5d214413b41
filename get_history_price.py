#!/usr/bin/env python3
"""
get_history_price.py — Look up a stock's price from the history snapshots.

Usage:
    python get_history_price.py --code 7080 [--date 2025-10-29]
    python get_history_price.py --code 7080 --points 60 [--end-date 2025-10-29]

Options:
    --code        stock code (required; a bare positional code also works)
    --date        single lookup date (default: today)
    --points      series length, counted in existing snapshot files
    --end-date    last date of the series (default: today)
    --no-backfill never fetch live prices for missing entries
    --json        print JSON
"""
import sys
import json
import argparse

from errors import InvalidDateFormat, NoHistoryAvailable
from history_price import build_series, get_price_at_date


def build_parser():
    parser = argparse.ArgumentParser(description='Price lookup over history snapshots')
    parser.add_argument('stock', nargs='?', help='stock code')
    parser.add_argument('--code', help='stock code')
    parser.add_argument('--date')
    parser.add_argument('--points', type=int)
    parser.add_argument('--end-date')
    parser.add_argument('--no-backfill', action='store_true')
    parser.add_argument('--json', action='store_true')
    return parser


def _fmt(value):
    return 'null' if value is None else str(value)


def run(args, out=sys.stdout):
    code = args.code or args.stock
    backfill = not args.no_backfill

    if args.points is not None:
        if args.points <= 0:
            raise ValueError('--points must be 1 or more')
        series = build_series(code, end_date=args.end_date, points=args.points, backfill=backfill)
        if args.json:
            json.dump({'stockCode': code, 'endDate': args.end_date, 'points': args.points,
                       'series': series}, out, indent=2, ensure_ascii=False)
            out.write('\n')
            return
        print(f"{code} series ({len(series)} points)", file=out)
        for point in series:
            print(f"{point['date']}\t{_fmt(point['price'])}", file=out)
        return

    resolved, price = get_price_at_date(code, args.date, backfill=backfill)
    if args.json:
        json.dump({'stockCode': code, 'requestedDate': resolved.requested_date,
                   'resolvedDate': resolved.resolved_date, 'price': price}, out, indent=2)
        out.write('\n')
        return
    print(f"Requested: {resolved.requested_date}", file=out)
    print(f"Resolved:  {resolved.resolved_date}", file=out)
    print(f"Price:     {_fmt(price)}", file=out)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not (args.code or args.stock):
        parser.print_usage(sys.stderr)
        print("ERROR: --code is required", file=sys.stderr)
        return 1

    try:
        run(args)
    except (NoHistoryAvailable, InvalidDateFormat, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
