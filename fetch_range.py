#!/usr/bin/env python3
"""
fetch_range.py — Fetch Shikiho company records for ranges of stock codes.

Usage:
    python fetch_range.py 1000-2000          # 1000 through 2000
    python fetch_range.py 7372,8411,9984     # individual codes
    python fetch_range.py 7000-7100,8000     # mixed
    python fetch_range.py 7000-7999 --yes    # skip the confirmation prompt
    python fetch_range.py 7203 --refresh-days 0   # refetch even if recent

Codes that do not exist are skipped, and companies fetched within the last
REFRESH_AFTER_DAYS days are reused from the existing file. The result is
written to the companies file read by the dashboard.
"""
import sys
import argparse
from collections import namedtuple
from datetime import datetime

import settings
from companies import (
    build_companies_data, companies_path, existing_companies, is_recently_updated,
    write_companies_file,
)
from scraper import ShikihoClient, format_company_data, fetch_many

MAX_RANGE_WIDTH = 1000
CONFIRM_ABOVE = 100


def parse_code_args(args):
    """'1000-1002,7203' → ['1000', '1001', '1002', '7203'].

    Duplicates are dropped, keeping first-seen order. Raises ValueError on a
    malformed part or a range wider than MAX_RANGE_WIDTH.
    """
    codes = []
    seen = set()

    def add(code):
        if code not in seen:
            seen.add(code)
            codes.append(code)

    for arg in args:
        for part in arg.split(','):
            part = part.strip()
            if not part:
                continue
            if '-' in part:
                start_s, _, end_s = part.partition('-')
                try:
                    start, end = int(start_s), int(end_s)
                except ValueError:
                    raise ValueError(f"invalid range: {part}")
                if start > end:
                    raise ValueError(f"invalid range: {part}")
                if end - start > MAX_RANGE_WIDTH:
                    raise ValueError(f"range too large (max {MAX_RANGE_WIDTH}): {part}")
                for n in range(start, end + 1):
                    add(str(n))
            else:
                try:
                    add(str(int(part)))
                except ValueError:
                    raise ValueError(f"invalid stock code: {part}")
    return codes


RangeResult = namedtuple(
    'RangeResult', ['data', 'fetched', 'reused', 'skipped', 'errors', 'path']
)


def fetch_range_data(codes, output_file=None, delay=None, client=None,
                     refresh_days=None, now=None):
    """Fetch ``codes`` and write the companies file.

    Companies already in the output file and updated within
    ``refresh_days`` (default REFRESH_AFTER_DAYS; 0 refetches everything)
    are reused as they are. Codes the API reports as non-existent land in
    ``skipped``; codes whose fetch failed land in ``errors``.
    """
    refresh_days = settings.REFRESH_AFTER_DAYS if refresh_days is None else refresh_days
    path = companies_path(output_file)
    existing = existing_companies(path)

    reused = {}
    stale = []
    for code in codes:
        company = existing.get(code)
        if company and is_recently_updated(company.get('updatedAt'), refresh_days, now):
            reused[code] = company
        else:
            stale.append(code)
    if reused:
        print(f"Reusing {len(reused)} companies updated within {refresh_days} days")

    client = client or ShikihoClient()
    fetched = {}
    skipped, errors = [], []
    for code, raw in fetch_many(stale, client.fetch_company_data, delay=delay):
        if raw is None:
            errors.append(code)
        elif raw.get('is_exist') != '1':
            skipped.append(code)
        else:
            fetched[code] = format_company_data(raw, code)

    companies = [reused.get(code) or fetched.get(code) for code in codes]
    data = build_companies_data([c for c in companies if c])
    write_companies_file(path, data)
    return RangeResult(data, len(fetched), len(reused), skipped, errors, path)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Fetch Shikiho company data for code ranges')
    parser.add_argument('codes', nargs='+', help='codes or ranges, e.g. 1000-2000,7203')
    parser.add_argument('--output', default=settings.COMPANIES_FILE)
    parser.add_argument('--delay', type=float, default=settings.REQUEST_INTERVAL)
    parser.add_argument('--yes', action='store_true', help='do not ask for confirmation')
    parser.add_argument('--refresh-days', type=int, default=settings.REFRESH_AFTER_DAYS,
                        help='reuse companies updated within this many days (0: refetch all)')
    args = parser.parse_args(argv)

    try:
        codes = parse_code_args(args.codes)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    if not codes:
        print("No codes", file=sys.stderr)
        return 1

    print(f"{len(codes)} codes ({min(codes, key=int)} - {max(codes, key=int)})")
    if len(codes) > CONFIRM_ABOVE and not args.yes:
        est_min = len(codes) * args.delay / 60
        resp = input(f"~{est_min:.0f} min. Continue? (y/n): ").lower()
        if resp not in ('y', 'yes'):
            print("Cancelled")
            return 0

    start = datetime.now()
    result = fetch_range_data(codes, args.output, delay=args.delay,
                              refresh_days=args.refresh_days)
    duration = datetime.now() - start
    data = result.data

    print(f"\n{data['totalCompanies']}/{len(codes)} companies "
          f"({result.fetched} fetched, {result.reused} reused)")
    print(f"Not found: {len(result.skipped)}")
    if result.errors:
        print(f"Errors: {len(result.errors)} ({', '.join(result.errors[:20])}"
              f"{' ...' if len(result.errors) > 20 else ''})")
    print(f"Duration: {duration}")
    print(f"Saved: {result.path}")
    for company in data['companies'][:10]:
        print(f"  - {company['stockCode']}: {company['companyName']} ({company.get('sectorName') or 'N/A'})")
    if len(data['companies']) > 10:
        print(f"  ... and {len(data['companies']) - 10} more")
    return 0


if __name__ == "__main__":
    sys.exit(main())
