"""
Trend detection over the ratio of price to the 200-day moving average.

Two evaluations exist and they answer different questions:

* pairwise — did the ratio move by more than TREND_THRESHOLD between an
  older and a newer snapshot ("improved by 2 points since last week");
* absolute — is the ratio above zero in the latest snapshot ("currently
  trading above its 200-day average").

Absolute is what is left when there is no older snapshot to compare against.
Every report carries the mode that produced it.
"""
from collections import namedtuple
from datetime import date, timedelta

import settings
from date_resolver import normalize_date
from history_store import list_snapshot_dates, read_snapshot

# Ratio movement (in ratio units, i.e. 2 percentage points) below which a
# change is treated as noise.
TREND_THRESHOLD = 0.02

UP, DOWN, NEUTRAL = 'up', 'down', 'neutral'

TrendReport = namedtuple('TrendReport', ['mode', 'old_date', 'new_date', 'changes'])


def classify_delta(old_ratio, new_ratio, threshold=TREND_THRESHOLD):
    """Return ``(delta, direction)``; delta is None when either side is."""
    if old_ratio is None or new_ratio is None:
        return None, NEUTRAL
    delta = new_ratio - old_ratio
    if delta > threshold:
        return delta, UP
    if delta < -threshold:
        return delta, DOWN
    return delta, NEUTRAL


def _change(record, old_ratio, new_ratio, delta, direction):
    return {
        'stock_code': str(record.get('stock_code')),
        'company_name': record.get('company_name'),
        'old_ratio': old_ratio,
        'new_ratio': new_ratio,
        'delta': delta,
        'direction': direction,
    }


class TrendEvaluation:
    mode = None

    def evaluate(self, new_records, old_records=None):
        raise NotImplementedError


class PairwiseTrend(TrendEvaluation):
    mode = 'pairwise'

    def __init__(self, threshold=TREND_THRESHOLD):
        self.threshold = threshold

    def evaluate(self, new_records, old_records=None):
        if old_records is None:
            raise ValueError("pairwise evaluation needs an older snapshot")

        old_by_code = {str(r.get('stock_code')): r for r in old_records}
        changes = []
        for record in new_records:
            old = old_by_code.get(str(record.get('stock_code')))
            if old is None:
                continue
            old_ratio = old.get('ratio_of_price_to_200days_ma')
            new_ratio = record.get('ratio_of_price_to_200days_ma')
            delta, direction = classify_delta(old_ratio, new_ratio, self.threshold)
            if direction != NEUTRAL:
                changes.append(_change(record, old_ratio, new_ratio, delta, direction))
        return changes


class AbsoluteTrend(TrendEvaluation):
    mode = 'absolute'

    def evaluate(self, new_records, old_records=None):
        changes = []
        for record in new_records:
            ratio = record.get('ratio_of_price_to_200days_ma')
            if ratio is not None and ratio > 0:
                changes.append(_change(record, None, ratio, None, UP))
        return changes


EVALUATIONS = {
    PairwiseTrend.mode: PairwiseTrend,
    AbsoluteTrend.mode: AbsoluteTrend,
}


def find_comparison_dates(dates, days_ago=7, today=None):
    """Pick ``(old_date, new_date)`` from ascending snapshot dates.

    ``new_date`` is the newest snapshot. ``old_date`` is the newest snapshot
    dated on or before ``today - days_ago``, or None.
    """
    if not dates:
        return None, None
    new_date = dates[-1]
    ref = date.fromisoformat(normalize_date(today)) - timedelta(days=days_ago)
    cutoff = ref.isoformat()

    old_date = None
    for d in reversed(dates):
        if d <= cutoff:
            old_date = d
            break
    if old_date == new_date:
        old_date = None
    return old_date, new_date


def compare_snapshots(old_date, new_date, history_dir=None, threshold=TREND_THRESHOLD):
    """Pairwise changes between two named snapshot dates."""
    directory = history_dir or settings.HISTORY_DIR
    changes = PairwiseTrend(threshold).evaluate(
        read_snapshot(new_date, directory), read_snapshot(old_date, directory)
    )
    return TrendReport(PairwiseTrend.mode, old_date, new_date, changes)


def detect_trend_changes(history_dir=None, days_ago=7, today=None, mode='auto'):
    """Build a TrendReport from the snapshot directory.

    ``mode`` is 'pairwise', 'absolute' or 'auto'. Auto compares against the
    snapshot ``days_ago`` back when there is one and otherwise reports the
    absolute view of the latest snapshot.
    """
    if mode not in ('auto',) + tuple(EVALUATIONS):
        raise ValueError(f"unknown trend mode: {mode}")

    directory = history_dir or settings.HISTORY_DIR
    dates = list_snapshot_dates(directory)
    old_date, new_date = find_comparison_dates(dates, days_ago, today)
    if mode == 'auto':
        mode = PairwiseTrend.mode if old_date else AbsoluteTrend.mode
    if new_date is None:
        return TrendReport(mode, None, None, [])

    if mode == PairwiseTrend.mode:
        if old_date is None:
            return TrendReport(mode, None, new_date, [])
        return compare_snapshots(old_date, new_date, directory)

    changes = AbsoluteTrend().evaluate(read_snapshot(new_date, directory))
    return TrendReport(mode, None, new_date, changes)


def trend_changed_stock_codes(history_dir=None, days_ago=7, today=None, mode='auto'):
    report = detect_trend_changes(history_dir, days_ago, today, mode)
    return [c['stock_code'] for c in report.changes]


def _fmt_ratio(ratio):
    return '-' if ratio is None else f"{ratio * 100:+.2f}%"


def format_change(change):
    """'<company> (<code>): <old> → <new>'"""
    name = change.get('company_name') or change.get('stock_code')
    return (f"{name} ({change.get('stock_code')}): "
            f"{_fmt_ratio(change.get('old_ratio'))} → {_fmt_ratio(change.get('new_ratio'))}")


def detect_direction_changes(current, previous):
    """Horizon-level direction flips between two Kabutan trend scrapes.

    Both arguments are lists of ``{stock_code, company_name, trends}`` as
    produced by KabutanScraper. Returns one entry per flipped horizon.
    """
    prev_by_code = {p.get('stock_code'): p for p in previous or []}
    flips = []
    for company in current:
        trends = company.get('trends')
        prev = prev_by_code.get(company.get('stock_code'))
        if not trends or not prev or not prev.get('trends'):
            continue
        for horizon, info in trends.items():
            before = (prev['trends'].get(horizon) or {}).get('direction')
            after = (info or {}).get('direction')
            if before and after and before != after:
                flips.append({
                    'stock_code': company.get('stock_code'),
                    'company_name': company.get('company_name'),
                    'horizon': horizon,
                    'from': before,
                    'to': after,
                    'rate': (info or {}).get('rate', 'N/A'),
                })
    return flips
