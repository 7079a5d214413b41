"""
Map an "as of" date onto the snapshot file that should answer for it.

Non-trading days have no snapshot, so a request for a Sunday resolves to the
Friday (or whatever the latest earlier file is).
"""
import re
from collections import namedtuple
from datetime import date, datetime

import settings
from errors import InvalidDateFormat, NoHistoryAvailable
from history_store import (
    list_snapshot_dates, read_snapshot, snapshot_exists, snapshot_path,
)

_ISO_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_SLASH_RE = re.compile(r'^\d{4}/\d{2}/\d{2}$')

ResolvedHistoryFile = namedtuple(
    'ResolvedHistoryFile', ['requested_date', 'resolved_date', 'file_path']
)


def today():
    return date.today().isoformat()


def normalize_date(value=None):
    """Return ``value`` as YYYY-MM-DD. None or '' means today."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return today()
    if isinstance(value, (date, datetime)):
        return value.strftime('%Y-%m-%d')

    text = str(value).strip()
    if _SLASH_RE.match(text):
        text = text.replace('/', '-')
    if not _ISO_RE.match(text):
        raise InvalidDateFormat(value)
    try:
        datetime.strptime(text, '%Y-%m-%d')
    except ValueError:
        raise InvalidDateFormat(value)
    return text


def resolve(requested_date=None, history_dir=None):
    """Find the snapshot file for ``requested_date``.

    An exact ``<date>.json`` always wins. Otherwise the latest file dated on
    or before the request is used. Raises NoHistoryAvailable when there is
    none.
    """
    requested = normalize_date(requested_date)
    directory = history_dir or settings.HISTORY_DIR

    if snapshot_exists(requested, directory):
        return ResolvedHistoryFile(requested, requested, snapshot_path(requested, directory))

    candidates = list_snapshot_dates(directory, on_or_before=requested)
    if not candidates:
        raise NoHistoryAvailable(requested, directory)

    resolved = candidates[-1]
    return ResolvedHistoryFile(requested, resolved, snapshot_path(resolved, directory))


def load_records_for_date(requested_date=None, history_dir=None):
    """Resolve a date and read its records. Returns (resolved, records)."""
    resolved = resolve(requested_date, history_dir)
    records = read_snapshot(resolved.resolved_date, history_dir or settings.HISTORY_DIR)
    return resolved, records
