"""
history_store.py — Daily snapshot files of per-stock metrics.

One JSON array per calendar date at ``<history_dir>/<YYYY-MM-DD>.json``.
Each element looks like:

    {
      "stock_code": "7203",
      "company_name": "トヨタ自動車",
      "ratio_of_price_to_200days_ma": 0.0712,
      "current_price": 2841.5,
      "fetched_at": "2025-01-08",
      "snapshotted_at": "2025-01-08T06:00:12.345678"
    }

Writes are whole-file read-modify-write. Two writers touching the same day
can lose an update (last write wins); the daily job is the only writer.
"""
import os
import re
import json
import logging
import tempfile

import settings
from errors import MalformedSnapshotFile

SNAPSHOT_FILE_RE = re.compile(r'^(\d{4}-\d{2}-\d{2})\.json$')


def _dir(history_dir):
    return history_dir or settings.HISTORY_DIR


def snapshot_path(date, history_dir=None):
    return os.path.join(_dir(history_dir), f"{date}.json")


def snapshot_exists(date, history_dir=None):
    return os.path.isfile(snapshot_path(date, history_dir))


def _load_array(path):
    """Parse a snapshot file, raising MalformedSnapshotFile on bad content."""
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except ValueError as e:
            raise MalformedSnapshotFile(f"{path}: {e}") from e
    if not isinstance(data, list):
        raise MalformedSnapshotFile(f"{path}: expected a JSON array, got {type(data).__name__}")
    return [r for r in data if isinstance(r, dict)]


def read_snapshot(date, history_dir=None):
    """Return the records stored for ``date``.

    A missing file is an empty day. A corrupt file is logged and also read as
    an empty day.
    """
    path = snapshot_path(date, history_dir)
    try:
        return _load_array(path)
    except FileNotFoundError:
        return []
    except MalformedSnapshotFile as e:
        logging.warning(f"Ignoring malformed snapshot file {e}")
        return []
    except OSError as e:
        logging.warning(f"Could not read snapshot {path}: {e}")
        return []


def find_record(records, stock_code):
    code = str(stock_code)
    for record in records:
        if str(record.get('stock_code')) == code:
            return record
    return None


def _write_atomic(path, records):
    directory = os.path.dirname(path) or '.'
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.snapshot-', suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(records, f, indent=2, ensure_ascii=False, default=str)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def write_snapshot(date, records, history_dir=None):
    """Replace the whole file for ``date``. Returns the path written."""
    path = snapshot_path(date, history_dir)
    _write_atomic(path, list(records))
    return path


def upsert_record(date, record, history_dir=None):
    """Insert or update one stock's record in the file for ``date``.

    An existing record with the same stock code keeps any fields the new
    record does not carry; everything else is overwritten.
    """
    if record.get('stock_code') is None:
        raise ValueError("record has no stock_code")

    records = read_snapshot(date, history_dir)
    existing = find_record(records, record['stock_code'])
    if existing is not None:
        existing.update(record)
    else:
        records.append(dict(record))
    return write_snapshot(date, records, history_dir)


def list_snapshot_dates(history_dir=None, on_or_before=None):
    """Dates that have a snapshot file, ascending.

    Only names of the form YYYY-MM-DD.json count; ISO dates sort
    lexicographically in calendar order.
    """
    directory = _dir(history_dir)
    try:
        names = os.listdir(directory)
    except FileNotFoundError:
        return []

    dates = []
    for name in names:
        m = SNAPSHOT_FILE_RE.match(name)
        if m and (on_or_before is None or m.group(1) <= on_or_before):
            dates.append(m.group(1))
    return sorted(dates)
