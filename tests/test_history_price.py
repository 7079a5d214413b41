import os

import pytest

from conftest import FakeQuotes, make_record
from errors import NoHistoryAvailable
from history_price import build_series, get_price_at_date
from history_store import list_snapshot_dates, read_snapshot

QUOTE = {"company_name": "トヨタ自動車", "ratio_of_price_to_200days_ma": 0.07, "current_price": 2841.5}


def _seed(write_day, dates, code="7203"):
    for i, d in enumerate(dates):
        write_day(d, [make_record(code, price=100.0 + i, ratio=0.01 * i, date=d)])


def test_series_is_tail_of_existing_dates(history_dir, write_day):
    _seed(write_day, ["2025-01-01", "2025-01-02", "2025-01-06", "2025-01-07", "2025-01-09"])

    series = build_series("7203", end_date="2025-01-08", points=3,
                          backfill=False, history_dir=history_dir)

    assert [p["date"] for p in series] == ["2025-01-02", "2025-01-06", "2025-01-07"]
    assert [p["price"] for p in series] == [101.0, 102.0, 103.0]
    assert series[0]["ratio_to_ma200"] == pytest.approx(0.01)


def test_series_bounds(history_dir, write_day):
    dates = ["2025-01-%02d" % d for d in range(1, 11)]
    _seed(write_day, dates)

    for n in (1, 4, 10, 25):
        series = build_series("7203", end_date="2025-01-07", points=n,
                              backfill=False, history_dir=history_dir)
        got = [p["date"] for p in series]
        assert len(got) <= n
        assert got == sorted(set(got))
        assert all(d <= "2025-01-07" for d in got)


def test_series_without_backfill_keeps_nulls(history_dir, write_day):
    write_day("2025-01-01", [make_record("6758", price=10.0)])
    fetch = FakeQuotes(default=QUOTE)

    series = build_series("7203", end_date="2025-01-01", points=5, backfill=False,
                          history_dir=history_dir, fetch_quote=fetch)

    assert series == [{"date": "2025-01-01", "price": None, "ratio_to_ma200": None}]
    assert fetch.calls == []


def test_series_backfills_missing_end_date(history_dir, write_day):
    _seed(write_day, ["2025-01-06"])
    fetch = FakeQuotes({"7203": QUOTE})

    series = build_series("7203", end_date="2025-01-08", points=5,
                          history_dir=history_dir, fetch_quote=fetch, request_interval=0)

    assert [p["date"] for p in series] == ["2025-01-06", "2025-01-08"]
    assert series[-1]["price"] == 2841.5
    stored = read_snapshot("2025-01-08", history_dir)
    assert stored[0]["fetched_at"] == "2025-01-08"
    assert stored[0]["company_name"] == "トヨタ自動車"
    assert fetch.calls == ["7203"]


def test_series_backfills_null_price_in_place(history_dir, write_day):
    write_day("2025-01-06", [make_record("7203", price=None, ratio=0.05), make_record("6758", price=1.0)])
    write_day("2025-01-07", [make_record("7203", price=200.0)])
    fetch = FakeQuotes({"7203": QUOTE})

    series = build_series("7203", end_date="2025-01-07", points=5,
                          history_dir=history_dir, fetch_quote=fetch, request_interval=0)

    assert [p["price"] for p in series] == [2841.5, 200.0]
    day = read_snapshot("2025-01-06", history_dir)
    assert len(day) == 2
    assert [r for r in day if r["stock_code"] == "7203"][0]["current_price"] == 2841.5


def test_series_failed_fetch_leaves_null_and_writes_nothing(history_dir, write_day):
    write_day("2025-01-06", [make_record("7203", price=None, ratio=0.05)])
    fetch = FakeQuotes(default=None)

    series = build_series("7203", end_date="2025-01-08", points=5,
                          history_dir=history_dir, fetch_quote=fetch, request_interval=0)

    assert series == [{"date": "2025-01-06", "price": None, "ratio_to_ma200": 0.05}]
    assert list_snapshot_dates(history_dir) == ["2025-01-06"]
    assert len(fetch.calls) == 2


def test_series_sleeps_between_fetches(history_dir, write_day, monkeypatch):
    write_day("2025-01-06", [])
    write_day("2025-01-07", [])
    sleeps = []
    monkeypatch.setattr("history_price.time.sleep", sleeps.append)

    build_series("7203", end_date="2025-01-07", points=5, history_dir=history_dir,
                 fetch_quote=FakeQuotes(default=QUOTE), request_interval=0.3)

    assert sleeps == [0.3]


def test_series_rejects_non_positive_points(history_dir):
    with pytest.raises(ValueError):
        build_series("7203", points=0, history_dir=history_dir)


def test_price_at_exact_date(history_dir, write_day):
    write_day("2025-01-08", [make_record("7203", price=123.0)])
    resolved, price = get_price_at_date("7203", "2025-01-08", history_dir=history_dir,
                                        fetch_quote=FakeQuotes())
    assert price == 123.0
    assert resolved.resolved_date == "2025-01-08"


def test_price_falls_back_without_backfill(history_dir, write_day):
    write_day("2025-01-06", [make_record("7203", price=99.0)])
    resolved, price = get_price_at_date("7203", "2025-01-08", backfill=False,
                                        history_dir=history_dir)
    assert resolved.resolved_date == "2025-01-06"
    assert price == 99.0


def test_price_backfills_requested_date(history_dir, write_day):
    write_day("2025-01-06", [make_record("7203", price=99.0)])
    fetch = FakeQuotes({"7203": QUOTE})

    resolved, price = get_price_at_date("7203", "2025-01-08", history_dir=history_dir,
                                        fetch_quote=fetch)

    assert resolved.resolved_date == "2025-01-08"
    assert price == 2841.5
    assert read_snapshot("2025-01-08", history_dir)[0]["current_price"] == 2841.5


def test_price_without_history_raises(history_dir):
    with pytest.raises(NoHistoryAvailable):
        get_price_at_date("7203", "2025-01-08", backfill=False, history_dir=history_dir)


def test_price_failed_backfill_uses_earlier_snapshot(history_dir, write_day):
    write_day("2025-01-06", [make_record("7203", price=99.0)])
    fetch = FakeQuotes(default=None)

    resolved, price = get_price_at_date("7203", "2025-01-08", history_dir=history_dir,
                                        fetch_quote=fetch)

    assert resolved.resolved_date == "2025-01-06"
    assert os.path.exists(resolved.file_path)
    assert price == 99.0
    assert fetch.calls == ["7203"]
    assert list_snapshot_dates(history_dir) == ["2025-01-06"]


def test_price_failed_backfill_without_history_raises(history_dir):
    with pytest.raises(NoHistoryAvailable):
        get_price_at_date("7203", "2025-01-08", history_dir=history_dir,
                          fetch_quote=FakeQuotes(default=None))
