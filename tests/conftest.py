import os
import sys
import json

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import settings


@pytest.fixture()
def output_dir(tmp_path, monkeypatch):
    out = tmp_path / "output"
    history = out / "history"
    history.mkdir(parents=True)
    monkeypatch.setattr(settings, "OUTPUT_DIR", str(out))
    monkeypatch.setattr(settings, "HISTORY_DIR", str(history))
    monkeypatch.setattr(settings, "TRENDS_DIR", str(out / "trends"))
    monkeypatch.setattr(settings, "SELECTED_STOCKS_PATH", str(out / "selected-stocks.json"))
    monkeypatch.setattr(settings, "REQUEST_INTERVAL", 0.0)
    return out


@pytest.fixture()
def history_dir(output_dir):
    return str(output_dir / "history")


@pytest.fixture()
def write_day(history_dir):
    def _write(date, records):
        path = os.path.join(history_dir, f"{date}.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(records, f, ensure_ascii=False)
        return path
    return _write


def make_record(code, price=None, ratio=None, name=None, date="2025-01-01"):
    return {
        "stock_code": code,
        "company_name": name or f"Company {code}",
        "ratio_of_price_to_200days_ma": ratio,
        "current_price": price,
        "fetched_at": date,
        "snapshotted_at": f"{date}T06:00:00",
    }


class FakeQuotes:
    """Stands in for ShikihoClient.fetch_latest_quote and records calls."""

    def __init__(self, quotes=None, default=None):
        self.quotes = quotes or {}
        self.default = default
        self.calls = []

    def __call__(self, code):
        self.calls.append(code)
        return self.quotes.get(code, self.default)
