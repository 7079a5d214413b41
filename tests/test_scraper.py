import pytest
import requests

from scraper import (
    KabutanScraper, ShikihoClient, fetch_many, format_company_data,
    parse_number, parse_performance_data,
)

RAW = {
    "stock_code": "7203",
    "is_exist": "1",
    "shikiho_name": "トヨタ",
    "stock_price": 2800,
    "ratio_of_price_to_200days_ma": 0.0712,
    "market_capitalization": 45000000,
    "rivals": [
        {"stock_code": "7267", "company_name_j": "本田技研工業", "current_price": 1500},
        {"stock_code": "7203", "company_name_j": "トヨタ自動車", "current_price": 2841.5,
         "tk_sector": "3700", "tk_sector_name": "輸送用機器", "ratio_of_net_worth": 0.38},
    ],
    "shimen_results": [
        ["決算期", "売上高", "営業利益", "税前利益", "純利益", "1株益", "1株配"],
        ["連2023.03", "37,154,298", "2,725,025", "3,668,733", "2,451,318", "179.5", "60"],
        ["連2024.03", "45,095,325", "5,352,934", "6,965,085", "4,944,933", "365.9", "75"],
        ["連2025.03予", "46,000,000", "4,700,000", "ー", "ー", "ー", "90"],
        ["連24.4〜6", "11,837,840", "1,308,555", "-", "-", "-", "-"],
        ["short"],
    ],
}


class FakeResponse:
    def __init__(self, payload=None, status=200, content=b""):
        self.payload = payload
        self.status_code = status
        self.content = content

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


def test_parse_number():
    assert parse_number("1,234.5") == 1234.5
    assert parse_number(12) == 12.0
    for empty in (None, "", "-", "ー", "N/A", "abc", True):
        assert parse_number(empty) is None


def test_parse_performance_data():
    rows = parse_performance_data(RAW["shimen_results"])

    assert [r["period"] for r in rows] == ["連2023.03", "連2024.03", "連2025.03予", "連24.4〜6"]
    assert rows[0]["netSales"] == 37154298.0
    assert rows[0]["isActual"] and not rows[0]["isQuarterly"]
    assert rows[2]["isForecast"] and not rows[2]["isActual"]
    assert rows[2]["preTaxIncome"] is None
    assert rows[3]["isQuarterly"]


def test_parse_performance_data_without_rows():
    assert parse_performance_data([]) == []
    assert parse_performance_data(None) == []


def test_format_company_data():
    company = format_company_data(RAW, "7203")

    assert company["companyName"] == "トヨタ自動車"
    assert company["currentPrice"] == 2841.5
    assert company["marketCap"] == 45000000.0
    assert company["sectorName"] == "輸送用機器"
    assert company["equityRatio"] == pytest.approx(38.0)
    assert company["latestResults"]["period"] == "連2023.03"
    assert len(company["performanceData"]) == 4
    assert "error" not in company


def test_format_company_data_failed_fetch():
    company = format_company_data(None, "9999")
    assert company["isExist"] == "0"
    assert company["error"]


def test_latest_quote(monkeypatch):
    client = ShikihoClient(base_url="https://example.test/stocks")
    calls = []

    def fake_get(url, timeout=None):
        calls.append((url, timeout))
        return FakeResponse(RAW)

    monkeypatch.setattr(client.session, "get", fake_get)

    quote = client.fetch_latest_quote("7203")

    assert quote == {"company_name": "トヨタ自動車",
                     "ratio_of_price_to_200days_ma": 0.0712,
                     "current_price": 2841.5}
    assert calls[0][0] == "https://example.test/stocks/7203/latest"
    assert calls[0][1] == client.timeout


def test_latest_quote_falls_back_to_stock_price(monkeypatch):
    client = ShikihoClient()
    payload = dict(RAW, rivals=[])
    monkeypatch.setattr(client.session, "get", lambda url, timeout=None: FakeResponse(payload))

    quote = client.fetch_latest_quote("7203")

    assert quote["current_price"] == 2800.0
    assert quote["company_name"] == "トヨタ"


def test_latest_quote_failures_return_none(monkeypatch):
    client = ShikihoClient()

    def boom(url, timeout=None):
        raise requests.Timeout("timed out")

    monkeypatch.setattr(client.session, "get", boom)
    assert client.fetch_latest_quote("7203") is None

    monkeypatch.setattr(client.session, "get", lambda url, timeout=None: FakeResponse(status=500))
    assert client.fetch_latest_quote("7203") is None

    monkeypatch.setattr(client.session, "get",
                        lambda url, timeout=None: FakeResponse(ValueError("bad json")))
    assert client.fetch_latest_quote("7203") is None

    monkeypatch.setattr(client.session, "get", lambda url, timeout=None: FakeResponse(["x"]))
    assert client.fetch_latest_quote("7203") is None


KABUTAN_HTML = """
<html><head><title>ソフトバンクグループ（ＳＢＧ）【9984】</title></head>
<body>
<h2>9984　ソフトバンクグループ</h2>
<div>
  <h2><img src="/images/cmn/kabuka_trend.gif" alt="株価トレンド"></h2>
  <table>
    <tr><th>目先</th><th>短期</th><th>中期</th><th>長期</th></tr>
    <tr><td><img alt="下降"></td><td><img alt="下降"></td><td><img alt="上昇"></td><td><img alt="上昇"></td></tr>
    <tr><td>5日線</td><td>25日線</td><td>75日線</td><td>200日線</td></tr>
    <tr><td>-4.86％</td><td>-18.85％</td><td>-0.20％</td><td>+51.41％</td></tr>
  </table>
</div>
</body></html>
"""


def test_kabutan_parse_trends():
    data = KabutanScraper().parse_trends(KABUTAN_HTML, "9984")

    assert data["company_name"] == "ソフトバンクグループ"
    assert data["trends"]["5day"] == {"direction": "down", "rate": "-4.86％"}
    assert data["trends"]["200day"] == {"direction": "up", "rate": "+51.41％"}


def test_kabutan_parse_without_table():
    html = "<html><head><title>トヨタ自動車【7203】</title></head><body></body></html>"
    data = KabutanScraper().parse_trends(html, "7203")
    assert data == {"stock_code": "7203", "company_name": "トヨタ自動車", "trends": None}


def test_kabutan_fetch_failure(monkeypatch):
    scraper = KabutanScraper()

    def boom(url, params=None, timeout=None):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(scraper.session, "get", boom)
    data = scraper.scrape_trends("7203")
    assert data["trends"] is None
    assert "down" in data["error"]


def test_fetch_many_sleeps_between_calls(monkeypatch):
    sleeps = []
    monkeypatch.setattr("scraper.time.sleep", sleeps.append)

    results = fetch_many(["1", "2", "3"], lambda c: c if c != "2" else None,
                         delay=0.5, progress=False)

    assert results == [("1", "1"), ("2", None), ("3", "3")]
    assert sleeps == [0.5, 0.5]
