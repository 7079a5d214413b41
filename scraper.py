import re
import time
import logging
from datetime import datetime

import requests
from bs4 import BeautifulSoup

import settings
from errors import RemoteFetchFailed

# ──────────────────────────────────────────────────────────
# VALUE PARSING
# The Shikiho API returns numbers as numbers, as strings with
# thousands separators, or as placeholder dashes.
# ──────────────────────────────────────────────────────────

_PLACEHOLDERS = {'', '-', 'ー', '－', 'N/A'}


def parse_number(value):
    """'1,234.5' → 1234.5, 'ー' → None, 12 → 12.0"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if text in _PLACEHOLDERS:
        return None
    try:
        return float(text.replace(',', ''))
    except ValueError:
        return None


_RE_QUARTERLY = re.compile(r'\d+\.\d+〜\d+')


def parse_performance_data(shimen_results):
    """Turn the ``shimen_results`` table into performance rows.

    Row 0 is the header. Each data row is
    [period, net_sales, operating_income, pretax_income, net_income, eps, dps].
    A period containing 予 is a forecast; one containing 〜 or 四半期 is a
    quarterly figure.
    """
    if not isinstance(shimen_results, list) or len(shimen_results) <= 1:
        return []

    rows = []
    for row in shimen_results[1:]:
        if not isinstance(row, list) or len(row) < 7:
            continue
        period = str(row[0] or '')
        if not period:
            continue

        is_forecast = '予' in period
        is_quarterly = '〜' in period or '四半期' in period or bool(_RE_QUARTERLY.search(period))
        rows.append({
            'period': period,
            'netSales': parse_number(row[1]),
            'operatingIncome': parse_number(row[2]),
            'preTaxIncome': parse_number(row[3]),
            'netIncome': parse_number(row[4]),
            'earningsPerShare': parse_number(row[5]),
            'dividendPerShare': parse_number(row[6]),
            'isActual': not is_forecast,
            'isForecast': is_forecast,
            'isQuarterly': is_quarterly,
        })
    return rows


def _self_rival(raw, stock_code):
    """The API lists the company itself among its ``rivals``."""
    rivals = raw.get('rivals')
    if not isinstance(rivals, list):
        return None
    for rival in rivals:
        if isinstance(rival, dict) and str(rival.get('stock_code')) == str(stock_code):
            return rival
    return None


def _latest_results(raw):
    forecasts = raw.get('modified_forecasts_list_basic')
    if isinstance(forecasts, list):
        actual = None
        for item in forecasts:
            if isinstance(item, dict) and item.get('result_flag') is True:
                actual = item
        if actual:
            return {
                'period': actual.get('fiscal_year_end'),
                'consolidatedType': actual.get('consolidated_type'),
                'accountingStandards': actual.get('accounting_standards'),
                'netSales': parse_number(actual.get('net_sales')),
                'operatingIncome': parse_number(actual.get('ope_income')),
                'ordinaryIncome': parse_number(actual.get('ord_income')),
                'netIncome': parse_number(actual.get('net_income')),
                'earningsPerShare': parse_number(actual.get('eps')),
                'pubDate': actual.get('pub_date'),
            }

    for row in (raw.get('shimen_results') or [])[1:]:
        if isinstance(row, list) and len(row) >= 6 and row[0] and '予' not in str(row[0]):
            return {
                'period': row[0],
                'netSales': parse_number(row[1]),
                'operatingIncome': parse_number(row[2]),
                'preTaxIncome': parse_number(row[3]),
                'netIncome': parse_number(row[4]),
                'earningsPerShare': parse_number(row[5]),
            }
    return None


def _pct(value):
    value = parse_number(value)
    return value * 100 if value else None


def empty_company(company_id, error):
    return {
        'companyId': company_id,
        'companyName': 'N/A',
        'stockCode': company_id,
        'isExist': '0',
        'error': error,
        'currentPrice': None,
        'marketCap': None,
        'latestResults': None,
        'performanceData': [],
        'sector': None,
        'sectorName': None,
        'tkScore': None,
        'updatedAt': datetime.now().isoformat(),
    }


def format_company_data(raw, company_id):
    """Shape a raw Shikiho payload into a companies-file record.

    Monetary amounts stay in the API's unit (millions of yen).
    """
    if not raw:
        return empty_company(company_id, 'fetch failed')

    stock_code = str(raw.get('stock_code') or company_id)
    me = _self_rival(raw, stock_code) or {}

    current_price = parse_number(me.get('current_price'))
    market_cap = parse_number(raw.get('market_capitalization'))
    equity_ratio = _pct(me.get('ratio_of_net_worth'))

    bps = None
    shimen_bps = raw.get('shimen_bps')
    if isinstance(shimen_bps, list) and len(shimen_bps) >= 3:
        bps = parse_number(shimen_bps[2])

    # Balance-sheet estimates from BPS, market cap and equity ratio.
    estimated_equity = estimated_assets = debt_to_equity = None
    if bps and market_cap and current_price and equity_ratio:
        shares_thousands = market_cap / current_price * 1000
        estimated_equity = bps * shares_thousands / 1000
        estimated_assets = estimated_equity / (equity_ratio / 100)
        debt_to_equity = (estimated_assets - estimated_equity) / estimated_equity

    return {
        'companyId': company_id,
        'companyName': me.get('company_name_j') or me.get('company_name_j9c') or 'N/A',
        'stockCode': stock_code,
        'isExist': raw.get('is_exist'),
        'currentPrice': current_price,
        'marketCap': market_cap,
        'minimumPurchaseAmount': raw.get('minimum_purchase_amount'),
        'tradingUnit': raw.get('trading_unit'),
        'priceEarningsRatio': parse_number(raw.get('fyp1_per')),
        'priceBookValueRatio': parse_number(raw.get('pbr')),
        'dividendYield': parse_number(raw.get('fyp1_dividend_yield')),
        'bookValuePerShare': bps,
        'yearHigh': parse_number(raw.get('year_high')),
        'yearLow': parse_number(raw.get('year_low')),
        'latestResults': _latest_results(raw),
        'performanceData': parse_performance_data(raw.get('shimen_results') or []),
        'equityRatio': equity_ratio,
        'roe': parse_number(me.get('fyp1_roe')),
        'operatingMargin': _pct(me.get('ratio_of_ope_income_to_net_sales')),
        'netProfitMargin': _pct(me.get('ratio_of_net_income_to_net_sales')),
        'estimatedTotalAssets': estimated_assets,
        'estimatedEquity': estimated_equity,
        'debtToEquityRatio': debt_to_equity,
        'sector': me.get('tk_sector'),
        'sectorName': me.get('tk_sector_name'),
        'tkScore': me.get('tk_score'),
        'ratioOfPriceTo200DaysMA': parse_number(raw.get('ratio_of_price_to_200days_ma')),
        'updatedAt': datetime.now().isoformat(),
        'shimenPubDate': raw.get('shimen_pub_date'),
    }


# ──────────────────────────────────────────────────────────
# SHIKIHO API
# ──────────────────────────────────────────────────────────

class ShikihoClient:
    def __init__(self, base_url=None, timeout=None):
        self.base_url = (base_url or settings.SHIKIHO_API_URL).rstrip('/')
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.session = requests.Session()
        self.session.headers.update({'User-Agent': settings.USER_AGENT})

    def _get_latest(self, stock_code):
        url = f"{self.base_url}/{stock_code}/latest"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise RemoteFetchFailed(f"{stock_code}: {e}") from e
        if not isinstance(data, dict):
            raise RemoteFetchFailed(f"{stock_code}: unexpected payload {type(data).__name__}")
        return data

    def fetch_company_data(self, stock_code):
        """Raw ``/latest`` payload, or None on any failure."""
        try:
            return self._get_latest(stock_code)
        except RemoteFetchFailed as e:
            logging.warning(f"Shikiho fetch failed: {e}")
            return None

    def fetch_latest_quote(self, stock_code):
        """Price, 200-day MA ratio and name for one stock, or None."""
        data = self.fetch_company_data(stock_code)
        if data is None:
            return None

        me = _self_rival(data, stock_code) or {}
        price = parse_number(me.get('current_price'))
        if price is None:
            price = parse_number(data.get('stock_price'))
        return {
            'company_name': (me.get('company_name_j') or me.get('company_name_j9c')
                             or data.get('shikiho_name')),
            'ratio_of_price_to_200days_ma': parse_number(data.get('ratio_of_price_to_200days_ma')),
            'current_price': price,
        }


# ──────────────────────────────────────────────────────────
# KABUTAN TREND SCRAPER
# The stock page carries a four-column "kabuka_trend" table:
#   row 0: horizon labels
#   row 1: up/down arrow images (direction in alt text)
#   row 2: moving-average names (5/25/75/200-day)
#   row 3: deviation from each average, e.g. "+51.41％"
# ──────────────────────────────────────────────────────────

TREND_HORIZONS = ('5day', '25day', '75day', '200day')

_DIRECTIONS = {'上昇': 'up', '下降': 'down'}

_RE_H2_NAME = re.compile(r'^\d{4}\s*[　\s]+(.+)$')
_RE_TITLE_NAME = re.compile(r'^(.+?)[（(【]')


class KabutanScraper:
    def __init__(self, base_url=None, timeout=None):
        self.base_url = base_url or settings.KABUTAN_URL
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.session = requests.Session()
        self.session.headers.update({'User-Agent': settings.USER_AGENT})

    def _company_name(self, soup, stock_code):
        h2 = soup.find('h2')
        if h2:
            m = _RE_H2_NAME.match(h2.get_text(strip=True))
            if m:
                return m.group(1).strip()
        title = soup.find('title')
        if title:
            m = _RE_TITLE_NAME.match(title.get_text(strip=True))
            if m:
                return m.group(1).strip()
        return stock_code

    def _cell_texts(self, row):
        return [cell.get_text(strip=True) for cell in row.find_all(['td', 'th'])]

    def _cell_directions(self, row):
        directions = []
        for cell in row.find_all(['td', 'th']):
            img = cell.find('img')
            alt = (img.get('alt') or '').strip() if img else ''
            directions.append(_DIRECTIONS.get(alt, alt or 'N/A'))
        return directions

    def parse_trends(self, html, stock_code):
        soup = BeautifulSoup(html, 'html.parser')
        data = {
            'stock_code': stock_code,
            'company_name': self._company_name(soup, stock_code),
            'trends': None,
        }

        img = soup.select_one('img[src*="kabuka_trend"]')
        if img is None:
            return data
        table = img.parent.find_next_sibling('table')
        if table is None:
            return data
        rows = table.find_all('tr')
        if len(rows) < 4:
            return data

        directions = self._cell_directions(rows[1])
        rates = self._cell_texts(rows[3])
        data['trends'] = {
            horizon: {
                'direction': directions[i] if i < len(directions) else 'N/A',
                'rate': rates[i] if i < len(rates) and rates[i] else 'N/A',
            }
            for i, horizon in enumerate(TREND_HORIZONS)
        }
        return data

    def scrape_trends(self, stock_code):
        try:
            response = self.session.get(
                self.base_url, params={'code': stock_code}, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logging.warning(f"Kabutan fetch failed for {stock_code}: {e}")
            return {'stock_code': stock_code, 'company_name': stock_code,
                    'trends': None, 'error': str(e)}
        return self.parse_trends(response.content, stock_code)


def fetch_many(codes, fetch, delay=None, progress=True):
    """Call ``fetch(code)`` for each code in turn, sleeping between calls.

    Returns a list of (code, result) pairs in input order.
    """
    delay = settings.REQUEST_INTERVAL if delay is None else delay
    results = []
    for i, code in enumerate(codes, 1):
        result = fetch(code)
        results.append((code, result))
        if progress:
            print(f"[{i}/{len(codes)}] {code} {'✓' if result else '✗'}")
        if i < len(codes) and delay > 0:
            time.sleep(delay)
    return results
