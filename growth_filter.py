"""
High-growth screen: N straight years of higher revenue, with revenue at
least ``sales_growth_ratio`` times what it was N years ago, optionally only
for companies under a market-cap ceiling.

Everything here works on company records already in memory.
"""
from dataclasses import dataclass, asdict
from typing import Optional

# Market caps arrive in millions of yen; the ceiling is set in
# hundred-million yen (oku-en).
MARKET_CAP_UNITS_PER_CEILING_UNIT = 100


@dataclass(frozen=True)
class GrowthConfig:
    consecutive_years: int = 4
    sales_growth_ratio: float = 2.0
    market_cap_ceiling: Optional[float] = None

    def __post_init__(self):
        if not 1 <= self.consecutive_years <= 10:
            raise ValueError("consecutive_years must be between 1 and 10")
        if not 1.1 <= self.sales_growth_ratio <= 10:
            raise ValueError("sales_growth_ratio must be between 1.1 and 10")
        if self.market_cap_ceiling is not None and not 1 <= self.market_cap_ceiling <= 10000:
            raise ValueError("market_cap_ceiling must be between 1 and 10000 (hundred-million yen)")

    @classmethod
    def from_mapping(cls, data):
        """Build from loose input (query args, JSON). Missing keys use defaults."""
        data = data or {}
        kwargs = {}
        if data.get('consecutive_years') not in (None, ''):
            kwargs['consecutive_years'] = int(data['consecutive_years'])
        if data.get('sales_growth_ratio') not in (None, ''):
            kwargs['sales_growth_ratio'] = float(data['sales_growth_ratio'])
        if data.get('market_cap_ceiling') not in (None, ''):
            kwargs['market_cap_ceiling'] = float(data['market_cap_ceiling'])
        return cls(**kwargs)

    def to_dict(self):
        return asdict(self)


def actual_annual_rows(company):
    """Actual (non-forecast), full-year rows with revenue, newest first.

    Periods are encoded so that string order is fiscal order.
    """
    rows = [
        row for row in company.get('performanceData') or []
        if row.get('isActual') and not row.get('isForecast')
        and not row.get('isQuarterly') and row.get('netSales') is not None
    ]
    return sorted(rows, key=lambda row: row.get('period') or '', reverse=True)


def sales_streak(rows):
    """Count year-on-year revenue increases from the newest row backwards.

    The first year without an increase ends the streak.
    """
    streak = 0
    for newer, older in zip(rows, rows[1:]):
        if newer['netSales'] > older['netSales']:
            streak += 1
        else:
            break
    return streak


def _over_ceiling(company, ceiling):
    market_cap = company.get('marketCap')
    if market_cap is None:
        return True
    return market_cap / MARKET_CAP_UNITS_PER_CEILING_UNIT > ceiling


def is_high_growth(company, config):
    years = config.consecutive_years
    rows = actual_annual_rows(company)
    if len(rows) < years + 1:
        return False

    if config.market_cap_ceiling is not None and _over_ceiling(company, config.market_cap_ceiling):
        return False

    window = rows[:years + 1]
    if sales_streak(window) < years:
        return False

    base = window[years]['netSales']
    if base <= 0:
        return False
    return window[0]['netSales'] / base >= config.sales_growth_ratio


def filter_high_growth(companies, config):
    return [c for c in companies if is_high_growth(c, config)]
