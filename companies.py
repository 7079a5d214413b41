"""
Companies files: ``{"timestamp", "totalCompanies", "companies": [...]}``
written by fetch_range.py and read by the dashboard API.
"""
import os
import json
import random
import logging
from datetime import datetime, timedelta

import settings


def companies_path(file_name=None, output_dir=None):
    name = os.path.basename(file_name or settings.COMPANIES_FILE)
    return os.path.join(output_dir or settings.OUTPUT_DIR, name)


def is_valid_company(company):
    """Placeholders left by failed fetches are not real companies."""
    return bool(
        isinstance(company, dict)
        and company.get('companyName')
        and company.get('companyName') != 'N/A'
        and company.get('isExist') != '0'
        and not company.get('error')
    )


def build_companies_data(companies):
    kept = [c for c in companies if is_valid_company(c)]
    return {
        'timestamp': datetime.now().isoformat(),
        'totalCompanies': len(kept),
        'companies': kept,
    }


def read_companies_file(path):
    """Parsed companies file, or None if missing or unreadable."""
    if not os.path.exists(path):
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logging.error(f"Could not read companies file {path}: {e}")
        return None
    if isinstance(data, list):
        data = {'timestamp': None, 'totalCompanies': len(data), 'companies': data}
    return data if isinstance(data, dict) else None


def existing_companies(path):
    """Valid companies already in ``path``, keyed by companyId."""
    data = read_companies_file(path) or {}
    return {
        str(c.get('companyId') or c.get('stockCode')): c
        for c in data.get('companies') or []
        if is_valid_company(c)
    }


def is_recently_updated(updated_at, days, now=None):
    if not updated_at or days <= 0:
        return False
    try:
        stamp = datetime.fromisoformat(str(updated_at).replace('Z', '+00:00'))
    except ValueError:
        return False
    if stamp.tzinfo is not None:
        stamp = stamp.astimezone().replace(tzinfo=None)
    now = now or datetime.now()
    return now - stamp < timedelta(days=days)


def pick_random_company_id(data):
    companies = [c for c in (data or {}).get('companies') or [] if isinstance(c, dict)]
    if not companies:
        return None
    picked = random.choice(companies)
    return picked.get('companyId') or picked.get('stockCode')


def write_companies_file(path, data):
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    return path


def read_selected_stocks(path=None):
    path = path or settings.SELECTED_STOCKS_PATH
    if not os.path.exists(path):
        return []
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_selected_stocks(codes, path=None):
    path = path or settings.SELECTED_STOCKS_PATH
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump([str(c) for c in codes], f, indent=2)
    return path
