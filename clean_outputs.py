#!/usr/bin/env python3
"""
clean_outputs.py  –  Drop placeholder companies from companies files

Usage:
    python clean_outputs.py [output_dir ...]

Every *.json with a "companies" array is rewritten without the records
left behind by failed fetches (name N/A, isExist "0", or an error). The
original is kept next to it as <file>.bak.
"""
import os
import sys
import shutil

import settings
from companies import is_valid_company, read_companies_file, write_companies_file


def clean_file(path):
    """Returns (before, after) counts, or None if the file was skipped."""
    data = read_companies_file(path)
    if not data or not isinstance(data.get('companies'), list):
        return None

    before = len(data['companies'])
    kept = [c for c in data['companies'] if is_valid_company(c)]
    data['companies'] = kept
    data['totalCompanies'] = len(kept)

    shutil.copyfile(path, f"{path}.bak")
    write_companies_file(path, data)
    return before, len(kept)


def clean_dir(directory):
    cleaned = {}
    try:
        names = sorted(os.listdir(directory))
    except OSError as e:
        print(f"Cannot access {directory}: {e}", file=sys.stderr)
        return cleaned

    for name in names:
        if not name.endswith('.json'):
            continue
        path = os.path.join(directory, name)
        counts = clean_file(path)
        if counts:
            cleaned[name] = counts
            print(f"Cleaned {name}: {counts[0]} -> {counts[1]} (backup: {name}.bak)")
    return cleaned


if __name__ == "__main__":
    for directory in sys.argv[1:] or [settings.OUTPUT_DIR]:
        clean_dir(directory)
