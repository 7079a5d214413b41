"""
Shikiho Trend Dashboard -- Flask Backend
Serves the cached companies file, history snapshots and trend reports as JSON.
"""
import os
import logging
from flask import Flask, jsonify, request
from flask_cors import CORS

import settings
from companies import (
    companies_path, is_valid_company, pick_random_company_id, read_companies_file,
    read_selected_stocks, save_selected_stocks,
)
from errors import InvalidDateFormat, NoHistoryAvailable
from growth_filter import GrowthConfig, filter_high_growth
from history_price import build_series, get_price_at_date
from history_store import list_snapshot_dates
from scraper import ShikihoClient, format_company_data
from trend_analyzer import detect_trend_changes, format_change

app = Flask(__name__)
CORS(app)


def _flag(name, default=False):
    value = request.args.get(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes', 'on')


def _fetch_company(stock_code):
    return ShikihoClient().fetch_company_data(stock_code)


# ── Error mapping ──────────────────────────────────────────

@app.errorhandler(NoHistoryAvailable)
def handle_no_history(e):
    return jsonify({
        "error": str(e),
        "requested_date": e.requested_date,
        "history_dir": e.history_dir,
    }), 404


@app.errorhandler(InvalidDateFormat)
def handle_bad_date(e):
    return jsonify({"error": str(e)}), 400


# ── Companies ─────────────────────────────────────────────

@app.route("/api/companies")
def api_companies():
    """
    Companies from a cached companies file.
    Query params:
      - file: companies file name under OUTPUT_DIR (default range-companies.json)
      - high_growth: true to apply the growth screen
      - years, ratio, market_cap: growth screen settings
    """
    path = companies_path(request.args.get("file"))
    data = read_companies_file(path)
    if data is None:
        return jsonify({"error": "Company source file not found", "source": path}), 404

    companies = [c for c in data.get("companies") or [] if is_valid_company(c)]
    result = {
        "timestamp": data.get("timestamp"),
        "source": os.path.basename(path),
        "high_growth": False,
    }

    if _flag("high_growth"):
        try:
            config = GrowthConfig.from_mapping({
                "consecutive_years": request.args.get("years"),
                "sales_growth_ratio": request.args.get("ratio"),
                "market_cap_ceiling": request.args.get("market_cap"),
            })
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        companies = filter_high_growth(companies, config)
        result["high_growth"] = True
        result["config"] = config.to_dict()

    result["totalCompanies"] = len(companies)
    result["companies"] = companies
    return jsonify(result)


@app.route("/api/company/<stock_code>")
def api_company(stock_code):
    """Live Shikiho record for one company, proxied."""
    raw = _fetch_company(stock_code)
    company = format_company_data(raw, stock_code)
    if company.get("error"):
        return jsonify({"error": company["error"], "companyId": stock_code}), 502
    return jsonify({"company": company})


@app.route("/api/random-company")
def api_random_company():
    """Live record for a company picked at random from a companies file (?file=)."""
    path = companies_path(request.args.get("file"))
    data = read_companies_file(path)
    if data is None:
        return jsonify({"error": "Company source file not found", "source": path}), 404

    stock_code = pick_random_company_id(data)
    if not stock_code:
        return jsonify({"error": "No companies available in source file", "source": path}), 404

    company = format_company_data(_fetch_company(stock_code), stock_code)
    if company.get("error"):
        return jsonify({"error": company["error"], "companyId": stock_code, "source": path}), 502
    return jsonify({"company": company, "pickedFrom": os.path.basename(path)})


# ── History ────────────────────────────────────────────────

@app.route("/api/history/dates")
def api_history_dates():
    return jsonify({"dates": list_snapshot_dates()})


@app.route("/api/history/<stock_code>/price")
def api_history_price(stock_code):
    """Price on a date. Backfill from the live API only when asked (?backfill=true)."""
    resolved, price = get_price_at_date(
        stock_code, request.args.get("date"), backfill=_flag("backfill")
    )
    return jsonify({
        "stock_code": stock_code,
        "requested_date": resolved.requested_date,
        "resolved_date": resolved.resolved_date,
        "price": price,
    })


@app.route("/api/history/<stock_code>/series")
def api_history_series(stock_code):
    try:
        points = int(request.args.get("points", settings.DEFAULT_SERIES_POINTS))
        series = build_series(
            stock_code,
            end_date=request.args.get("end_date"),
            points=points,
            backfill=_flag("backfill"),
        )
    except InvalidDateFormat:
        raise
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "stock_code": stock_code,
        "points": points,
        "series": series,
    })


# ── Trends ─────────────────────────────────────────────────

@app.route("/api/trends")
def api_trends():
    """
    Query params:
      - days_ago: how far back the comparison snapshot should be (default 7)
      - mode: auto | pairwise | absolute (default auto)
    """
    try:
        days_ago = int(request.args.get("days_ago", 7))
        report = detect_trend_changes(
            days_ago=days_ago, mode=request.args.get("mode", "auto")
        )
    except InvalidDateFormat:
        raise
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "mode": report.mode,
        "old_date": report.old_date,
        "new_date": report.new_date,
        "count": len(report.changes),
        "changes": report.changes,
        "messages": [format_change(c) for c in report.changes],
    })


# ── Selected stocks ───────────────────────────────────────

@app.route("/api/selected-stocks", methods=["GET"])
def api_selected_stocks_get():
    try:
        return jsonify(read_selected_stocks())
    except ValueError as e:
        logging.error(f"Selected stocks unreadable: {e}")
        return jsonify({"error": "Failed to load"}), 500


@app.route("/api/selected-stocks", methods=["POST"])
def api_selected_stocks_save():
    body = request.get_json(silent=True)
    if not isinstance(body, list):
        return jsonify({"error": "Invalid data format"}), 400

    save_selected_stocks(body)
    logging.info(f"Saved {len(body)} selected stocks")
    return jsonify({"success": True, "count": len(body)})


# ── Entry point ────────────────────────────────────────────

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    app.run(host="0.0.0.0", port=port, debug=debug)
