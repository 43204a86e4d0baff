from flask import Blueprint, current_app, jsonify, request

from utils.analytics import (
    DEFAULT_TREND_MONTHS,
    collection_vs_due,
    dashboard_metrics,
    get_fee_structure_analytics,
    monthly_collection,
    monthly_enrollment,
)
from utils.formatting import format_currency
from utils.store import store

analytics_bp = Blueprint('analytics', __name__, url_prefix='/analytics')


def _feed():
    return current_app.extensions["dashboard_feed"]


def _months():
    months = request.args.get('months', DEFAULT_TREND_MONTHS, type=int)
    # 0 means the whole history
    return months if months and months > 0 else None


@analytics_bp.route('/')
def summary():
    summary = _feed().current()
    currency = current_app.config.get("CURRENCY", "PKR")
    metrics = summary["metrics"]
    return jsonify({
        **summary,
        "formatted": {
            "total_collection": format_currency(metrics["total_collection"], currency),
            "total_due": format_currency(metrics["total_due"], currency),
            "revenue_per_student": format_currency(metrics["revenue_per_student"], currency),
        },
    })


@analytics_bp.route('/metrics')
def metrics():
    return jsonify(dashboard_metrics(store.all('students'), store.all('fee_receipts')))


@analytics_bp.route('/trends')
def trends():
    months = _months()
    receipts = store.all('fee_receipts')
    return jsonify({
        "enrollment": monthly_enrollment(store.all('students'), months),
        "collection": monthly_collection(receipts, months),
        "collection_vs_due": collection_vs_due(receipts, months),
    })


@analytics_bp.route('/fee-structure')
def fee_structure():
    result = get_fee_structure_analytics()
    return jsonify(result.to_dict("analytics"))
