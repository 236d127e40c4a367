# Overview: Flask API routes for reports; dashboard and period sales report.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
@require_permission("VIEW_REPORTS")
def dashboard_route():
    return jsonify(reporting_service.dashboard_summary()), 200


@reports_bp.get("/sales")
@require_auth
@require_permission("VIEW_REPORTS")
def sales_report_route():
    period = request.args.get("period", "month")
    return jsonify(reporting_service.sales_report(period)), 200
