# backend/salesops/routes/reports.py
"""
Report routes.

SECURITY: every route requires VIEW_REPORTS (super admins and branch admins).
Branch admins are clamped to their own branch; asking for another branch is
a 403. Windows are inclusive ISO dates (start, end) and default to the
current month.
"""
from flask import Blueprint, jsonify, request

from ..decorators import require_actor, require_capability
from ..errors import SalesOpsError
from ..permissions import VIEW_REPORTS
from ..services import report_service
from .common import error_response, query_date, scoped_branch_id


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _window() -> dict:
    return {
        "branch_id": scoped_branch_id(request.args.get("branch_id", type=int)),
        "start": query_date("start"),
        "end": query_date("end"),
    }


@reports_bp.get("/sales")
@require_actor
@require_capability(VIEW_REPORTS)
def sales_report():
    """Query params: branch_id, start, end."""
    try:
        return jsonify(report_service.sales_report(**_window())), 200
    except SalesOpsError as e:
        return error_response(e)


@reports_bp.get("/products")
@require_actor
@require_capability(VIEW_REPORTS)
def product_performance():
    """Top 20 products by approved revenue. Query params: branch_id, start, end."""
    try:
        return jsonify(report_service.product_performance(**_window())), 200
    except SalesOpsError as e:
        return error_response(e)


@reports_bp.get("/sales-performance")
@require_actor
@require_capability(VIEW_REPORTS)
def sales_performance():
    try:
        return jsonify(report_service.sales_performance(**_window())), 200
    except SalesOpsError as e:
        return error_response(e)


@reports_bp.get("/commissions")
@require_actor
@require_capability(VIEW_REPORTS)
def commission_summary():
    """404 while COMMISSIONS_ENABLED is off."""
    try:
        return jsonify(report_service.commission_summary(**_window())), 200
    except SalesOpsError as e:
        return error_response(e)


@reports_bp.get("/dashboard")
@require_actor
@require_capability(VIEW_REPORTS)
def dashboard():
    """Query params: branch_id, as_of (defaults to today)."""
    try:
        result = report_service.dashboard(
            branch_id=scoped_branch_id(request.args.get("branch_id", type=int)),
            as_of=query_date("as_of"),
        )
        return jsonify(result), 200
    except SalesOpsError as e:
        return error_response(e)
