# backend/salesops/routes/commissions.py
"""
Commission routes. Every route answers 404 while COMMISSIONS_ENABLED is off.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_capability
from ..errors import SalesOpsError
from ..permissions import MANAGE_COMMISSIONS, ROLE_SALES
from ..services import commission_service
from .common import ensure_branch_visible, error_response, json_body, scoped_branch_id, scoped_sales_id


commissions_bp = Blueprint("commissions", __name__, url_prefix="/api/commissions")


@commissions_bp.get("")
@require_actor
def list_commissions():
    """Query params (all optional): sales_id, branch_id, status."""
    try:
        commissions = commission_service.list_commissions(
            sales_id=scoped_sales_id(request.args.get("sales_id", type=int)),
            branch_id=scoped_branch_id(request.args.get("branch_id", type=int)),
            status=request.args.get("status"),
        )
        return jsonify({"items": [c.to_dict() for c in commissions]}), 200
    except SalesOpsError as e:
        return error_response(e)


@commissions_bp.get("/<int:commission_id>")
@require_actor
def get_commission(commission_id: int):
    try:
        commission = commission_service.get_commission(commission_id)
        ensure_branch_visible(commission.sales_transaction.branch_id)
        if g.current_user.role == ROLE_SALES and commission.sales_id != g.current_user.id:
            return jsonify({"error": "Commission not found"}), 404
        return jsonify(commission.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@commissions_bp.post("/<int:commission_id>/approve")
@require_actor
@require_capability(MANAGE_COMMISSIONS)
def approve_commission(commission_id: int):
    try:
        commission = commission_service.approve_commission(
            commission_id, actor_id=g.current_user.id, capabilities=g.capabilities
        )
        return jsonify(commission.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@commissions_bp.post("/<int:commission_id>/pay")
@require_actor
@require_capability(MANAGE_COMMISSIONS)
def pay_commission(commission_id: int):
    """Request body: {"notes": str (optional)}."""
    try:
        data = json_body()
        commission = commission_service.mark_paid(
            commission_id,
            actor_id=g.current_user.id,
            capabilities=g.capabilities,
            notes=data.get("notes"),
        )
        return jsonify(commission.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)
