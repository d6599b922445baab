# backend/salesops/routes/targets.py
"""
Sales target routes: CRUD (MANAGE_TARGETS) and read-only progress.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_capability
from ..errors import PermissionDenied, SalesOpsError
from ..models.targets import TARGET_TYPE_REVENUE
from ..permissions import MANAGE_TARGETS, ROLE_SALES
from ..services import target_service
from ..time_utils import to_iso_date
from .common import (
    decimal_str,
    ensure_branch_visible,
    error_response,
    json_body,
    query_date,
    scoped_branch_id,
    scoped_sales_id,
)


targets_bp = Blueprint("targets", __name__, url_prefix="/api/targets")


def serialize_progress(target, result: dict) -> dict:
    revenue = target.type == TARGET_TYPE_REVENUE
    return {
        "target_id": target.id,
        "type": target.type,
        "current": decimal_str(result["current"]) if revenue else result["current"],
        "goal": decimal_str(result["goal"]) if revenue else result["goal"],
        "percent": decimal_str(result["percent"]),
        "start_date": to_iso_date(result["start_date"]),
        "end_date": to_iso_date(result["end_date"]),
    }


def _ensure_target_visible(target) -> None:
    if g.current_user.role == ROLE_SALES and target.user_id not in (None, g.current_user.id):
        raise PermissionDenied("Sales agents can only view their own targets")
    owner_branch = target.branch_id
    if owner_branch is None and target.user is not None:
        owner_branch = target.user.branch_id
    ensure_branch_visible(owner_branch)


@targets_bp.get("")
@require_actor
def list_targets():
    """
    Query params (all optional): branch_id, user_id, type, period_type, year, month
    """
    try:
        targets = target_service.list_targets(
            branch_id=scoped_branch_id(request.args.get("branch_id", type=int)),
            user_id=scoped_sales_id(request.args.get("user_id", type=int)),
            target_type=request.args.get("type"),
            period_type=request.args.get("period_type"),
            year=request.args.get("year", type=int),
            month=request.args.get("month", type=int),
        )
        return jsonify({"items": [t.to_dict() for t in targets]}), 200
    except SalesOpsError as e:
        return error_response(e)


@targets_bp.get("/<int:target_id>")
@require_actor
def get_target(target_id: int):
    try:
        target = target_service.get_target(target_id)
        _ensure_target_visible(target)
        return jsonify(target.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@targets_bp.get("/<int:target_id>/progress")
@require_actor
def target_progress(target_id: int):
    """Query params: as_of (YYYY-MM-DD, optional, default today)."""
    try:
        target = target_service.get_target(target_id)
        _ensure_target_visible(target)
        result = target_service.progress(target, query_date("as_of"))
        return jsonify(serialize_progress(target, result)), 200
    except SalesOpsError as e:
        return error_response(e)


@targets_bp.post("")
@require_actor
@require_capability(MANAGE_TARGETS)
def create_target():
    """
    Request body:
    {
        "branch_id": int and/or "user_id": int,
        "type": "revenue" | "quantity",
        "amount": "1000000.00" (revenue) | "quantity": int (quantity),
        "period_type": "monthly" | "quarterly" | "yearly" | "custom",
        "year": int, "month": int (monthly/quarterly),
        "start_date", "end_date": "YYYY-MM-DD" (custom)
    }
    """
    try:
        target = target_service.create_target(json_body(), capabilities=g.capabilities)
        return jsonify(target.to_dict()), 201
    except SalesOpsError as e:
        return error_response(e)


@targets_bp.patch("/<int:target_id>")
@require_actor
@require_capability(MANAGE_TARGETS)
def update_target(target_id: int):
    try:
        target = target_service.update_target(target_id, json_body(), capabilities=g.capabilities)
        return jsonify(target.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@targets_bp.delete("/<int:target_id>")
@require_actor
@require_capability(MANAGE_TARGETS)
def delete_target(target_id: int):
    try:
        target_service.delete_target(target_id, capabilities=g.capabilities)
        return "", 204
    except SalesOpsError as e:
        return error_response(e)
