# backend/salesops/routes/visits.py
"""
Field visit API routes.

Lifecycle: submit (pending) -> approve | reject. Visits never move stock.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_capability
from ..errors import SalesOpsError
from ..permissions import APPROVE_VISITS, ARCHIVE_RECORDS, REJECT_VISITS, ROLE_SALES, SUBMIT_VISITS
from ..services import visit_service
from .common import (
    ensure_document_visible,
    error_response,
    json_body,
    query_bool,
    query_date,
    scoped_branch_id,
    scoped_sales_id,
)


visits_bp = Blueprint("visits", __name__, url_prefix="/api/visits")


def _list_filters() -> dict:
    return {
        "branch_id": scoped_branch_id(request.args.get("branch_id", type=int)),
        "sales_id": scoped_sales_id(request.args.get("sales_id", type=int)),
        "status": request.args.get("status"),
        "visit_type": request.args.get("visit_type"),
        "start": query_date("start"),
        "end": query_date("end"),
        "include_archived": query_bool("include_archived"),
    }


@visits_bp.post("")
@require_actor
@require_capability(SUBMIT_VISITS)
def submit_visit():
    """
    Request body:
    {
        "branch_id": int,
        "customer_name": str,
        "visit_type": "routine" | "prospecting" | "follow_up" | "complaint" | "other",
        "visit_date": "YYYY-MM-DD" (optional),
        "area_id", "purpose", "result", "notes", "latitude", "longitude", "photo" (optional)
    }
    """
    try:
        data = json_body()
        if g.current_user.role == ROLE_SALES:
            data["sales_id"] = g.current_user.id
        visit = visit_service.submit(data, actor_id=g.current_user.id, capabilities=g.capabilities)
        return jsonify(visit.to_dict()), 201
    except SalesOpsError as e:
        return error_response(e)


@visits_bp.get("")
@require_actor
def list_visits():
    try:
        visits = visit_service.list_visits(**_list_filters())
        return jsonify({"items": [v.to_dict() for v in visits]}), 200
    except SalesOpsError as e:
        return error_response(e)


@visits_bp.get("/locations")
@require_actor
def visit_locations():
    """Visits with coordinates, for the map view."""
    try:
        visits = visit_service.visits_with_locations(**_list_filters())
        return jsonify({"items": [v.to_dict() for v in visits]}), 200
    except SalesOpsError as e:
        return error_response(e)


@visits_bp.get("/statistics")
@require_actor
def visit_statistics():
    try:
        stats = visit_service.visit_statistics(
            branch_id=scoped_branch_id(request.args.get("branch_id", type=int)),
            sales_id=scoped_sales_id(request.args.get("sales_id", type=int)),
            as_of=query_date("as_of"),
        )
        return jsonify(stats), 200
    except SalesOpsError as e:
        return error_response(e)


@visits_bp.get("/<int:visit_id>")
@require_actor
def get_visit(visit_id: int):
    try:
        visit = visit_service.get_visit(visit_id)
        ensure_document_visible(visit)
        return jsonify(visit.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@visits_bp.post("/<int:visit_id>/approve")
@require_actor
@require_capability(APPROVE_VISITS)
def approve_visit(visit_id: int):
    try:
        visit = visit_service.approve(visit_id, actor_id=g.current_user.id, capabilities=g.capabilities)
        return jsonify(visit.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@visits_bp.post("/<int:visit_id>/reject")
@require_actor
@require_capability(REJECT_VISITS)
def reject_visit(visit_id: int):
    """Request body: {"reason": str (optional)}."""
    try:
        data = json_body()
        visit = visit_service.reject(
            visit_id,
            actor_id=g.current_user.id,
            capabilities=g.capabilities,
            reason=data.get("reason"),
        )
        return jsonify(visit.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@visits_bp.post("/<int:visit_id>/archive")
@require_actor
@require_capability(ARCHIVE_RECORDS)
def archive_visit(visit_id: int):
    try:
        visit = visit_service.archive(visit_id, actor_id=g.current_user.id, capabilities=g.capabilities)
        return jsonify(visit.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)
