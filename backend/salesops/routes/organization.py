# backend/salesops/routes/organization.py
"""
Branch, area and user management routes.

SECURITY: every route requires an actor.
- Reads are scoped to the actor's branch (super admins see all branches)
- Writes require MANAGE_CATALOG
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_capability
from ..errors import SalesOpsError
from ..models import Area, Branch, User
from ..permissions import MANAGE_CATALOG, ROLE_SALES
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload
from .common import (
    ensure_branch_visible,
    ensure_user_visible,
    error_response,
    json_body,
    query_bool,
    scoped_branch_id,
)

BRANCH_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "address", "phone", "is_active"},
    required_on_create={"code", "name"},
)

AREA_POLICY = ModelValidationPolicy(
    writable_fields={"branch_id", "code", "name", "description", "is_active"},
    required_on_create={"branch_id", "code", "name"},
)

USER_POLICY = ModelValidationPolicy(
    writable_fields={"branch_id", "name", "email", "phone", "role", "is_active"},
    required_on_create={"name", "email"},
)

organization_bp = Blueprint("organization", __name__, url_prefix="/api")


# -- branches --

@organization_bp.get("/branches")
@require_actor
def list_branches():
    branches = catalog_service.list_branches(active_only=query_bool("active_only"))
    branches = [b for b in branches if g.capabilities.covers_branch(b.id)]
    return jsonify({"items": [b.to_dict() for b in branches]}), 200


@organization_bp.get("/branches/<int:branch_id>")
@require_actor
def get_branch(branch_id: int):
    try:
        ensure_branch_visible(branch_id)
        return jsonify(catalog_service.get_branch(branch_id).to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@organization_bp.post("/branches")
@require_actor
@require_capability(MANAGE_CATALOG)
def create_branch():
    try:
        patch = validate_payload(model=Branch, payload=json_body(), policy=BRANCH_POLICY, partial=False)
        branch = catalog_service.create_branch(patch)
        return jsonify(branch.to_dict()), 201
    except SalesOpsError as e:
        return error_response(e)


@organization_bp.patch("/branches/<int:branch_id>")
@require_actor
@require_capability(MANAGE_CATALOG)
def update_branch(branch_id: int):
    try:
        patch = validate_payload(model=Branch, payload=json_body(), policy=BRANCH_POLICY, partial=True)
        branch = catalog_service.update_branch(branch_id, patch)
        return jsonify(branch.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


# -- areas --

@organization_bp.get("/areas")
@require_actor
def list_areas():
    try:
        branch_id = scoped_branch_id(request.args.get("branch_id", type=int))
        # Agents only see the areas they are assigned to.
        user_id = g.current_user.id if g.current_user.role == ROLE_SALES else None
        areas = catalog_service.list_areas(
            branch_id=branch_id, active_only=query_bool("active_only"), user_id=user_id
        )
        return jsonify({"items": [a.to_dict() for a in areas]}), 200
    except SalesOpsError as e:
        return error_response(e)


@organization_bp.post("/areas")
@require_actor
@require_capability(MANAGE_CATALOG)
def create_area():
    try:
        patch = validate_payload(model=Area, payload=json_body(), policy=AREA_POLICY, partial=False)
        area = catalog_service.create_area(patch)
        return jsonify(area.to_dict()), 201
    except SalesOpsError as e:
        return error_response(e)


@organization_bp.patch("/areas/<int:area_id>")
@require_actor
@require_capability(MANAGE_CATALOG)
def update_area(area_id: int):
    try:
        patch = validate_payload(model=Area, payload=json_body(), policy=AREA_POLICY, partial=True)
        area = catalog_service.update_area(area_id, patch)
        return jsonify(area.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


# -- users --

@organization_bp.get("/users")
@require_actor
def list_users():
    try:
        branch_id = scoped_branch_id(request.args.get("branch_id", type=int))
        users = catalog_service.list_users(branch_id=branch_id, role=request.args.get("role"))
        return jsonify({"items": [u.to_dict() for u in users]}), 200
    except SalesOpsError as e:
        return error_response(e)


@organization_bp.get("/users/me")
@require_actor
def current_user():
    body = g.current_user.to_dict()
    body["capabilities"] = sorted(g.capabilities.codes)
    return jsonify(body), 200


@organization_bp.post("/users")
@require_actor
@require_capability(MANAGE_CATALOG)
def create_user():
    try:
        patch = validate_payload(model=User, payload=json_body(), policy=USER_POLICY, partial=False)
        user = catalog_service.create_user(patch)
        return jsonify(user.to_dict()), 201
    except SalesOpsError as e:
        return error_response(e)


@organization_bp.patch("/users/<int:user_id>")
@require_actor
@require_capability(MANAGE_CATALOG)
def update_user(user_id: int):
    try:
        patch = validate_payload(model=User, payload=json_body(), policy=USER_POLICY, partial=True)
        user = catalog_service.update_user(user_id, patch)
        return jsonify(user.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@organization_bp.get("/users/<int:user_id>/areas")
@require_actor
def list_user_areas(user_id: int):
    """Areas assigned to a sales agent."""
    try:
        user = catalog_service.get_user(user_id)
        ensure_user_visible(user)
        areas = catalog_service.list_areas(user_id=user.id)
        return jsonify({"items": [a.to_dict() for a in areas]}), 200
    except SalesOpsError as e:
        return error_response(e)


@organization_bp.put("/users/<int:user_id>/areas")
@require_actor
@require_capability(MANAGE_CATALOG)
def assign_user_areas(user_id: int):
    """
    Request body: {"area_ids": [int, ...]} (replaces the current assignments)

    Returns:
        200: Assigned areas
        400: Not a sales agent, or an area from another branch
        404: Unknown user or area
    """
    try:
        data = json_body()
        areas = catalog_service.assign_areas(user_id, data.get("area_ids"))
        return jsonify({"items": [a.to_dict() for a in areas]}), 200
    except SalesOpsError as e:
        return error_response(e)
