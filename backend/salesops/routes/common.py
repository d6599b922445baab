# Overview: Shared helpers for API routes; error translation, request parsing and branch scoping.

from decimal import Decimal

from flask import current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

from ..errors import PermissionDenied, SalesOpsError, ValidationError
from ..extensions import db
from ..permissions import ROLE_SALES
from ..time_utils import parse_iso_date


def error_response(exc: SalesOpsError):
    """Roll back and answer {"error", "details"?} with the error's status code."""
    db.session.rollback()
    return jsonify(exc.to_dict()), exc.status_code


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def query_date(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")


def query_bool(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def scoped_branch_id(requested: int | None) -> int | None:
    """
    Clamp a branch filter to the actor's branch scope.

    Super admins may pass any branch (or none); everyone else always reads
    their own branch.
    """
    own = g.capabilities.branch_id
    if own is None:
        return requested
    if requested is not None and requested != own:
        raise PermissionDenied(
            f"Branch {requested} is outside your scope",
            details={"branch_id": requested},
        )
    return own


def scoped_sales_id(requested: int | None) -> int | None:
    """Sales agents only ever see their own documents."""
    if g.current_user.role == ROLE_SALES:
        return g.current_user.id
    return requested


def ensure_branch_visible(branch_id: int | None) -> None:
    if not g.capabilities.covers_branch(branch_id):
        raise PermissionDenied(
            f"Branch {branch_id} is outside your scope",
            details={"branch_id": branch_id},
        )


def ensure_user_visible(user) -> None:
    """Branch-scoped actors only reach users of their own branch (never branchless ones)."""
    own = g.capabilities.branch_id
    if own is not None and user.branch_id != own:
        raise PermissionDenied(
            f"User {user.id} is outside your scope",
            details={"user_id": user.id, "branch_id": user.branch_id},
        )


def ensure_document_visible(document) -> None:
    """Branch scope plus own-documents-only for sales agents."""
    ensure_branch_visible(document.branch_id)
    if g.current_user.role == ROLE_SALES and document.sales_id != g.current_user.id:
        raise PermissionDenied("Sales agents can only view their own documents")


def decimal_str(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return str(value)


def register_error_handlers(app) -> None:
    @app.errorhandler(SalesOpsError)
    def handle_sales_ops_error(exc):
        return error_response(exc)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        if isinstance(exc, HTTPException):
            return jsonify({"error": exc.description}), exc.code
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500
