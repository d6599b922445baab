# backend/salesops/routes/transactions.py
"""
Sales transaction API routes.

Lifecycle: submit (pending) -> approve | cancel. Approval is the only step
that moves stock. Sales agents see only their own transactions; admins see
their branch.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_capability
from ..errors import NotFound, SalesOpsError
from ..extensions import db
from ..models import User
from ..permissions import (
    APPROVE_TRANSACTIONS,
    ARCHIVE_RECORDS,
    CANCEL_TRANSACTIONS,
    ROLE_SALES,
    SUBMIT_TRANSACTIONS,
    VIEW_REPORTS,
)
from ..services import transaction_service
from .common import (
    ensure_document_visible,
    ensure_user_visible,
    error_response,
    json_body,
    query_bool,
    query_date,
    scoped_branch_id,
    scoped_sales_id,
)


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("")
@require_actor
@require_capability(SUBMIT_TRANSACTIONS)
def submit_transaction():
    """
    Request body:
    {
        "branch_id": int,
        "area_id": int (optional),
        "transaction_date": "YYYY-MM-DD" (optional, default today),
        "customer_name": str (optional),
        "payment_method": "cash" | "transfer" | "credit",
        "discount": "0.00" (optional),
        "items": [{"product_id": int, "quantity": int, "price"?: "12.50", "discount"?: "0.00"}]
    }

    Returns:
        201: Transaction created (pending)
        400: Invalid draft
        403: Branch outside the actor's scope
    """
    try:
        data = json_body()
        # Agents always submit for themselves.
        if g.current_user.role == ROLE_SALES:
            data["sales_id"] = g.current_user.id
        txn = transaction_service.submit(data, actor_id=g.current_user.id, capabilities=g.capabilities)
        return jsonify(txn.to_dict()), 201
    except SalesOpsError as e:
        return error_response(e)


@transactions_bp.get("")
@require_actor
def list_transactions():
    """
    Query params (all optional):
    - branch_id, sales_id: int
    - status: pending | approved | cancelled
    - start, end: YYYY-MM-DD (transaction_date, inclusive)
    - include_archived: bool
    """
    try:
        txns = transaction_service.list_transactions(
            branch_id=scoped_branch_id(request.args.get("branch_id", type=int)),
            sales_id=scoped_sales_id(request.args.get("sales_id", type=int)),
            status=request.args.get("status"),
            start=query_date("start"),
            end=query_date("end"),
            include_archived=query_bool("include_archived"),
        )
        return jsonify({"items": [t.to_dict() for t in txns]}), 200
    except SalesOpsError as e:
        return error_response(e)


@transactions_bp.get("/summary")
@require_actor
def sales_summary():
    """
    Totals for one agent; agents always get their own summary.

    Reading another agent requires VIEW_REPORTS and the agent must belong to
    the actor's branch.

    Returns:
        200: Summary
        403: Missing VIEW_REPORTS or agent outside the actor's branch
        404: Unknown sales_id
    """
    try:
        sales_id = scoped_sales_id(request.args.get("sales_id", type=int)) or g.current_user.id
        if sales_id != g.current_user.id:
            g.capabilities.require(VIEW_REPORTS)
            agent = db.session.get(User, sales_id)
            if agent is None:
                raise NotFound(f"User {sales_id} not found")
            ensure_user_visible(agent)
        summary = transaction_service.sales_summary(
            sales_id,
            start=query_date("start"),
            end=query_date("end"),
        )
        return jsonify(summary), 200
    except SalesOpsError as e:
        return error_response(e)


@transactions_bp.get("/<int:transaction_id>")
@require_actor
def get_transaction(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        ensure_document_visible(txn)
        return jsonify(txn.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@transactions_bp.post("/<int:transaction_id>/approve")
@require_actor
@require_capability(APPROVE_TRANSACTIONS)
def approve_transaction(transaction_id: int):
    """
    Approve a pending transaction and decrement stock for every item.

    Returns:
        200: Approved
        409: Not pending (already approved, cancelled or archived)
        422: Insufficient stock for an item; nothing changed
        503: Stock rows stayed locked past the retry limit
    """
    try:
        txn = transaction_service.approve(
            transaction_id, actor_id=g.current_user.id, capabilities=g.capabilities
        )
        return jsonify(txn.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@transactions_bp.post("/<int:transaction_id>/cancel")
@require_actor
@require_capability(CANCEL_TRANSACTIONS)
def cancel_transaction(transaction_id: int):
    """Request body: {"reason": str (optional)}."""
    try:
        data = json_body()
        txn = transaction_service.cancel(
            transaction_id,
            actor_id=g.current_user.id,
            capabilities=g.capabilities,
            reason=data.get("reason"),
        )
        return jsonify(txn.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@transactions_bp.post("/<int:transaction_id>/archive")
@require_actor
@require_capability(ARCHIVE_RECORDS)
def archive_transaction(transaction_id: int):
    try:
        txn = transaction_service.archive(
            transaction_id, actor_id=g.current_user.id, capabilities=g.capabilities
        )
        return jsonify(txn.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)
