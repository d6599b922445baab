# backend/salesops/routes/stocks.py
"""
Stock ledger routes.

Every stock change goes through stock_service; these handlers only parse
input, resolve the actor and serialize results.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_capability
from ..errors import SalesOpsError, ValidationError
from ..permissions import ADJUST_STOCK, TRANSFER_STOCK, VIEW_STOCK
from ..services import stock_service
from ..time_utils import parse_iso_datetime
from ..validation import parse_int
from .common import ensure_branch_visible, error_response, json_body, scoped_branch_id


stocks_bp = Blueprint("stocks", __name__, url_prefix="/api/stocks")


def _required_int(data: dict, key: str) -> int:
    if data.get(key) is None:
        raise ValidationError(f"Missing required field: {key}")
    return parse_int(data[key], key)


@stocks_bp.get("")
@require_actor
@require_capability(VIEW_STOCK)
def list_stocks():
    """
    Query params (one of):
    - branch_id: int - every product stocked at a branch
    - product_id: int - a product across branches (scoped to the actor)
    """
    try:
        product_id = request.args.get("product_id", type=int)
        if product_id is not None:
            stocks = stock_service.stocks_for_product(product_id)
            stocks = [s for s in stocks if g.capabilities.covers_branch(s.branch_id)]
        else:
            branch_id = scoped_branch_id(request.args.get("branch_id", type=int))
            if branch_id is None:
                raise ValidationError("branch_id or product_id is required")
            stocks = stock_service.stocks_for_branch(branch_id)
        return jsonify({"items": [s.to_dict() for s in stocks]}), 200
    except SalesOpsError as e:
        return error_response(e)


@stocks_bp.get("/balance")
@require_actor
@require_capability(VIEW_STOCK)
def get_balance():
    try:
        product_id = parse_int(request.args.get("product_id"), "product_id")
        branch_id = parse_int(request.args.get("branch_id"), "branch_id")
        ensure_branch_visible(branch_id)
        return jsonify({
            "product_id": product_id,
            "branch_id": branch_id,
            "quantity": stock_service.balance(product_id, branch_id),
        }), 200
    except SalesOpsError as e:
        return error_response(e)


@stocks_bp.get("/low")
@require_actor
@require_capability(VIEW_STOCK)
def low_stock():
    try:
        branch_id = scoped_branch_id(request.args.get("branch_id", type=int))
        stocks = stock_service.low_stock_alerts(branch_id)
        return jsonify({"items": [s.to_dict() for s in stocks]}), 200
    except SalesOpsError as e:
        return error_response(e)


@stocks_bp.get("/movements")
@require_actor
@require_capability(VIEW_STOCK)
def list_movements():
    """
    Query params (all optional):
    - product_id, branch_id: int
    - type: movement type
    - start, end: ISO-8601 datetimes
    - limit: int (default 200)
    """
    try:
        movements = stock_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            branch_id=scoped_branch_id(request.args.get("branch_id", type=int)),
            movement_type=request.args.get("type"),
            start=parse_iso_datetime(request.args.get("start")),
            end=parse_iso_datetime(request.args.get("end")),
            limit=min(request.args.get("limit", default=200, type=int), 1000),
        )
        return jsonify({"items": [m.to_dict() for m in movements]}), 200
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400
    except SalesOpsError as e:
        return error_response(e)


@stocks_bp.post("/initialize")
@require_actor
@require_capability(ADJUST_STOCK)
def initialize_stock():
    """
    Request body:
    {
        "product_id": int,
        "branch_id": int,
        "quantity": int (optional, default 0),
        "minimum_stock": int (optional, default 0)
    }
    """
    try:
        data = json_body()
        branch_id = _required_int(data, "branch_id")
        g.capabilities.require(ADJUST_STOCK, branch_id=branch_id)
        stock = stock_service.initialize_stock(
            _required_int(data, "product_id"),
            branch_id,
            quantity=parse_int(data.get("quantity", 0), "quantity"),
            minimum_stock=parse_int(data.get("minimum_stock", 0), "minimum_stock"),
            actor_id=g.current_user.id,
        )
        return jsonify(stock.to_dict()), 201
    except SalesOpsError as e:
        return error_response(e)


@stocks_bp.post("/in")
@require_actor
@require_capability(ADJUST_STOCK)
def stock_in():
    """Incoming delivery: {"product_id", "branch_id", "quantity", "notes"?}."""
    try:
        data = json_body()
        branch_id = _required_int(data, "branch_id")
        g.capabilities.require(ADJUST_STOCK, branch_id=branch_id)
        new_quantity = stock_service.add_stock(
            _required_int(data, "product_id"),
            branch_id,
            _required_int(data, "quantity"),
            actor_id=g.current_user.id,
            notes=data.get("notes"),
        )
        return jsonify({"quantity": new_quantity}), 200
    except SalesOpsError as e:
        return error_response(e)


@stocks_bp.post("/out")
@require_actor
@require_capability(ADJUST_STOCK)
def stock_out():
    """Outgoing write-off: {"product_id", "branch_id", "quantity", "notes"?}."""
    try:
        data = json_body()
        branch_id = _required_int(data, "branch_id")
        g.capabilities.require(ADJUST_STOCK, branch_id=branch_id)
        new_quantity = stock_service.reduce_stock(
            _required_int(data, "product_id"),
            branch_id,
            _required_int(data, "quantity"),
            actor_id=g.current_user.id,
            notes=data.get("notes"),
        )
        return jsonify({"quantity": new_quantity}), 200
    except SalesOpsError as e:
        return error_response(e)


@stocks_bp.post("/adjust")
@require_actor
@require_capability(ADJUST_STOCK)
def adjust_stock():
    """
    Request body:
    {
        "product_id": int,
        "branch_id": int,
        "quantity_change": int (signed, non-zero),
        "notes": str (optional)
    }
    """
    try:
        data = json_body()
        new_quantity = stock_service.adjust(
            _required_int(data, "product_id"),
            _required_int(data, "branch_id"),
            _required_int(data, "quantity_change"),
            data.get("notes"),
            actor_id=g.current_user.id,
            capabilities=g.capabilities,
        )
        return jsonify({"quantity": new_quantity}), 200
    except SalesOpsError as e:
        return error_response(e)


@stocks_bp.post("/transfer")
@require_actor
@require_capability(TRANSFER_STOCK)
def transfer_stock():
    """
    Request body:
    {
        "product_id": int,
        "from_branch_id": int,
        "to_branch_id": int,
        "quantity": int,
        "notes": str (optional)
    }
    """
    try:
        data = json_body()
        source, destination = stock_service.transfer(
            _required_int(data, "product_id"),
            _required_int(data, "from_branch_id"),
            _required_int(data, "to_branch_id"),
            _required_int(data, "quantity"),
            actor_id=g.current_user.id,
            capabilities=g.capabilities,
            notes=data.get("notes"),
        )
        return jsonify({"from_quantity": source, "to_quantity": destination}), 200
    except SalesOpsError as e:
        return error_response(e)


@stocks_bp.post("/opname")
@require_actor
@require_capability(ADJUST_STOCK)
def stock_opname():
    """
    Request body:
    {
        "branch_id": int,
        "counts": [{"product_id": int, "physical_quantity": int}, ...]
    }
    """
    try:
        data = json_body()
        counts = data.get("counts")
        if not isinstance(counts, list) or not counts:
            raise ValidationError("counts must be a non-empty list")
        adjustments = stock_service.stock_opname(
            _required_int(data, "branch_id"),
            counts,
            actor_id=g.current_user.id,
            capabilities=g.capabilities,
        )
        return jsonify({"adjustments": adjustments}), 200
    except SalesOpsError as e:
        return error_response(e)


@stocks_bp.patch("/minimum")
@require_actor
@require_capability(ADJUST_STOCK)
def set_minimum_stock():
    """{"product_id", "branch_id", "minimum_stock"}."""
    try:
        data = json_body()
        branch_id = _required_int(data, "branch_id")
        g.capabilities.require(ADJUST_STOCK, branch_id=branch_id)
        stock = stock_service.set_minimum_stock(
            _required_int(data, "product_id"),
            branch_id,
            _required_int(data, "minimum_stock"),
        )
        return jsonify(stock.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)
