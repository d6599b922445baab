# backend/salesops/routes/catalog.py
"""
Product category and product routes.

SECURITY: all routes require an actor.
- Reads are open to every actor; branch-scoped actors only see categories
  (and their products) offered in their branch
- Writes require MANAGE_CATALOG
"""
from flask import Blueprint, jsonify, request

from ..decorators import require_actor, require_capability
from ..errors import SalesOpsError
from ..models import Product, ProductCategory
from ..permissions import MANAGE_CATALOG
from ..services import catalog_service
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .common import error_response, json_body, query_bool, scoped_branch_id

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "description", "is_active"},
    required_on_create={"code", "name"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "category_id",
        "code",
        "barcode",
        "name",
        "description",
        "price",
        "cost",
        "unit",
        "items_per_carton",
        "is_active",
    },
    required_on_create={"category_id", "code", "name", "price"},
)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# -- categories --

@catalog_bp.get("/categories")
@require_actor
def list_categories():
    """
    Query params:
    - active_only: bool (optional)
    - branch_id: int (optional) - only categories offered in that branch;
      branch-scoped actors always get their own branch
    """
    try:
        categories = catalog_service.list_categories(
            active_only=query_bool("active_only"),
            branch_id=scoped_branch_id(request.args.get("branch_id", type=int)),
        )
        return jsonify({"items": [c.to_dict() for c in categories]}), 200
    except SalesOpsError as e:
        return error_response(e)


@catalog_bp.post("/categories")
@require_actor
@require_capability(MANAGE_CATALOG)
def create_category():
    try:
        patch = validate_payload(model=ProductCategory, payload=json_body(), policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(patch)
        return jsonify(category.to_dict()), 201
    except SalesOpsError as e:
        return error_response(e)


@catalog_bp.patch("/categories/<int:category_id>")
@require_actor
@require_capability(MANAGE_CATALOG)
def update_category(category_id: int):
    try:
        patch = validate_payload(model=ProductCategory, payload=json_body(), policy=CATEGORY_POLICY, partial=True)
        category = catalog_service.update_category(category_id, patch)
        return jsonify(category.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@catalog_bp.get("/categories/<int:category_id>/branches")
@require_actor
def list_category_branches(category_id: int):
    """Branch ids the category is enabled for; empty means every branch."""
    try:
        return jsonify({"branch_ids": catalog_service.category_branch_ids(category_id)}), 200
    except SalesOpsError as e:
        return error_response(e)


@catalog_bp.put("/categories/<int:category_id>/branches")
@require_actor
@require_capability(MANAGE_CATALOG)
def set_category_branches(category_id: int):
    """Request body: {"branch_ids": [int, ...]} (replaces the current links)."""
    try:
        branch_ids = catalog_service.set_category_branches(category_id, json_body().get("branch_ids"))
        return jsonify({"branch_ids": branch_ids}), 200
    except SalesOpsError as e:
        return error_response(e)


# -- products --

@catalog_bp.get("/products")
@require_actor
def list_products():
    """
    Query params:
    - category_id: int (optional)
    - search: str (optional) - matches name, code or barcode
    - include_archived: bool (optional)
    - branch_id: int (optional) - only products whose category is offered there
    """
    try:
        products = catalog_service.list_products(
            category_id=request.args.get("category_id", type=int),
            search=request.args.get("search"),
            include_archived=query_bool("include_archived"),
            branch_id=scoped_branch_id(request.args.get("branch_id", type=int)),
        )
        return jsonify({"items": [p.to_dict() for p in products]}), 200
    except SalesOpsError as e:
        return error_response(e)


@catalog_bp.get("/products/<int:product_id>")
@require_actor
def get_product(product_id: int):
    try:
        return jsonify(catalog_service.get_product(product_id).to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@catalog_bp.post("/products")
@require_actor
@require_capability(MANAGE_CATALOG)
def create_product():
    try:
        patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(patch)
        return jsonify(product.to_dict()), 201
    except SalesOpsError as e:
        return error_response(e)


@catalog_bp.patch("/products/<int:product_id>")
@require_actor
@require_capability(MANAGE_CATALOG)
def update_product(product_id: int):
    try:
        patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(product_id, patch)
        return jsonify(product.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)


@catalog_bp.post("/products/<int:product_id>/archive")
@require_actor
@require_capability(MANAGE_CATALOG)
def archive_product(product_id: int):
    try:
        product = catalog_service.archive_product(product_id)
        return jsonify(product.to_dict()), 200
    except SalesOpsError as e:
        return error_response(e)
