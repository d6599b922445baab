# Overview: Service-layer operations for master data; branches, areas, users, categories and products.

"""
Master data CRUD.

Routes validate payloads against a ModelValidationPolicy and hand the
cleaned patch dict here. This layer owns uniqueness rules and lifecycle
(archive) rules; it never touches stock.
"""

from __future__ import annotations

import logging

from ..errors import DuplicateRecord, InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Area, AreaAssignment, Branch, BranchCategory, Product, ProductCategory, User
from ..models.catalog import LIFECYCLE_ACTIVE, LIFECYCLE_ARCHIVED
from ..permissions import ROLE_SALES, ROLE_SUPER_ADMIN, ROLES
from ..validation import parse_int


logger = logging.getLogger(__name__)


def _get_or_404(model, entity_id: int, label: str):
    entity = db.session.get(model, entity_id)
    if entity is None:
        raise NotFound(f"{label} {entity_id} not found")
    return entity


def _ensure_unique(model, label: str, exclude_id: int | None = None, **criteria) -> None:
    q = db.session.query(model).filter_by(**criteria)
    if exclude_id is not None:
        q = q.filter(model.id != exclude_id)
    if db.session.query(q.exists()).scalar():
        key = ", ".join(f"{field}={value!r}" for field, value in criteria.items())
        raise DuplicateRecord(f"{label} with {key} already exists", details=dict(criteria))


def _apply_patch(entity, patch: dict) -> None:
    for key, value in patch.items():
        setattr(entity, key, value)


# =============================================================================
# Branches
# =============================================================================

def list_branches(active_only: bool = False) -> list[Branch]:
    q = db.session.query(Branch)
    if active_only:
        q = q.filter(Branch.is_active.is_(True))
    return q.order_by(Branch.name.asc()).all()


def get_branch(branch_id: int) -> Branch:
    return _get_or_404(Branch, branch_id, "Branch")


def create_branch(patch: dict) -> Branch:
    _ensure_unique(Branch, "Branch", code=patch["code"])
    branch = Branch(**patch)
    db.session.add(branch)
    db.session.commit()
    logger.info("Branch created id=%s code=%s", branch.id, branch.code)
    return branch


def update_branch(branch_id: int, patch: dict) -> Branch:
    branch = get_branch(branch_id)
    if "code" in patch:
        _ensure_unique(Branch, "Branch", exclude_id=branch.id, code=patch["code"])
    _apply_patch(branch, patch)
    db.session.commit()
    return branch


# =============================================================================
# Areas
# =============================================================================

def list_areas(
    branch_id: int | None = None,
    active_only: bool = False,
    user_id: int | None = None,
) -> list[Area]:
    """user_id narrows the list to the areas assigned to that agent."""
    q = db.session.query(Area)
    if branch_id is not None:
        q = q.filter(Area.branch_id == branch_id)
    if user_id is not None:
        q = q.join(AreaAssignment, AreaAssignment.area_id == Area.id).filter(AreaAssignment.user_id == user_id)
    if active_only:
        q = q.filter(Area.is_active.is_(True))
    return q.order_by(Area.branch_id.asc(), Area.code.asc()).all()


def get_area(area_id: int) -> Area:
    return _get_or_404(Area, area_id, "Area")


def create_area(patch: dict) -> Area:
    get_branch(patch["branch_id"])
    _ensure_unique(Area, "Area", branch_id=patch["branch_id"], code=patch["code"])
    area = Area(**patch)
    db.session.add(area)
    db.session.commit()
    logger.info("Area created id=%s branch_id=%s code=%s", area.id, area.branch_id, area.code)
    return area


def update_area(area_id: int, patch: dict) -> Area:
    area = get_area(area_id)
    if "branch_id" in patch:
        get_branch(patch["branch_id"])
    if "code" in patch or "branch_id" in patch:
        _ensure_unique(
            Area,
            "Area",
            exclude_id=area.id,
            branch_id=patch.get("branch_id", area.branch_id),
            code=patch.get("code", area.code),
        )
    _apply_patch(area, patch)
    db.session.commit()
    return area


# =============================================================================
# Users
# =============================================================================

def list_users(branch_id: int | None = None, role: str | None = None) -> list[User]:
    q = db.session.query(User)
    if branch_id is not None:
        q = q.filter(User.branch_id == branch_id)
    if role is not None:
        q = q.filter(User.role == role)
    return q.order_by(User.name.asc()).all()


def get_user(user_id: int) -> User:
    return _get_or_404(User, user_id, "User")


def _validate_user_role(role: str, branch_id: int | None) -> None:
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if role != ROLE_SUPER_ADMIN and branch_id is None:
        raise ValidationError(f"{role} users must belong to a branch")


def create_user(patch: dict) -> User:
    role = patch.get("role") or "sales"
    _validate_user_role(role, patch.get("branch_id"))
    if patch.get("branch_id") is not None:
        get_branch(patch["branch_id"])
    patch["email"] = patch["email"].lower()
    _ensure_unique(User, "User", email=patch["email"])
    user = User(**{**patch, "role": role})
    db.session.add(user)
    db.session.commit()
    logger.info("User created id=%s role=%s branch_id=%s", user.id, user.role, user.branch_id)
    return user


def update_user(user_id: int, patch: dict) -> User:
    user = get_user(user_id)
    _validate_user_role(patch.get("role", user.role), patch.get("branch_id", user.branch_id))
    if patch.get("branch_id") is not None:
        get_branch(patch["branch_id"])
    if "email" in patch:
        patch["email"] = patch["email"].lower()
        _ensure_unique(User, "User", exclude_id=user.id, email=patch["email"])
    _apply_patch(user, patch)
    db.session.commit()
    return user


def _id_list(raw, field: str) -> list[int]:
    if not isinstance(raw, list):
        raise ValidationError(f"{field} must be a list of ids")
    ids = []
    for value in raw:
        entity_id = parse_int(value, field)
        if entity_id not in ids:
            ids.append(entity_id)
    return ids


def assign_areas(user_id: int, area_ids) -> list[Area]:
    """
    Replace the set of areas a sales agent covers.

    Only sales agents carry area assignments, and every area must belong to
    the agent's branch. An empty list clears the assignments.
    """
    user = get_user(user_id)
    if user.role != ROLE_SALES:
        raise ValidationError("Areas can only be assigned to sales agents")

    wanted = _id_list(area_ids, "area_ids")
    for area_id in wanted:
        area = get_area(area_id)
        if area.branch_id != user.branch_id:
            raise ValidationError(
                f"Area {area.code} belongs to another branch",
                details={"area_id": area.id, "branch_id": area.branch_id},
            )

    current = {a.area_id: a for a in db.session.query(AreaAssignment).filter_by(user_id=user.id)}
    for area_id, assignment in current.items():
        if area_id not in wanted:
            db.session.delete(assignment)
    for area_id in wanted:
        if area_id not in current:
            db.session.add(AreaAssignment(area_id=area_id, user_id=user.id))
    db.session.commit()
    logger.info("Areas assigned user_id=%s area_ids=%s", user.id, wanted)
    return list_areas(user_id=user.id)


# =============================================================================
# Categories
# =============================================================================

def _offered_in_branch(branch_id: int):
    """Categories linked to the branch, or linked to no branch at all."""
    linked = db.exists().where(BranchCategory.product_category_id == ProductCategory.id)
    linked_here = db.exists().where(
        BranchCategory.product_category_id == ProductCategory.id,
        BranchCategory.branch_id == branch_id,
    )
    return db.or_(linked_here, ~linked)


def list_categories(active_only: bool = False, branch_id: int | None = None) -> list[ProductCategory]:
    q = db.session.query(ProductCategory)
    if active_only:
        q = q.filter(ProductCategory.is_active.is_(True))
    if branch_id is not None:
        q = q.filter(_offered_in_branch(branch_id))
    return q.order_by(ProductCategory.name.asc()).all()


def category_branch_ids(category_id: int) -> list[int]:
    get_category(category_id)
    rows = (
        db.session.query(BranchCategory.branch_id)
        .filter_by(product_category_id=category_id)
        .order_by(BranchCategory.branch_id.asc())
        .all()
    )
    return [row[0] for row in rows]


def set_category_branches(category_id: int, branch_ids) -> list[int]:
    """Replace the branches a category is enabled for; an empty list makes it global."""
    category = get_category(category_id)
    wanted = _id_list(branch_ids, "branch_ids")
    for branch_id in wanted:
        get_branch(branch_id)

    current = {
        link.branch_id: link
        for link in db.session.query(BranchCategory).filter_by(product_category_id=category.id)
    }
    for branch_id, link in current.items():
        if branch_id not in wanted:
            db.session.delete(link)
    for branch_id in wanted:
        if branch_id not in current:
            db.session.add(BranchCategory(branch_id=branch_id, product_category_id=category.id))
    db.session.commit()
    logger.info("Category branches set category_id=%s branch_ids=%s", category.id, wanted)
    return sorted(wanted)


def get_category(category_id: int) -> ProductCategory:
    return _get_or_404(ProductCategory, category_id, "Category")


def create_category(patch: dict) -> ProductCategory:
    _ensure_unique(ProductCategory, "Category", code=patch["code"])
    category = ProductCategory(**patch)
    db.session.add(category)
    db.session.commit()
    logger.info("Category created id=%s code=%s", category.id, category.code)
    return category


def update_category(category_id: int, patch: dict) -> ProductCategory:
    category = get_category(category_id)
    if "code" in patch:
        _ensure_unique(ProductCategory, "Category", exclude_id=category.id, code=patch["code"])
    _apply_patch(category, patch)
    db.session.commit()
    return category


# =============================================================================
# Products
# =============================================================================

def list_products(
    *,
    category_id: int | None = None,
    search: str | None = None,
    include_archived: bool = False,
    branch_id: int | None = None,
) -> list[Product]:
    q = db.session.query(Product)
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if branch_id is not None:
        q = q.join(ProductCategory, Product.category_id == ProductCategory.id).filter(
            _offered_in_branch(branch_id)
        )
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(db.or_(Product.name.ilike(pattern), Product.code.ilike(pattern), Product.barcode.ilike(pattern)))
    if not include_archived:
        q = q.filter(Product.lifecycle_state == LIFECYCLE_ACTIVE)
    return q.order_by(Product.name.asc()).all()


def get_product(product_id: int) -> Product:
    return _get_or_404(Product, product_id, "Product")


def create_product(patch: dict) -> Product:
    get_category(patch["category_id"])
    _ensure_unique(Product, "Product", code=patch["code"])
    if patch.get("barcode"):
        _ensure_unique(Product, "Product", barcode=patch["barcode"])
    product = Product(**patch)
    db.session.add(product)
    db.session.commit()
    logger.info("Product created id=%s code=%s", product.id, product.code)
    return product


def update_product(product_id: int, patch: dict) -> Product:
    product = get_product(product_id)
    if product.lifecycle_state == LIFECYCLE_ARCHIVED:
        raise InvalidTransition("Archived products cannot be edited")
    if "category_id" in patch:
        get_category(patch["category_id"])
    if "code" in patch:
        _ensure_unique(Product, "Product", exclude_id=product.id, code=patch["code"])
    if patch.get("barcode"):
        _ensure_unique(Product, "Product", exclude_id=product.id, barcode=patch["barcode"])
    _apply_patch(product, patch)
    db.session.commit()
    return product


def archive_product(product_id: int) -> Product:
    """Archived products keep their history but can no longer be sold."""
    product = get_product(product_id)
    if product.lifecycle_state == LIFECYCLE_ARCHIVED:
        raise InvalidTransition("Product is already archived")
    product.lifecycle_state = LIFECYCLE_ARCHIVED
    product.is_active = False
    db.session.commit()
    logger.info("Product archived id=%s code=%s", product.id, product.code)
    return product
