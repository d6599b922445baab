from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


LIFECYCLE_ACTIVE = "active"
LIFECYCLE_ARCHIVED = "archived"


def money(value) -> str | None:
    """Serialize a Numeric column as a 2-place string."""
    if value is None:
        return None
    return f"{value:.2f}"


class ProductCategory(db.Model):
    __tablename__ = "product_categories"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_product_categories_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data (cigarette SKUs sold by pack or carton).

    `code` is the canonical catalog identifier and is globally unique.
    `barcode` is optional but unique when present.

    Archiving replaces soft delete: archived products stay referenced by
    historical stock movements and transactions but cannot be sold.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_products_code"),
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.Index("ix_products_category_active", "category_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=False, index=True)

    code = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Numeric(15, 2), nullable=False)
    cost = db.Column(db.Numeric(15, 2), nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="pack")
    items_per_carton = db.Column(db.Integer, nullable=False, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    lifecycle_state = db.Column(db.String(16), nullable=False, default=LIFECYCLE_ACTIVE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("ProductCategory", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r}>"

    @property
    def is_sellable(self) -> bool:
        return self.is_active and self.lifecycle_state == LIFECYCLE_ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "code": self.code,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "price": money(self.price),
            "cost": money(self.cost),
            "unit": self.unit,
            "items_per_carton": self.items_per_carton,
            "is_active": self.is_active,
            "lifecycle_state": self.lifecycle_state,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BranchCategory(db.Model):
    """
    Category enabled for a branch.

    A category with no rows here is offered everywhere; once linked, it is
    offered only in the linked branches.
    """
    __tablename__ = "branch_product_category"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "product_category_id", name="uq_branch_product_category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_category_id = db.Column(
        db.Integer, db.ForeignKey("product_categories.id"), nullable=False, index=True
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch")
    category = db.relationship("ProductCategory", backref=db.backref("branch_links", lazy=True))
