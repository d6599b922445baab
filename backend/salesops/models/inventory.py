from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_TRANSFER = "transfer"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_SALE = "sale"
MOVEMENT_RETURN = "return"

MOVEMENT_TYPES = (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_TRANSFER,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_SALE,
    MOVEMENT_RETURN,
)


class Stock(db.Model):
    """
    On-hand quantity for one (product, branch) pair.

    Mutated only through salesops.services.stock_service. Rows are locked
    with SELECT ... FOR UPDATE where the backend supports it, and version_id
    gives optimistic conflict detection everywhere else (SQLite).
    """
    __tablename__ = "stocks"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_stocks_product_branch"),
        db.CheckConstraint("quantity >= 0", name="ck_stocks_quantity_non_negative"),
        db.Index("ix_stocks_branch_quantity", "branch_id", "quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("stocks", lazy=True))
    branch = db.relationship("Branch", backref=db.backref("stocks", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Stock product_id={self.product_id} branch_id={self.branch_id} quantity={self.quantity}>"

    @property
    def is_low(self) -> bool:
        return self.quantity <= self.minimum_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "quantity": self.quantity,
            "minimum_stock": self.minimum_stock,
            "is_low": self.is_low,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Audit record of a ledger change.

    quantity is always positive; direction is carried by from_branch_id
    (stock left) and to_branch_id (stock arrived). A transfer sets both.
    Rows are immutable apart from the approval fields.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.UniqueConstraint("reference_number", name="uq_stock_movements_reference"),
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference_number = db.Column(db.String(64), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    from_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    to_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")
    from_branch = db.relationship("Branch", foreign_keys=[from_branch_id])
    to_branch = db.relationship("Branch", foreign_keys=[to_branch_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference_number": self.reference_number,
            "product_id": self.product_id,
            "from_branch_id": self.from_branch_id,
            "to_branch_id": self.to_branch_id,
            "type": self.type,
            "quantity": self.quantity,
            "notes": self.notes,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "created_at": to_utc_z(self.created_at),
        }
