from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class DocumentSequence(db.Model):
    """
    Atomic per-prefix, per-day document sequences.

    WHY: Reference numbers look like TRX-20250114-0007; the trailing counter
    restarts every day and must never be handed out twice.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", "sequence_date", name="uq_doc_sequences_prefix_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(16), nullable=False, index=True)
    sequence_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prefix": self.prefix,
            "sequence_date": to_iso_date(self.sequence_date),
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
