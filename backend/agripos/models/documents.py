from __future__ import annotations

from ..extensions import db
from agripos.time_utils import to_utc_z, utcnow


class DocumentSequence(db.Model):
    """
    Atomic receipt-number sequences, one row per (prefix, business day).

    WHY: Receipt numbers are human-facing and must be unique even when two
    sales are rung up in the same second.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", "period", name="uq_doc_sequences_prefix_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(8), nullable=False)
    period = db.Column(db.String(8), nullable=False)  # YYYYMMDD
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prefix": self.prefix,
            "period": self.period,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
