from __future__ import annotations

from ..extensions import db
from agripos.time_utils import to_utc_z, utcnow


class LedgerEntry(db.Model):
    """
    Append-only record of every account balance mutation.

    delta_cents is signed with the account's balance convention and
    balance_after_cents is the balance the conditional update produced,
    so sum(delta_cents) per account must equal its credit_balance_cents.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_entries_account_occurred", "account_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    # OPENING_BALANCE, SALE_ON_CREDIT, CUSTOMER_PAYMENT, EGG_COLLECTION,
    # EGG_PAYMENT, DEBIT, VENDOR_PAYMENT, REFUND
    entry_type = db.Column(db.String(24), nullable=False, index=True)
    delta_cents = db.Column(db.BigInteger, nullable=False)
    balance_after_cents = db.Column(db.BigInteger, nullable=False)

    # Originating event
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)
    payment_record_id = db.Column(db.Integer, db.ForeignKey("payment_records.id"), nullable=True, index=True)
    egg_collection_id = db.Column(db.Integer, db.ForeignKey("egg_collections.id"), nullable=True, index=True)

    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    note = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "entry_type": self.entry_type,
            "delta_cents": self.delta_cents,
            "balance_after_cents": self.balance_after_cents,
            "transaction_id": self.transaction_id,
            "payment_record_id": self.payment_record_id,
            "egg_collection_id": self.egg_collection_id,
            "staff_id": self.staff_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
        }
