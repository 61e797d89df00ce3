from __future__ import annotations

from ..extensions import db
from agripos.time_utils import to_utc_z, utcnow


class PaymentRecord(db.Model):
    """
    Money moved against an account balance.

    TYPES:
    - CUSTOMER_PAYMENT: customer settles their receivable (balance down)
    - EGG_PAYMENT: store pays a farmer for eggs (balance up)
    - DEBIT: explicit charge against the account (balance up)
    - VENDOR_PAYMENT: store settles what it owes a vendor (balance down)

    Always created in the same DB transaction as the balance mutation and
    the ledger entry it pairs with. Only notes and reference_number can be
    edited afterwards.
    """
    __tablename__ = "payment_records"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payment_records_amount_positive"),
        db.Index("ix_payment_records_account_date", "account_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_type = db.Column(db.String(24), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False, index=True)

    reference_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    egg_collection_id = db.Column(db.Integer, db.ForeignKey("egg_collections.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    account = db.relationship("Account", backref=db.backref("payment_records", lazy=True))
    staff = db.relationship("Staff")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_type": self.payment_type,
            "account_id": self.account_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_date": to_utc_z(self.payment_date),
            "staff_id": self.staff_id,
            "staff_name": self.staff.full_name if self.staff else None,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "egg_collection_id": self.egg_collection_id,
            "created_at": to_utc_z(self.created_at),
        }
