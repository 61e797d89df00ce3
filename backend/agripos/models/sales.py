from __future__ import annotations

from ..extensions import db
from agripos.time_utils import to_utc_z, utcnow


TRANSACTION_TYPE_SALE = "SALE"
TRANSACTION_TYPE_REFUND = "REFUND"

PAYMENT_METHOD_CASH = "CASH"
PAYMENT_METHOD_CREDIT = "CREDIT"
PAYMENT_METHOD_BANK_TRANSFER = "BANK_TRANSFER"
PAYMENT_METHOD_CHECK = "CHECK"
PAYMENT_METHOD_DIGITAL = "DIGITAL"

VALID_PAYMENT_METHODS = (
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_CREDIT,
    PAYMENT_METHOD_BANK_TRANSFER,
    PAYMENT_METHOD_CHECK,
    PAYMENT_METHOD_DIGITAL,
)

TXN_STATUS_COMPLETED = "COMPLETED"
TXN_STATUS_PENDING = "PENDING"
TXN_STATUS_CANCELLED = "CANCELLED"
TXN_STATUS_PARTIAL_REFUND = "PARTIAL_REFUND"
TXN_STATUS_REFUNDED = "REFUNDED"


class Transaction(db.Model):
    """
    Sale (or refund) document with its line items.

    INVARIANT: paid_amount_cents + balance_amount_cents == total_cents.
    CREDIT sales are created with paid 0 and balance == total; every other
    payment method is paid in full at the counter.

    IMMUTABLE: amounts never change after creation. Only status and
    refunded_cents move, through sales_service.refund_sale.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint(
            "paid_amount_cents + balance_amount_cents = total_cents",
            name="ck_transactions_paid_plus_balance",
        ),
        db.Index("ix_transactions_customer_created", "customer_id", "created_at"),
        db.Index("ix_transactions_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-facing receipt number (e.g., "RCP-20261019-0007")
    receipt_number = db.Column(db.String(32), nullable=False, unique=True)
    transaction_type = db.Column(db.String(16), nullable=False, default="SALE", index=True)  # SALE, REFUND

    # NULL customer_id is a walk-in sale
    customer_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False, index=True)

    # Financial (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    # Payment
    payment_method = db.Column(db.String(16), nullable=False, index=True)  # CASH, CREDIT, BANK_TRANSFER, CHECK, DIGITAL
    paid_amount_cents = db.Column(db.Integer, nullable=False)
    balance_amount_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)  # CREDIT only

    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    refunded_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_of_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)
    synced = db.Column(db.Boolean, nullable=False, default=False)  # offline-sync flag

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Account", backref=db.backref("transactions", lazy=True))
    staff = db.relationship("Staff")
    refund_of = db.relationship("Transaction", remote_side=[id])
    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TransactionItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def refundable_cents(self) -> int:
        return self.total_cents - (self.refunded_cents or 0)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "transaction_type": self.transaction_type,
            "customer_id": self.customer_id,
            "staff_id": self.staff_id,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "paid_amount_cents": self.paid_amount_cents,
            "balance_amount_cents": self.balance_amount_cents,
            "due_date": to_utc_z(self.due_date),
            "status": self.status,
            "refunded_cents": self.refunded_cents,
            "refund_of_id": self.refund_of_id,
            "notes": self.notes,
            "synced": self.synced,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransactionItem(db.Model):
    """Individual line on a transaction; product name/sku are snapshotted."""
    __tablename__ = "transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(128), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)
    unit = db.Column(db.String(16), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "unit": self.unit,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
