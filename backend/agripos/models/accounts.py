from __future__ import annotations

from ..extensions import db
from agripos.time_utils import to_utc_z, utcnow


ACCOUNT_KIND_FARMER = "FARMER"
ACCOUNT_KIND_REGULAR = "REGULAR"
ACCOUNT_KIND_WHOLESALE = "WHOLESALE"
ACCOUNT_KIND_VENDOR = "VENDOR"

CUSTOMER_KINDS = (ACCOUNT_KIND_FARMER, ACCOUNT_KIND_REGULAR, ACCOUNT_KIND_WHOLESALE)
VALID_ACCOUNT_KINDS = CUSTOMER_KINDS + (ACCOUNT_KIND_VENDOR,)

CREDIT_STATUS_CURRENT = "CURRENT"
CREDIT_STATUS_OVERDUE_30 = "OVERDUE_30"
CREDIT_STATUS_OVERDUE_60 = "OVERDUE_60"
CREDIT_STATUS_OVERDUE_90 = "OVERDUE_90"
CREDIT_STATUS_BAD_DEBT = "BAD_DEBT"


class Account(db.Model):
    """
    Credit-bearing counterparty: a customer (farmer, regular, wholesale) or a vendor.

    SIGN CONVENTION: credit_balance_cents is the signed net amount the
    counterparty owes the store. Credit sales and debits raise it, customer
    payments lower it. Egg collections lower a farmer's balance (the store
    owes the farmer for eggs) and egg payments raise it back. A negative
    balance is therefore money the store owes the farmer (see payable_cents).
    For vendors the balance is what the store owes the vendor.

    WRITES: balance and cumulative counters are only ever changed through
    conditional UPDATE statements in account_service, never by assigning
    attributes, so concurrent writers cannot lose updates.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.CheckConstraint("credit_limit_cents >= 0", name="ck_accounts_credit_limit_nonneg"),
        db.CheckConstraint("payment_terms_days >= 0", name="ck_accounts_terms_nonneg"),
        db.Index("ix_accounts_kind_active", "kind", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    contact_person = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    # Credit terms
    credit_limit_cents = db.Column(db.BigInteger, nullable=False, default=0)
    credit_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    payment_terms_days = db.Column(db.Integer, nullable=False, default=30)
    credit_status = db.Column(db.String(16), nullable=False, default=CREDIT_STATUS_CURRENT, index=True)

    # Cumulative counters (monotonically increasing)
    total_purchases_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_egg_sales_cents = db.Column(db.BigInteger, nullable=False, default=0)

    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_payment_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_vendor(self) -> bool:
        return self.kind == ACCOUNT_KIND_VENDOR

    @property
    def is_farmer(self) -> bool:
        return self.kind == ACCOUNT_KIND_FARMER

    @property
    def available_credit_cents(self) -> int:
        return (self.credit_limit_cents or 0) - (self.credit_balance_cents or 0)

    @property
    def payable_cents(self) -> int:
        """What the store owes this customer (farmer egg payable)."""
        if self.is_vendor:
            return max(0, self.credit_balance_cents or 0)
        return max(0, -(self.credit_balance_cents or 0))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "credit_limit_cents": self.credit_limit_cents,
            "credit_balance_cents": self.credit_balance_cents,
            "available_credit_cents": self.available_credit_cents,
            "payable_cents": self.payable_cents,
            "payment_terms_days": self.payment_terms_days,
            "credit_status": self.credit_status,
            "total_purchases_cents": self.total_purchases_cents,
            "total_egg_sales_cents": self.total_egg_sales_cents,
            "last_purchase_at": to_utc_z(self.last_purchase_at),
            "last_payment_at": to_utc_z(self.last_payment_at),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
