# Overview: Service-layer operations for payment records; encapsulates business logic and database work.

"""
Payment Application Service

WHY: Money moved against an account (a customer settling their tab, cash
handed to a farmer for eggs, a manual charge, settling a vendor bill) is
recorded as a PaymentRecord and applied to the account balance in the same
DB transaction, together with its ledger entry.

DIRECTIONS (credit_balance_cents = what the counterparty owes the store):
- CUSTOMER_PAYMENT: balance down; requires 0 < amount <= balance
- EGG_PAYMENT:      balance up; farmer accounts only
- DEBIT:            balance up; any account
- VENDOR_PAYMENT:   balance down; vendor accounts, amount <= balance

IMMUTABLE: type, amount and account never change after creation. Only notes
and reference_number can be edited.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import PaymentRecord
from ..models.sales import PAYMENT_METHOD_CASH, PAYMENT_METHOD_CREDIT
from ..models.sales import VALID_PAYMENT_METHODS as SALE_PAYMENT_METHODS
from ..errors import NotFoundError, ValidationError
from ..validation import ModelValidationPolicy, require_amount_cents, validate_payload
from agripos.time_utils import utcnow
from .account_service import (
    apply_customer_payment,
    apply_farmer_payable,
    apply_vendor_payment,
    get_account,
)
from .auth_service import PERM_CASH_HANDLE, PERM_CUSTOMER_MANAGE, PERM_VENDOR_MANAGE, LedgerContext
from .concurrency import run_unit
from .ledger_service import ENTRY_DEBIT, ENTRY_EGG_PAYMENT


# =============================================================================
# PAYMENT TYPES (CONSTANTS)
# =============================================================================

PAYMENT_TYPE_CUSTOMER_PAYMENT = "CUSTOMER_PAYMENT"
PAYMENT_TYPE_EGG_PAYMENT = "EGG_PAYMENT"
PAYMENT_TYPE_DEBIT = "DEBIT"
PAYMENT_TYPE_VENDOR_PAYMENT = "VENDOR_PAYMENT"

VALID_PAYMENT_TYPES = [
    PAYMENT_TYPE_CUSTOMER_PAYMENT,
    PAYMENT_TYPE_EGG_PAYMENT,
    PAYMENT_TYPE_DEBIT,
    PAYMENT_TYPE_VENDOR_PAYMENT,
]

# Every sale method except CREDIT
VALID_PAYMENT_METHODS = [m for m in SALE_PAYMENT_METHODS if m != PAYMENT_METHOD_CREDIT]

REQUIRED_PERMISSION = {
    PAYMENT_TYPE_CUSTOMER_PAYMENT: PERM_CASH_HANDLE,
    PAYMENT_TYPE_EGG_PAYMENT: PERM_CASH_HANDLE,
    PAYMENT_TYPE_DEBIT: PERM_CUSTOMER_MANAGE,
    PAYMENT_TYPE_VENDOR_PAYMENT: PERM_VENDOR_MANAGE,
}

PAYMENT_RECORD_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"notes", "reference_number"}),
)


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def record_payment(
    ctx: LedgerContext,
    *,
    account_id: int,
    payment_type: str,
    amount_cents: int,
    payment_method: str = PAYMENT_METHOD_CASH,
    reference_number: str | None = None,
    notes: str | None = None,
    payment_date: datetime | None = None,
    egg_collection_id: int | None = None,
    commit: bool = True,
) -> PaymentRecord:
    """
    Record a payment and apply it to the account balance as one unit.

    Raises:
        ValidationError: bad type/method/amount, amount over balance,
            wrong account kind for the type
        NotFoundError: account does not exist
        PermissionDeniedError: staff lacks the permission for this type
        ConsistencyError: a storage step failed; nothing was saved
    """
    if payment_type not in VALID_PAYMENT_TYPES:
        raise ValidationError(f"Invalid payment type: {payment_type}. Must be one of {VALID_PAYMENT_TYPES}")
    if payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}")
    require_amount_cents(amount_cents)
    ctx.require(REQUIRED_PERMISSION[payment_type])

    account = get_account(account_id)
    context = {"account_id": account_id, "payment_type": payment_type, "amount_cents": amount_cents}

    def _op():
        record = PaymentRecord(
            payment_type=payment_type,
            account_id=account_id,
            amount_cents=amount_cents,
            payment_method=payment_method,
            payment_date=payment_date or utcnow(),
            staff_id=ctx.staff_id,
            reference_number=reference_number,
            notes=notes,
            egg_collection_id=egg_collection_id,
        )
        db.session.add(record)
        db.session.flush()
        context["payment_record_id"] = record.id

        if payment_type == PAYMENT_TYPE_CUSTOMER_PAYMENT:
            apply_customer_payment(
                account, amount_cents, staff_id=ctx.staff_id, payment_record_id=record.id, commit=False
            )
        elif payment_type == PAYMENT_TYPE_VENDOR_PAYMENT:
            apply_vendor_payment(
                account, amount_cents, staff_id=ctx.staff_id, payment_record_id=record.id, commit=False
            )
        else:
            entry_type = ENTRY_EGG_PAYMENT if payment_type == PAYMENT_TYPE_EGG_PAYMENT else ENTRY_DEBIT
            apply_farmer_payable(
                account, amount_cents, entry_type,
                staff_id=ctx.staff_id, payment_record_id=record.id, commit=False,
            )
        return record

    if not commit:
        return _op()

    record = run_unit(_op, operation="record_payment", context=context)
    current_app.logger.info(
        "Payment %s %s: account=%s amount=%s method=%s staff=%s",
        record.id, payment_type, account_id, amount_cents, payment_method, ctx.staff_id,
    )
    return record


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

def get_payment_record(record_id: int) -> PaymentRecord:
    record = db.session.get(PaymentRecord, record_id)
    if not record:
        raise NotFoundError(f"Payment record {record_id} not found", details={"payment_record_id": record_id})
    return record


def list_payment_records(
    account_id: int | None = None,
    payment_type: str | None = None,
    limit: int | None = None,
) -> list[PaymentRecord]:
    query = db.session.query(PaymentRecord)
    if account_id is not None:
        get_account(account_id)
        query = query.filter(PaymentRecord.account_id == account_id)
    if payment_type:
        if payment_type not in VALID_PAYMENT_TYPES:
            raise ValidationError(f"Invalid payment type: {payment_type}")
        query = query.filter(PaymentRecord.payment_type == payment_type)
    query = query.order_by(PaymentRecord.payment_date.desc(), PaymentRecord.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def update_payment_record(record_id: int, payload: dict) -> PaymentRecord:
    """Edit notes / reference_number; everything else is immutable."""
    patch = validate_payload(
        model=PaymentRecord, payload=payload, policy=PAYMENT_RECORD_UPDATE_POLICY, partial=True
    )
    if not patch:
        raise ValidationError("Nothing to update")

    def _op():
        record = get_payment_record(record_id)
        for key, value in patch.items():
            setattr(record, key, value)
        return record

    return run_unit(_op, operation="update_payment_record", context={"payment_record_id": record_id})
