# Overview: Account balance ledger; credit gate, balance mutators and credit aging.

"""
Account Service

WHY: An account's credit_balance_cents is the single source of truth for
how much is owed. Sales, payments and egg collections all write to it, so
every write is a conditional UPDATE evaluated by the database:

    UPDATE accounts
       SET credit_balance_cents = credit_balance_cents + :total, ...
     WHERE id = :id AND credit_limit_cents - credit_balance_cents >= :total

A zero rowcount means the guard failed against the *current* row, so two
concurrent sales can never both pass the credit gate on a stale read.

Each mutator appends a LedgerEntry in the same DB transaction and re-derives
the account's credit status. Mutators accept commit=False when they run
inside a caller's unit of work (sale, collection, payment).
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Account, Transaction
from ..models.accounts import (
    ACCOUNT_KIND_VENDOR,
    CREDIT_STATUS_BAD_DEBT,
    CREDIT_STATUS_CURRENT,
    CREDIT_STATUS_OVERDUE_30,
    CREDIT_STATUS_OVERDUE_60,
    CREDIT_STATUS_OVERDUE_90,
    VALID_ACCOUNT_KINDS,
)
from ..models.sales import (
    PAYMENT_METHOD_CREDIT,
    TRANSACTION_TYPE_SALE,
    TXN_STATUS_CANCELLED,
)
from ..errors import InsufficientCreditError, NotFoundError, ValidationError
from ..validation import (
    MAX_AMOUNT_CENTS,
    ModelValidationPolicy,
    require_amount_cents,
    validate_payload,
)
from agripos.time_utils import days_past, to_utc_z, utcnow
from .concurrency import run_unit
from .ledger_service import (
    ENTRY_CUSTOMER_PAYMENT,
    ENTRY_DEBIT,
    ENTRY_EGG_COLLECTION,
    ENTRY_EGG_PAYMENT,
    ENTRY_OPENING_BALANCE,
    ENTRY_REFUND,
    ENTRY_SALE_ON_CREDIT,
    ENTRY_VENDOR_PAYMENT,
    append_entry,
)


ACCOUNT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "kind", "name", "contact_person", "phone", "email", "address",
        "credit_limit_cents", "payment_terms_days", "is_active",
    }),
    required_on_create=frozenset({"kind", "name"}),
    choices={"kind": VALID_ACCOUNT_KINDS},
    cents_fields=frozenset({"credit_limit_cents"}),
    non_negative=frozenset({"payment_terms_days"}),
)

# kind is fixed once collections/sales reference the account
ACCOUNT_UPDATE_POLICY = ACCOUNT_POLICY.for_update("kind")


# =============================================================================
# ACCOUNT RECORDS
# =============================================================================

def get_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if not account:
        raise NotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
    return account


def list_accounts(kind: str | None = None, active_only: bool = True) -> list[Account]:
    query = db.session.query(Account)
    if kind:
        if kind not in VALID_ACCOUNT_KINDS:
            raise ValidationError(f"kind must be one of {VALID_ACCOUNT_KINDS}")
        query = query.filter(Account.kind == kind)
    if active_only:
        query = query.filter(Account.is_active.is_(True))
    return query.order_by(Account.name.asc(), Account.id.asc()).all()


def create_account(payload: dict, *, staff_id: int | None = None) -> Account:
    """
    Create a customer or vendor account.

    An optional opening_balance_cents (signed) carries an existing balance
    over; it is written as an OPENING_BALANCE ledger entry so the ledger
    still sums to the balance.
    """
    payload = dict(payload or {})
    opening = payload.pop("opening_balance_cents", 0) or 0
    if isinstance(opening, bool) or not isinstance(opening, int):
        raise ValidationError("opening_balance_cents must be an integer number of cents")
    if abs(opening) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"opening_balance_cents cannot exceed {MAX_AMOUNT_CENTS}")

    patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=False)

    def _op():
        account = Account(**patch)
        account.credit_balance_cents = opening
        db.session.add(account)
        db.session.flush()
        if opening:
            append_entry(
                account_id=account.id,
                entry_type=ENTRY_OPENING_BALANCE,
                delta_cents=opening,
                balance_after_cents=opening,
                staff_id=staff_id,
                note="Opening balance",
            )
        return account

    account = run_unit(_op, operation="create_account", context={"opening_balance_cents": opening})
    current_app.logger.info("Created %s account %s (%s)", account.kind, account.id, account.name)
    return account


def update_account(account_id: int, payload: dict) -> Account:
    """Profile, credit limit and terms only; balances move through the ledger."""
    patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_UPDATE_POLICY, partial=True)

    def _op():
        account = get_account(account_id)
        for key, value in patch.items():
            setattr(account, key, value)
        return account

    return run_unit(_op, operation="update_account", context={"account_id": account_id})


# =============================================================================
# CREDIT GATE
# =============================================================================

def check_credit_available(account: Account, sale_total_cents: int) -> bool:
    """
    True iff the account's limit minus its balance covers the sale.

    Advisory only: the authoritative check is the conditional UPDATE in
    apply_sale_on_credit.
    """
    return (account.credit_limit_cents or 0) - (account.credit_balance_cents or 0) >= sale_total_cents


def credit_utilisation_pct(account: Account) -> int:
    if not account.credit_limit_cents:
        return 0
    return (max(0, account.credit_balance_cents) * 100) // account.credit_limit_cents


# =============================================================================
# CONDITIONAL BALANCE WRITES
# =============================================================================

def _conditional_update(account_id: int, values: dict, *guards) -> bool:
    stmt = (
        update(Account)
        .where(Account.id == account_id, *guards)
        .values(**values, version_id=Account.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount == 1


def _reload(account_id: int) -> Account:
    account = db.session.query(Account).populate_existing().filter_by(id=account_id).first()
    if not account:
        raise NotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
    return account


def _run(op, *, commit: bool, operation: str, context: dict):
    if commit:
        return run_unit(op, operation=operation, context=context)
    return op()


def apply_sale_on_credit(
    account: Account,
    sale_total_cents: int,
    *,
    staff_id: int | None = None,
    transaction_id: int | None = None,
    commit: bool = True,
) -> Account:
    """
    Atomic credit check and apply: balance += total, total_purchases += total.

    Raises InsufficientCreditError when the limit does not cover the sale at
    the moment of the write, or when the account is in BAD_DEBT.
    """
    require_amount_cents(sale_total_cents, "sale_total_cents")
    account_id = account.id
    context = {"account_id": account_id, "delta_cents": sale_total_cents, "transaction_id": transaction_id}

    def _op():
        applied = _conditional_update(
            account_id,
            {
                "credit_balance_cents": Account.credit_balance_cents + sale_total_cents,
                "total_purchases_cents": Account.total_purchases_cents + sale_total_cents,
                "last_purchase_at": utcnow(),
            },
            Account.credit_limit_cents - Account.credit_balance_cents >= sale_total_cents,
            Account.kind != ACCOUNT_KIND_VENDOR,
            Account.is_active.is_(True),
            Account.credit_status != CREDIT_STATUS_BAD_DEBT,
        )
        current = _reload(account_id)
        if not applied:
            _raise_credit_refusal(current, sale_total_cents)

        append_entry(
            account_id=account_id,
            entry_type=ENTRY_SALE_ON_CREDIT,
            delta_cents=sale_total_cents,
            balance_after_cents=current.credit_balance_cents,
            staff_id=staff_id,
            transaction_id=transaction_id,
        )
        return _sync_credit_status(current)

    return _run(_op, commit=commit, operation="apply_sale_on_credit", context=context)


def _raise_credit_refusal(account: Account, requested_cents: int) -> None:
    if account.is_vendor:
        raise ValidationError("Vendor accounts cannot buy on credit", details={"account_id": account.id})
    if not account.is_active:
        raise ValidationError("Account is inactive", details={"account_id": account.id})

    available = account.available_credit_cents
    if account.credit_status == CREDIT_STATUS_BAD_DEBT:
        raise InsufficientCreditError(
            "Account is in BAD_DEBT; credit sales are suspended",
            available_cents=available,
            requested_cents=requested_cents,
            details={"account_id": account.id, "credit_status": account.credit_status},
        )
    raise InsufficientCreditError(
        f"Insufficient credit: available {available} cents, sale total {requested_cents} cents",
        available_cents=available,
        requested_cents=requested_cents,
        details={"account_id": account.id},
    )


def apply_customer_payment(
    account: Account,
    amount_cents: int,
    *,
    staff_id: int | None = None,
    payment_record_id: int | None = None,
    commit: bool = True,
) -> Account:
    """Customer settles their receivable: requires 0 < amount <= balance."""
    require_amount_cents(amount_cents)
    account_id = account.id
    context = {"account_id": account_id, "delta_cents": -amount_cents, "payment_record_id": payment_record_id}

    def _op():
        applied = _conditional_update(
            account_id,
            {
                "credit_balance_cents": Account.credit_balance_cents - amount_cents,
                "last_payment_at": utcnow(),
            },
            Account.credit_balance_cents >= amount_cents,
            Account.kind != ACCOUNT_KIND_VENDOR,
        )
        current = _reload(account_id)
        if not applied:
            if current.is_vendor:
                raise ValidationError(
                    "Vendor accounts are settled with VENDOR_PAYMENT",
                    details={"account_id": account_id},
                )
            raise ValidationError(
                f"Payment of {amount_cents} cents exceeds outstanding balance of "
                f"{max(0, current.credit_balance_cents)} cents",
                details={
                    "account_id": account_id,
                    "amount_cents": amount_cents,
                    "credit_balance_cents": current.credit_balance_cents,
                },
            )

        append_entry(
            account_id=account_id,
            entry_type=ENTRY_CUSTOMER_PAYMENT,
            delta_cents=-amount_cents,
            balance_after_cents=current.credit_balance_cents,
            staff_id=staff_id,
            payment_record_id=payment_record_id,
        )
        return _sync_credit_status(current)

    return _run(_op, commit=commit, operation="apply_customer_payment", context=context)


def apply_farmer_payable(
    account: Account,
    amount_cents: int,
    entry_type: str,
    *,
    staff_id: int | None = None,
    payment_record_id: int | None = None,
    commit: bool = True,
) -> Account:
    """
    EGG_PAYMENT and DEBIT both raise the balance by amount.

    EGG_PAYMENT: cash handed to a farmer discharges what the store owes them
    (their negative balance moves back toward zero). Farmers only.
    DEBIT: explicit charge against any account.
    """
    require_amount_cents(amount_cents)
    if entry_type not in (ENTRY_EGG_PAYMENT, ENTRY_DEBIT):
        raise ValidationError(f"entry_type must be {ENTRY_EGG_PAYMENT} or {ENTRY_DEBIT}")

    account_id = account.id
    context = {"account_id": account_id, "delta_cents": amount_cents, "payment_record_id": payment_record_id}

    def _op():
        current = _reload(account_id)
        if entry_type == ENTRY_EGG_PAYMENT:
            if not current.is_farmer:
                raise ValidationError(
                    "Egg payments can only be made to FARMER accounts",
                    details={"account_id": account_id, "kind": current.kind},
                )
            if amount_cents > current.payable_cents:
                current_app.logger.warning(
                    "Egg payment of %s exceeds payable %s on account %s",
                    amount_cents, current.payable_cents, account_id,
                )

        _conditional_update(
            account_id,
            {"credit_balance_cents": Account.credit_balance_cents + amount_cents},
        )
        current = _reload(account_id)
        append_entry(
            account_id=account_id,
            entry_type=entry_type,
            delta_cents=amount_cents,
            balance_after_cents=current.credit_balance_cents,
            staff_id=staff_id,
            payment_record_id=payment_record_id,
        )
        return _sync_credit_status(current)

    return _run(_op, commit=commit, operation=f"apply_farmer_payable[{entry_type}]", context=context)


def apply_egg_collection_credit(
    account: Account,
    value_cents: int,
    *,
    staff_id: int | None = None,
    egg_collection_id: int | None = None,
    commit: bool = True,
) -> Account:
    """Collected eggs: balance -= value, total_egg_sales += value."""
    require_amount_cents(value_cents, "total_value_cents")
    account_id = account.id
    context = {"account_id": account_id, "delta_cents": -value_cents, "egg_collection_id": egg_collection_id}

    def _op():
        applied = _conditional_update(
            account_id,
            {
                "credit_balance_cents": Account.credit_balance_cents - value_cents,
                "total_egg_sales_cents": Account.total_egg_sales_cents + value_cents,
            },
            Account.kind != ACCOUNT_KIND_VENDOR,
        )
        current = _reload(account_id)
        if not applied or not current.is_farmer:
            raise ValidationError(
                "Egg collections can only be credited to FARMER accounts",
                details={"account_id": account_id, "kind": current.kind},
            )

        append_entry(
            account_id=account_id,
            entry_type=ENTRY_EGG_COLLECTION,
            delta_cents=-value_cents,
            balance_after_cents=current.credit_balance_cents,
            staff_id=staff_id,
            egg_collection_id=egg_collection_id,
        )
        return _sync_credit_status(current)

    return _run(_op, commit=commit, operation="apply_egg_collection_credit", context=context)


def apply_vendor_payment(
    account: Account,
    amount_cents: int,
    *,
    staff_id: int | None = None,
    payment_record_id: int | None = None,
    commit: bool = True,
) -> Account:
    """Store settles what it owes a vendor: requires 0 < amount <= balance."""
    require_amount_cents(amount_cents)
    account_id = account.id
    context = {"account_id": account_id, "delta_cents": -amount_cents, "payment_record_id": payment_record_id}

    def _op():
        applied = _conditional_update(
            account_id,
            {
                "credit_balance_cents": Account.credit_balance_cents - amount_cents,
                "last_payment_at": utcnow(),
            },
            Account.kind == ACCOUNT_KIND_VENDOR,
            Account.credit_balance_cents >= amount_cents,
        )
        current = _reload(account_id)
        if not applied:
            if not current.is_vendor:
                raise ValidationError(
                    "Vendor payments can only be made to VENDOR accounts",
                    details={"account_id": account_id, "kind": current.kind},
                )
            raise ValidationError(
                f"Payment of {amount_cents} cents exceeds amount owed to vendor "
                f"({max(0, current.credit_balance_cents)} cents)",
                details={
                    "account_id": account_id,
                    "amount_cents": amount_cents,
                    "credit_balance_cents": current.credit_balance_cents,
                },
            )

        append_entry(
            account_id=account_id,
            entry_type=ENTRY_VENDOR_PAYMENT,
            delta_cents=-amount_cents,
            balance_after_cents=current.credit_balance_cents,
            staff_id=staff_id,
            payment_record_id=payment_record_id,
        )
        return current

    return _run(_op, commit=commit, operation="apply_vendor_payment", context=context)


def apply_refund_credit(
    account: Account,
    amount_cents: int,
    *,
    staff_id: int | None = None,
    transaction_id: int | None = None,
    commit: bool = True,
) -> Account:
    """
    Refund of a CREDIT sale: balance -= amount.

    total_purchases_cents is cumulative and is left unchanged. If the sale was
    already paid off the balance goes negative (store owes the customer).
    """
    require_amount_cents(amount_cents)
    account_id = account.id
    context = {"account_id": account_id, "delta_cents": -amount_cents, "transaction_id": transaction_id}

    def _op():
        if not _conditional_update(
            account_id,
            {"credit_balance_cents": Account.credit_balance_cents - amount_cents},
        ):
            raise NotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
        current = _reload(account_id)
        append_entry(
            account_id=account_id,
            entry_type=ENTRY_REFUND,
            delta_cents=-amount_cents,
            balance_after_cents=current.credit_balance_cents,
            staff_id=staff_id,
            transaction_id=transaction_id,
        )
        return _sync_credit_status(current)

    return _run(_op, commit=commit, operation="apply_refund_credit", context=context)


# =============================================================================
# CREDIT AGING
# =============================================================================

def _oldest_unpaid_due_date(account: Account) -> datetime | None:
    """
    FIFO aging: payments settle the oldest credit sales first, so the unpaid
    balance is made up of the newest sales. Walk credit sales newest first
    until the balance is covered; the last due date reached is the oldest
    one still unpaid.
    """
    remaining = account.credit_balance_cents
    if remaining <= 0:
        return None

    sales = (
        db.session.query(Transaction)
        .filter(
            Transaction.customer_id == account.id,
            Transaction.transaction_type == TRANSACTION_TYPE_SALE,
            Transaction.payment_method == PAYMENT_METHOD_CREDIT,
            Transaction.status != TXN_STATUS_CANCELLED,
        )
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .all()
    )

    oldest_due = None
    for txn in sales:
        outstanding = txn.total_cents - (txn.refunded_cents or 0)
        if outstanding <= 0 or txn.due_date is None:
            continue
        oldest_due = txn.due_date
        remaining -= outstanding
        if remaining <= 0:
            break
    return oldest_due


def status_for_days_past_due(days: int) -> str:
    if days <= 0:
        return CREDIT_STATUS_CURRENT
    if days <= 30:
        return CREDIT_STATUS_OVERDUE_30
    if days <= 60:
        return CREDIT_STATUS_OVERDUE_60
    if days <= 90:
        return CREDIT_STATUS_OVERDUE_90
    return CREDIT_STATUS_BAD_DEBT


def derive_credit_status(account: Account, as_of: datetime | None = None) -> str:
    """
    Credit status from balance and aging.

    Vendors and accounts with no positive balance are CURRENT. Otherwise the
    oldest unpaid credit sale's due date decides: 1-30 days past due is
    OVERDUE_30, 31-60 OVERDUE_60, 61-90 OVERDUE_90, beyond that BAD_DEBT.
    """
    if account.is_vendor or account.credit_balance_cents <= 0:
        return CREDIT_STATUS_CURRENT
    oldest_due = _oldest_unpaid_due_date(account)
    if oldest_due is None:
        return CREDIT_STATUS_CURRENT
    return status_for_days_past_due(days_past(oldest_due, as_of or utcnow()))


def _sync_credit_status(account: Account, as_of: datetime | None = None) -> Account:
    status = derive_credit_status(account, as_of)
    if status == account.credit_status:
        return account

    previous = account.credit_status
    _conditional_update(account.id, {"credit_status": status})
    current_app.logger.info("Account %s credit status %s -> %s", account.id, previous, status)
    return _reload(account.id)


def credit_summary(account_id: int, as_of: datetime | None = None) -> dict:
    account = get_account(account_id)
    as_of = as_of or utcnow()
    oldest_due = None if account.is_vendor else _oldest_unpaid_due_date(account)
    return {
        "account_id": account.id,
        "kind": account.kind,
        "credit_limit_cents": account.credit_limit_cents,
        "credit_balance_cents": account.credit_balance_cents,
        "available_credit_cents": account.available_credit_cents,
        "payable_cents": account.payable_cents,
        "utilisation_pct": 0 if account.is_vendor else credit_utilisation_pct(account),
        "credit_status": account.credit_status,
        "derived_credit_status": derive_credit_status(account, as_of),
        "oldest_unpaid_due_date": to_utc_z(oldest_due),
        "days_past_due": max(0, days_past(oldest_due, as_of)) if oldest_due else 0,
    }


def refresh_credit_statuses(as_of: datetime | None = None) -> list[dict]:
    """Persist the derived credit status for every account; returns the changes."""
    as_of = as_of or utcnow()

    def _op():
        changes = []
        for account in db.session.query(Account).order_by(Account.id).all():
            status = derive_credit_status(account, as_of)
            if status != account.credit_status:
                changes.append({"account_id": account.id, "from": account.credit_status, "to": status})
                _conditional_update(account.id, {"credit_status": status})
        return changes

    changes = run_unit(_op, operation="refresh_credit_statuses")
    for change in changes:
        current_app.logger.info(
            "Account %s credit status %s -> %s", change["account_id"], change["from"], change["to"]
        )
    return changes
