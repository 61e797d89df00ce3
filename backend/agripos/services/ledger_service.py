# Overview: Append-only ledger of balance mutations and reconciliation.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Account, LedgerEntry
from ..errors import NotFoundError
"""
Ledger invariants (authoritative)

- Append-only: entries are never updated or deleted.
- One entry per balance mutation, written inside the same DB transaction.
- sum(delta_cents) over an account's entries == account.credit_balance_cents.
"""

ENTRY_OPENING_BALANCE = "OPENING_BALANCE"
ENTRY_SALE_ON_CREDIT = "SALE_ON_CREDIT"
ENTRY_CUSTOMER_PAYMENT = "CUSTOMER_PAYMENT"
ENTRY_EGG_COLLECTION = "EGG_COLLECTION"
ENTRY_EGG_PAYMENT = "EGG_PAYMENT"
ENTRY_DEBIT = "DEBIT"
ENTRY_VENDOR_PAYMENT = "VENDOR_PAYMENT"
ENTRY_REFUND = "REFUND"


def append_entry(
    *,
    account_id: int,
    entry_type: str,
    delta_cents: int,
    balance_after_cents: int,
    staff_id: int | None = None,
    transaction_id: int | None = None,
    payment_record_id: int | None = None,
    egg_collection_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
) -> LedgerEntry:
    """Append a ledger entry; flushes but never commits."""
    entry = LedgerEntry(
        account_id=account_id,
        entry_type=entry_type,
        delta_cents=delta_cents,
        balance_after_cents=balance_after_cents,
        staff_id=staff_id,
        transaction_id=transaction_id,
        payment_record_id=payment_record_id,
        egg_collection_id=egg_collection_id,
        occurred_at=occurred_at,
        note=note,
    )
    db.session.add(entry)
    db.session.flush()

    current_app.logger.info(
        "ledger %s account=%s delta=%s balance_after=%s",
        entry_type, account_id, delta_cents, balance_after_cents,
    )
    return entry


def account_history(account_id: int, limit: int | None = None) -> list[LedgerEntry]:
    """Entries for an account, newest first."""
    query = (
        db.session.query(LedgerEntry)
        .filter_by(account_id=account_id)
        .order_by(LedgerEntry.occurred_at.desc(), LedgerEntry.id.desc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def reconcile_account(account_id: int) -> dict:
    """
    Compare an account's stored balance with the sum of its ledger entries.

    drift_cents != 0 means a balance was changed outside the ledger.
    """
    account = db.session.get(Account, account_id)
    if not account:
        raise NotFoundError(f"Account {account_id} not found")

    ledger_sum, entry_count = (
        db.session.query(
            func.coalesce(func.sum(LedgerEntry.delta_cents), 0),
            func.count(LedgerEntry.id),
        )
        .filter(LedgerEntry.account_id == account_id)
        .one()
    )

    drift = account.credit_balance_cents - int(ledger_sum)
    return {
        "account_id": account_id,
        "credit_balance_cents": account.credit_balance_cents,
        "ledger_sum_cents": int(ledger_sum),
        "entry_count": int(entry_count),
        "drift_cents": drift,
        "balanced": drift == 0,
    }


def reconcile_all() -> list[dict]:
    ids = [row[0] for row in db.session.query(Account.id).order_by(Account.id).all()]
    return [reconcile_account(account_id) for account_id in ids]
