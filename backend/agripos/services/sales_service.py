# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sale Transaction Processor

WHY: A sale touches three things at once: the Transaction document, the
customer's credit balance (CREDIT sales) and product stock. They are written
as one unit of work so a failure part-way leaves nothing behind.

FLOW (process_sale):
1. Validate the cart, resolve tier prices, compute totals.
2. Pre-check credit and stock against the current rows. A refusal here is a
   user-facing rejection; nothing has been written.
3. In one DB transaction: allocate the receipt number, persist the
   Transaction with its items, apply the sale to the account (conditional
   UPDATE re-checks the credit limit), decrement stock (conditional UPDATE
   re-checks stock on hand).
4. Commit, then report warnings (low stock, credit utilisation, overdue).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Account, Product, Transaction, TransactionItem
from ..models.accounts import (
    ACCOUNT_KIND_FARMER,
    ACCOUNT_KIND_WHOLESALE,
    CREDIT_STATUS_BAD_DEBT,
    CREDIT_STATUS_CURRENT,
)
from ..models.inventory import PRODUCT_TYPE_EGGS, PRODUCT_TYPE_FEED, PRODUCT_TYPE_MEDICINE
from ..models.sales import (
    PAYMENT_METHOD_CREDIT,
    TRANSACTION_TYPE_REFUND,
    TRANSACTION_TYPE_SALE,
    TXN_STATUS_COMPLETED,
    TXN_STATUS_PARTIAL_REFUND,
    TXN_STATUS_REFUNDED,
    VALID_PAYMENT_METHODS,
)
from ..errors import InsufficientCreditError, NotFoundError, ValidationError
from ..validation import MAX_AMOUNT_CENTS, require_amount_cents
from agripos.time_utils import due_date_for, utcnow
from .account_service import (
    apply_refund_credit,
    apply_sale_on_credit,
    check_credit_available,
    credit_utilisation_pct,
    derive_credit_status,
    get_account,
)
from .auth_service import PERM_CASH_HANDLE, PERM_CREDIT_APPROVE, PERM_POS_SALES, LedgerContext
from .concurrency import lock_for_update, run_unit
from .document_service import RECEIPT_PREFIX_REFUND, RECEIPT_PREFIX_SALE, next_receipt_number
from .inventory_service import check_availability, get_product, is_low_stock, update_product_stock


# Product types each account kind buys at wholesale price
WHOLESALE_TIERS = {
    ACCOUNT_KIND_FARMER: (PRODUCT_TYPE_FEED, PRODUCT_TYPE_MEDICINE),
    ACCOUNT_KIND_WHOLESALE: (PRODUCT_TYPE_EGGS,),
}


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


@dataclass
class SaleRequest:
    items: list[CartLine]
    payment_method: str
    customer_id: int | None = None
    discount_cents: int = 0
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "SaleRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        raw_items = payload.get("items")
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")
        items = []
        for raw in raw_items:
            if not isinstance(raw, dict) or "product_id" not in raw or "quantity" not in raw:
                raise ValidationError("each item needs product_id and quantity")
            items.append(CartLine(product_id=raw["product_id"], quantity=raw["quantity"]))
        return cls(
            items=items,
            payment_method=payload.get("payment_method"),
            customer_id=payload.get("customer_id"),
            discount_cents=payload.get("discount_cents", 0) or 0,
            notes=payload.get("notes"),
        )


@dataclass
class SaleResult:
    transaction: Transaction
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"transaction": self.transaction.to_dict(), "warnings": self.warnings}


# =============================================================================
# PRICING & TOTALS
# =============================================================================

def price_for(product: Product, account: Account | None) -> int:
    """Unit price in cents for this customer's pricing tier."""
    if account is not None and product.wholesale_price_cents is not None:
        if product.product_type in WHOLESALE_TIERS.get(account.kind, ()):
            return product.wholesale_price_cents
    return product.selling_price_cents


def compute_tax_cents(taxable_cents: int, rate_bps: int) -> int:
    """Tax rounded half-up to the cent."""
    if taxable_cents <= 0 or rate_bps <= 0:
        return 0
    return (taxable_cents * rate_bps + 5000) // 10000


def compute_totals(line_totals: list[int], discount_cents: int = 0, rate_bps: int | None = None) -> dict:
    """subtotal = sum(lines); total = subtotal - discount + tax."""
    if rate_bps is None:
        rate_bps = current_app.config.get("TAX_RATE_BPS", 0)
    subtotal = sum(line_totals)
    if discount_cents < 0 or discount_cents > subtotal:
        raise ValidationError("discount_cents must be between 0 and the subtotal")
    tax = compute_tax_cents(subtotal - discount_cents, rate_bps)
    total = subtotal - discount_cents + tax
    return {
        "subtotal_cents": subtotal,
        "discount_cents": discount_cents,
        "tax_cents": tax,
        "total_cents": total,
    }


def _validate_request(request: SaleRequest) -> None:
    if request.payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {VALID_PAYMENT_METHODS}")
    if not request.items:
        raise ValidationError("Sale must contain at least one item")
    for line in request.items:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError(
                "quantity must be a positive integer", details={"product_id": line.product_id}
            )
    discount = request.discount_cents
    if isinstance(discount, bool) or not isinstance(discount, int):
        raise ValidationError("discount_cents must be an integer number of cents")
    if request.payment_method == PAYMENT_METHOD_CREDIT and request.customer_id is None:
        raise ValidationError("Credit sales require a customer account")


def _resolve_customer(customer_id: int | None) -> Account | None:
    if customer_id is None:
        return None
    account = get_account(customer_id)
    if account.is_vendor:
        raise ValidationError("Vendor accounts cannot be sold to", details={"account_id": account.id})
    if not account.is_active:
        raise ValidationError("Account is inactive", details={"account_id": account.id})
    return account


# =============================================================================
# SALE PROCESSING
# =============================================================================

def process_sale(ctx: LedgerContext, request: SaleRequest) -> SaleResult:
    """
    Convert a cart into a persisted Transaction plus balance and stock updates.

    Raises:
        ValidationError: bad cart, missing account for CREDIT, inactive product
        InsufficientCreditError: credit limit does not cover the total, or BAD_DEBT
        InsufficientStockError: a line exceeds stock on hand
        ConsistencyError: a storage step failed; everything was rolled back
    """
    ctx.require(PERM_POS_SALES)
    _validate_request(request)
    is_credit = request.payment_method == PAYMENT_METHOD_CREDIT
    if is_credit:
        ctx.require(PERM_CREDIT_APPROVE)

    account = _resolve_customer(request.customer_id)

    quantities: dict[int, int] = {}
    lines = []
    for cart_line in request.items:
        product = get_product(cart_line.product_id)
        if not product.is_active:
            raise ValidationError(f"Product {product.name} is inactive", details={"product_id": product.id})
        unit_price = price_for(product, account)
        lines.append((product, cart_line.quantity, unit_price, unit_price * cart_line.quantity))
        quantities[product.id] = quantities.get(product.id, 0) + cart_line.quantity

    totals = compute_totals([line[3] for line in lines], request.discount_cents)
    total = totals["total_cents"]
    if total > MAX_AMOUNT_CENTS:
        raise ValidationError(f"Sale total cannot exceed {MAX_AMOUNT_CENTS} cents")

    warnings: list[str] = []
    if is_credit:
        status = derive_credit_status(account)
        if status == CREDIT_STATUS_BAD_DEBT:
            raise InsufficientCreditError(
                "Account is in BAD_DEBT; credit sales are suspended",
                available_cents=account.available_credit_cents,
                requested_cents=total,
                details={"account_id": account.id, "credit_status": status},
            )
        if not check_credit_available(account, total):
            raise InsufficientCreditError(
                f"Insufficient credit: available {account.available_credit_cents} cents, "
                f"sale total {total} cents",
                available_cents=account.available_credit_cents,
                requested_cents=total,
                details={"account_id": account.id},
            )
        if status != CREDIT_STATUS_CURRENT:
            warnings.append(f"Account {account.name} is {status}")

    check_availability(quantities)

    context = {
        "account_id": account.id if account else None,
        "delta_cents": total if is_credit else 0,
        "payment_method": request.payment_method,
    }

    def _op():
        now = utcnow()
        txn = Transaction(
            receipt_number=next_receipt_number(RECEIPT_PREFIX_SALE, on=now),
            transaction_type=TRANSACTION_TYPE_SALE,
            customer_id=account.id if account else None,
            staff_id=ctx.staff_id,
            payment_method=request.payment_method,
            paid_amount_cents=0 if is_credit else total,
            balance_amount_cents=total if is_credit else 0,
            due_date=due_date_for(now, account.payment_terms_days) if is_credit else None,
            status=TXN_STATUS_COMPLETED,
            notes=request.notes,
            created_at=now,
            **totals,
        )
        for product, quantity, unit_price, line_total in lines:
            txn.items.append(TransactionItem(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                unit=product.unit,
                quantity=quantity,
                unit_price_cents=unit_price,
                line_total_cents=line_total,
            ))
        db.session.add(txn)
        db.session.flush()
        context["transaction_id"] = txn.id

        if is_credit:
            apply_sale_on_credit(
                account, total, staff_id=ctx.staff_id, transaction_id=txn.id, commit=False
            )

        for product_id, quantity in sorted(quantities.items()):
            update_product_stock(product_id, -quantity, commit=False)

        return txn

    txn = run_unit(_op, operation="process_sale", context=context)

    current_app.logger.info(
        "Sale %s: %s total=%s customer=%s staff=%s",
        txn.receipt_number, txn.payment_method, txn.total_cents, txn.customer_id, ctx.staff_id,
    )

    for product_id in sorted(quantities):
        product = db.session.get(Product, product_id)
        if is_low_stock(product):
            warnings.append(f"{product.name} is low on stock ({product.stock} {product.unit} left)")

    if is_credit:
        account = db.session.get(Account, account.id)
        utilisation = credit_utilisation_pct(account)
        if utilisation >= current_app.config.get("CREDIT_ALERT_PCT", 80):
            warnings.append(f"{account.name} has used {utilisation}% of their credit limit")

    for warning in warnings:
        current_app.logger.warning("Sale %s: %s", txn.receipt_number, warning)

    return SaleResult(transaction=txn, warnings=warnings)


# =============================================================================
# REFUNDS
# =============================================================================

def refund_sale(
    ctx: LedgerContext,
    transaction_id: int,
    amount_cents: int | None = None,
    reason: str | None = None,
) -> Transaction:
    """
    Refund all or part of a completed sale.

    - amount defaults to the remaining refundable amount and may not exceed it
    - a refund covering the whole sale in one go returns the items to stock
    - CREDIT sales: the refunded amount comes off the customer's balance
    - the original moves to REFUNDED or PARTIAL_REFUND
    """
    ctx.require(PERM_CASH_HANDLE)

    original = get_transaction(transaction_id)
    if original.transaction_type != TRANSACTION_TYPE_SALE:
        raise ValidationError("Only sales can be refunded", details={"transaction_id": transaction_id})
    if original.status not in (TXN_STATUS_COMPLETED, TXN_STATUS_PARTIAL_REFUND):
        raise ValidationError(
            f"Cannot refund a transaction with status {original.status}",
            details={"transaction_id": transaction_id},
        )

    amount = original.refundable_cents if amount_cents is None else amount_cents
    require_amount_cents(amount)
    if amount > original.refundable_cents:
        raise ValidationError(
            f"Refund of {amount} cents exceeds refundable amount of {original.refundable_cents} cents",
            details={"transaction_id": transaction_id, "refundable_cents": original.refundable_cents},
        )

    is_credit = original.payment_method == PAYMENT_METHOD_CREDIT
    context = {
        "account_id": original.customer_id,
        "delta_cents": -amount if is_credit else 0,
        "transaction_id": transaction_id,
    }

    def _op():
        sale = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if amount > sale.refundable_cents:
            raise ValidationError(
                "Sale was refunded concurrently", details={"refundable_cents": sale.refundable_cents}
            )
        full_refund = (sale.refunded_cents or 0) == 0 and amount == sale.total_cents

        now = utcnow()
        refund = Transaction(
            receipt_number=next_receipt_number(RECEIPT_PREFIX_REFUND, on=now),
            transaction_type=TRANSACTION_TYPE_REFUND,
            customer_id=sale.customer_id,
            staff_id=ctx.staff_id,
            subtotal_cents=-amount,
            tax_cents=0,
            discount_cents=0,
            total_cents=-amount,
            payment_method=sale.payment_method,
            paid_amount_cents=0 if is_credit else -amount,
            balance_amount_cents=-amount if is_credit else 0,
            status=TXN_STATUS_COMPLETED,
            refund_of_id=sale.id,
            notes=reason,
            created_at=now,
        )
        if full_refund:
            for item in sale.items:
                refund.items.append(TransactionItem(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    product_sku=item.product_sku,
                    unit=item.unit,
                    quantity=-item.quantity,
                    unit_price_cents=item.unit_price_cents,
                    line_total_cents=-item.line_total_cents,
                ))
        db.session.add(refund)

        sale.refunded_cents = (sale.refunded_cents or 0) + amount
        sale.status = TXN_STATUS_REFUNDED if sale.refundable_cents == 0 else TXN_STATUS_PARTIAL_REFUND
        db.session.flush()
        context["refund_transaction_id"] = refund.id

        if is_credit and sale.customer_id is not None:
            apply_refund_credit(
                get_account(sale.customer_id), amount,
                staff_id=ctx.staff_id, transaction_id=refund.id, commit=False,
            )

        if full_refund:
            for item in sale.items:
                update_product_stock(item.product_id, item.quantity, commit=False)

        return refund

    refund = run_unit(_op, operation="refund_sale", context=context)
    current_app.logger.info(
        "Refund %s of %s: amount=%s staff=%s",
        refund.receipt_number, original.receipt_number, amount, ctx.staff_id,
    )
    return refund


# =============================================================================
# QUERIES
# =============================================================================

def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if not txn:
        raise NotFoundError(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
    return txn


def list_transactions(account_id: int | None = None, limit: int | None = None) -> list[Transaction]:
    query = db.session.query(Transaction)
    if account_id is not None:
        get_account(account_id)
        query = query.filter(Transaction.customer_id == account_id)
    query = query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def sales_summary(start: datetime | None = None, end: datetime | None = None) -> dict:
    """Totals by payment method over [start, end)."""
    filters = []
    if start is not None:
        filters.append(Transaction.created_at >= start)
    if end is not None:
        filters.append(Transaction.created_at < end)

    rows = (
        db.session.query(
            Transaction.transaction_type,
            Transaction.payment_method,
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.total_cents), 0),
            func.coalesce(func.sum(Transaction.tax_cents), 0),
        )
        .filter(*filters)
        .group_by(Transaction.transaction_type, Transaction.payment_method)
        .all()
    )

    summary = {
        "sale_count": 0,
        "refund_count": 0,
        "gross_sales_cents": 0,
        "refunds_cents": 0,
        "tax_cents": 0,
        "by_payment_method": {},
    }
    for txn_type, method, count, total, tax in rows:
        total, tax = int(total), int(tax)
        if txn_type == TRANSACTION_TYPE_SALE:
            summary["sale_count"] += count
            summary["gross_sales_cents"] += total
        else:
            summary["refund_count"] += count
            summary["refunds_cents"] += -total
        summary["tax_cents"] += tax
        summary["by_payment_method"][method] = summary["by_payment_method"].get(method, 0) + total

    summary["net_sales_cents"] = summary["gross_sales_cents"] - summary["refunds_cents"]
    return summary
