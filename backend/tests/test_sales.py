"""
Sale processing tests.

Tax rate is 8% (TAX_RATE_BPS=800) in the test app.
"""

from datetime import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from agripos.extensions import db
from agripos.errors import (
    ConsistencyError,
    InsufficientCreditError,
    InsufficientStockError,
    PermissionDeniedError,
    ValidationError,
)
from agripos.models import Account, LedgerEntry, Product, Transaction
from agripos.services import account_service, document_service, inventory_service, ledger_service, sales_service
from agripos.services.sales_service import CartLine, SaleRequest


def _sale(ctx, items, payment_method="CASH", customer_id=None, discount_cents=0):
    request = SaleRequest(
        items=[CartLine(product_id=p.id, quantity=q) for p, q in items],
        payment_method=payment_method,
        customer_id=customer_id,
        discount_cents=discount_cents,
    )
    return sales_service.process_sale(ctx, request)


def _stock(product_id):
    return db.session.get(Product, product_id).stock


# =============================================================================
# PRICING & TOTALS
# =============================================================================

class TestPricing:

    def test_tax_rounds_half_up(self):
        assert sales_service.compute_tax_cents(5000, 800) == 400
        assert sales_service.compute_tax_cents(1, 5000) == 1      # 0.5 -> 1
        assert sales_service.compute_tax_cents(3, 1000) == 0      # 0.3 -> 0
        assert sales_service.compute_tax_cents(0, 800) == 0

    def test_totals_apply_discount_before_tax(self):
        totals = sales_service.compute_totals([4000, 1000], discount_cents=1000, rate_bps=800)
        assert totals == {
            "subtotal_cents": 5000,
            "discount_cents": 1000,
            "tax_cents": 320,
            "total_cents": 4320,
        }

    def test_discount_above_subtotal_rejected(self):
        with pytest.raises(ValidationError, match="discount_cents"):
            sales_service.compute_totals([1000], discount_cents=1001, rate_bps=0)

    def test_farmer_pays_wholesale_for_feed(self, farmer, feed, feeder):
        assert sales_service.price_for(feed, farmer) == 3200
        assert sales_service.price_for(feeder, farmer) == 2500

    def test_wholesale_customer_pays_wholesale_for_eggs_only(self, wholesale_customer, feed, hen_eggs_product):
        assert sales_service.price_for(hen_eggs_product, wholesale_customer) == 270
        assert sales_service.price_for(feed, wholesale_customer) == 4000

    def test_regular_and_walk_in_pay_retail(self, regular_customer, feed):
        assert sales_service.price_for(feed, regular_customer) == 4000
        assert sales_service.price_for(feed, None) == 4000


# =============================================================================
# CASH SALES
# =============================================================================

class TestCashSale:

    def test_walk_in_cash_sale(self, ctx, feeder):
        result = _sale(ctx, [(feeder, 2)])
        txn = result.transaction

        assert txn.subtotal_cents == 5000
        assert txn.tax_cents == 400
        assert txn.total_cents == 5400
        assert txn.paid_amount_cents == 5400
        assert txn.balance_amount_cents == 0
        assert txn.due_date is None
        assert txn.customer_id is None
        assert txn.status == "COMPLETED"
        assert txn.receipt_number.startswith("RCP-")
        assert txn.receipt_number.endswith("-0001")
        assert _stock(feeder.id) == 18

    def test_cash_sale_to_known_account_leaves_balance_alone(self, ctx, farmer, feed):
        _sale(ctx, [(feed, 1)], customer_id=farmer.id)

        account = account_service.get_account(farmer.id)
        assert account.credit_balance_cents == 0
        assert account.total_purchases_cents == 0
        assert db.session.query(LedgerEntry).filter_by(account_id=farmer.id).count() == 0

    def test_receipt_numbers_increase(self, ctx, feeder):
        first = _sale(ctx, [(feeder, 1)]).transaction.receipt_number
        second = _sale(ctx, [(feeder, 1)]).transaction.receipt_number

        assert first.endswith("-0001")
        assert second.endswith("-0002")
        assert first[:-4] == second[:-4]

    def test_items_snapshot_price_and_name(self, ctx, farmer, feed):
        txn = _sale(ctx, [(feed, 3)], customer_id=farmer.id).transaction
        [item] = txn.items

        assert item.product_name == "Layer Mash 50kg"
        assert item.product_sku == "FEED-LM-50"
        assert item.unit_price_cents == 3200
        assert item.line_total_cents == 9600

    def test_repeated_product_lines_are_combined_for_stock(self, ctx, feeder):
        _sale(ctx, [(feeder, 2), (feeder, 3)])
        assert _stock(feeder.id) == 15

    def test_low_stock_warning(self, ctx, feeder):
        result = _sale(ctx, [(feeder, 18)])
        assert _stock(feeder.id) == 2
        assert any("low on stock" in w for w in result.warnings)


# =============================================================================
# CREDIT SALES
# =============================================================================

class TestCreditSale:

    def test_farmer_credit_sale(self, ctx, farmer, feed):
        result = _sale(ctx, [(feed, 5)], payment_method="CREDIT", customer_id=farmer.id)
        txn = result.transaction

        assert txn.subtotal_cents == 16000
        assert txn.tax_cents == 1280
        assert txn.total_cents == 17280
        assert txn.paid_amount_cents == 0
        assert txn.balance_amount_cents == 17280
        assert txn.due_date is not None
        assert (txn.due_date - txn.created_at).days == 30

        account = account_service.get_account(farmer.id)
        assert account.credit_balance_cents == 17280
        assert account.total_purchases_cents == 17280
        assert _stock(feed.id) == 95
        assert result.warnings == []

        [entry] = db.session.query(LedgerEntry).filter_by(account_id=farmer.id).all()
        assert entry.entry_type == "SALE_ON_CREDIT"
        assert entry.transaction_id == txn.id

    def test_credit_sale_requires_customer(self, ctx, feed):
        with pytest.raises(ValidationError, match="customer"):
            _sale(ctx, [(feed, 1)], payment_method="CREDIT")

    def test_credit_sale_over_limit_writes_nothing(self, ctx, regular_customer, feed):
        # 13 bags at retail = 52,000 + tax > 50,000 limit
        before_stock = _stock(feed.id)
        with pytest.raises(InsufficientCreditError):
            _sale(ctx, [(feed, 13)], payment_method="CREDIT", customer_id=regular_customer.id)

        assert db.session.query(Transaction).count() == 0
        assert _stock(feed.id) == before_stock
        assert account_service.get_account(regular_customer.id).credit_balance_cents == 0

    def test_high_utilisation_warning(self, ctx, feed):
        account = account_service.create_account({
            "kind": "FARMER", "name": "Small Holding", "credit_limit_cents": 20_000,
        })
        result = _sale(ctx, [(feed, 5)], payment_method="CREDIT", customer_id=account.id)

        assert any("86%" in w for w in result.warnings)

    def test_vendor_cannot_be_sold_to(self, ctx, vendor, feed):
        with pytest.raises(ValidationError, match="Vendor"):
            _sale(ctx, [(feed, 1)], customer_id=vendor.id)

    def test_cashier_cannot_sell_on_credit(self, cashier_ctx, farmer, feed):
        with pytest.raises(PermissionDeniedError):
            _sale(cashier_ctx, [(feed, 1)], payment_method="CREDIT", customer_id=farmer.id)

    def test_cashier_can_sell_for_cash(self, cashier_ctx, feed):
        txn = _sale(cashier_ctx, [(feed, 1)]).transaction
        assert txn.total_cents == 4320

    def test_payment_then_pay_off(self, ctx, farmer, feed):
        from agripos.services import payment_service

        _sale(ctx, [(feed, 5)], payment_method="CREDIT", customer_id=farmer.id)
        with pytest.raises(ValidationError):
            payment_service.record_payment(
                ctx, account_id=farmer.id, payment_type="CUSTOMER_PAYMENT", amount_cents=20_000
            )
        payment_service.record_payment(
            ctx, account_id=farmer.id, payment_type="CUSTOMER_PAYMENT", amount_cents=17_280
        )

        account = account_service.get_account(farmer.id)
        assert account.credit_balance_cents == 0
        assert account.total_purchases_cents == 17_280


# =============================================================================
# INPUT & STOCK VALIDATION
# =============================================================================

class TestSaleValidation:

    def test_empty_cart_rejected(self, ctx):
        with pytest.raises(ValidationError, match="at least one item"):
            sales_service.process_sale(ctx, SaleRequest(items=[], payment_method="CASH"))

    @pytest.mark.parametrize("quantity", [0, -1, 1.5])
    def test_bad_quantity_rejected(self, ctx, feed, quantity):
        with pytest.raises(ValidationError, match="quantity"):
            _sale(ctx, [(feed, quantity)])

    def test_unknown_payment_method_rejected(self, ctx, feed):
        with pytest.raises(ValidationError, match="payment_method"):
            _sale(ctx, [(feed, 1)], payment_method="BARTER")

    def test_shortfall_lists_each_short_product(self, ctx, feed, feeder):
        with pytest.raises(InsufficientStockError) as exc_info:
            _sale(ctx, [(feed, 101), (feeder, 21)])

        shortfalls = exc_info.value.details["shortfalls"]
        assert {s["product_id"] for s in shortfalls} == {feed.id, feeder.id}
        assert exc_info.value.http_status == 409
        assert _stock(feed.id) == 100
        assert db.session.query(Transaction).count() == 0

    def test_inactive_product_rejected(self, ctx, feeder):
        feeder.is_active = False
        db.session.commit()
        with pytest.raises(ValidationError, match="inactive"):
            _sale(ctx, [(feeder, 1)])

    def test_from_payload_requires_item_fields(self):
        with pytest.raises(ValidationError, match="product_id and quantity"):
            SaleRequest.from_payload({"items": [{"product_id": 1}], "payment_method": "CASH"})


# =============================================================================
# STORAGE FAILURE ROLLBACK
# =============================================================================

class TestStorageFailureRollback:
    """A failure after the balance write undoes the whole sale."""

    def test_ledger_failure_rolls_back_sale(self, ctx, farmer, feed, monkeypatch):
        def broken_append(**kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(account_service, "append_entry", broken_append)

        with pytest.raises(ConsistencyError) as exc_info:
            _sale(ctx, [(feed, 5)], payment_method="CREDIT", customer_id=farmer.id)

        details = exc_info.value.details
        assert details["operation"] == "process_sale"
        assert details["account_id"] == farmer.id
        assert details["delta_cents"] == 17280
        assert "transaction_id" in details

        assert db.session.query(Transaction).count() == 0
        assert _stock(feed.id) == 100
        account = db.session.get(Account, farmer.id)
        assert account.credit_balance_cents == 0
        assert account.total_purchases_cents == 0

    def test_next_sale_after_rollback_reuses_receipt_sequence(self, ctx, farmer, feed, monkeypatch):
        def broken_append(**kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(account_service, "append_entry", broken_append)
        with pytest.raises(ConsistencyError):
            _sale(ctx, [(feed, 1)], payment_method="CREDIT", customer_id=farmer.id)
        monkeypatch.undo()

        txn = _sale(ctx, [(feed, 1)], payment_method="CREDIT", customer_id=farmer.id).transaction
        assert txn.receipt_number.endswith("-0001")


# =============================================================================
# REFUNDS
# =============================================================================

class TestRefunds:

    def test_full_refund_of_credit_sale(self, ctx, farmer, feed):
        sale = _sale(ctx, [(feed, 5)], payment_method="CREDIT", customer_id=farmer.id).transaction

        refund = sales_service.refund_sale(ctx, sale.id, reason="Wrong feed")

        assert refund.transaction_type == "REFUND"
        assert refund.total_cents == -17280
        assert refund.refund_of_id == sale.id
        assert refund.receipt_number.startswith("RFD-")
        assert [i.quantity for i in refund.items] == [-5]

        original = sales_service.get_transaction(sale.id)
        assert original.status == "REFUNDED"
        assert original.refundable_cents == 0

        account = account_service.get_account(farmer.id)
        assert account.credit_balance_cents == 0
        assert account.total_purchases_cents == 17280
        assert _stock(feed.id) == 100
        assert ledger_service.reconcile_account(farmer.id)["balanced"] is True

    def test_partial_refund_of_cash_sale(self, ctx, feeder):
        sale = _sale(ctx, [(feeder, 2)]).transaction

        refund = sales_service.refund_sale(ctx, sale.id, amount_cents=1000)

        assert refund.total_cents == -1000
        assert refund.items == []
        original = sales_service.get_transaction(sale.id)
        assert original.status == "PARTIAL_REFUND"
        assert original.refundable_cents == 4400
        assert _stock(feeder.id) == 18

    def test_refund_beyond_remaining_rejected(self, ctx, feeder):
        sale = _sale(ctx, [(feeder, 2)]).transaction
        sales_service.refund_sale(ctx, sale.id, amount_cents=5000)

        with pytest.raises(ValidationError, match="exceeds refundable"):
            sales_service.refund_sale(ctx, sale.id, amount_cents=401)

    def test_fully_refunded_sale_cannot_be_refunded_again(self, ctx, feeder):
        sale = _sale(ctx, [(feeder, 1)]).transaction
        sales_service.refund_sale(ctx, sale.id)

        with pytest.raises(ValidationError, match="REFUNDED"):
            sales_service.refund_sale(ctx, sale.id)

    def test_refund_of_refund_rejected(self, ctx, feeder):
        sale = _sale(ctx, [(feeder, 1)]).transaction
        refund = sales_service.refund_sale(ctx, sale.id, amount_cents=100)

        with pytest.raises(ValidationError, match="Only sales"):
            sales_service.refund_sale(ctx, refund.id)

    def test_refund_after_pay_off_leaves_store_owing(self, ctx, farmer, feed):
        from agripos.services import payment_service

        sale = _sale(ctx, [(feed, 1)], payment_method="CREDIT", customer_id=farmer.id).transaction
        payment_service.record_payment(
            ctx, account_id=farmer.id, payment_type="CUSTOMER_PAYMENT", amount_cents=sale.total_cents
        )
        sales_service.refund_sale(ctx, sale.id)

        account = account_service.get_account(farmer.id)
        assert account.credit_balance_cents == -sale.total_cents
        assert account.payable_cents == sale.total_cents


# =============================================================================
# QUERIES
# =============================================================================

class TestSaleQueries:

    def test_sales_summary(self, ctx, farmer, feed, feeder):
        _sale(ctx, [(feeder, 2)])
        credit = _sale(ctx, [(feed, 5)], payment_method="CREDIT", customer_id=farmer.id).transaction
        sales_service.refund_sale(ctx, credit.id, amount_cents=1280)

        summary = sales_service.sales_summary()

        assert summary["sale_count"] == 2
        assert summary["refund_count"] == 1
        assert summary["gross_sales_cents"] == 5400 + 17280
        assert summary["refunds_cents"] == 1280
        assert summary["net_sales_cents"] == 5400 + 17280 - 1280
        assert summary["tax_cents"] == 400 + 1280
        assert summary["by_payment_method"] == {"CASH": 5400, "CREDIT": 17280 - 1280}

    def test_list_transactions_for_account(self, ctx, farmer, feed, feeder):
        _sale(ctx, [(feeder, 1)])
        txn = _sale(ctx, [(feed, 1)], payment_method="CREDIT", customer_id=farmer.id).transaction

        assert [t.id for t in sales_service.list_transactions(account_id=farmer.id)] == [txn.id]
        assert len(sales_service.list_transactions()) == 2

    def test_stock_adjustment_cannot_go_negative(self, feeder):
        with pytest.raises(InsufficientStockError):
            inventory_service.update_product_stock(feeder.id, -21)
        assert inventory_service.update_product_stock(feeder.id, -20).stock == 0


# =============================================================================
# RECEIPT NUMBERS
# =============================================================================

class TestReceiptNumbers:

    DAY = datetime(2026, 3, 2, 9, 0)

    def test_numbers_run_per_prefix_and_day(self, db_session):
        assert document_service.next_receipt_number("RCP", on=self.DAY) == "RCP-20260302-0001"
        assert document_service.next_receipt_number("RCP", on=self.DAY) == "RCP-20260302-0002"
        assert document_service.next_receipt_number("RFD", on=self.DAY) == "RFD-20260302-0001"
        db_session.commit()

    def test_losing_the_first_insert_takes_the_next_number(self, db_session, monkeypatch):
        document_service.next_receipt_number("RCP", on=self.DAY)
        db_session.commit()

        real_bump = document_service._bump_sequence
        periods = []

        def bump_missing_once(prefix, period):
            periods.append(period)
            if len(periods) == 1:
                # Another unit has not committed today's row yet when this one looks
                return real_bump(prefix, "19000101")
            return real_bump(prefix, period)

        monkeypatch.setattr(document_service, "_bump_sequence", bump_missing_once)

        assert document_service.next_receipt_number("RCP", on=self.DAY) == "RCP-20260302-0002"
        db_session.commit()
        assert periods == ["20260302", "20260302"]


# =============================================================================
# PRODUCT CATALOGUE
# =============================================================================

class TestProductUpdates:

    def test_update_prices_and_reorder_level(self, feed):
        product = inventory_service.update_product(feed.id, {"selling_price_cents": 4200, "minimum_stock": 10})

        assert product.selling_price_cents == 4200
        assert product.minimum_stock == 10
        assert product.stock == 100

    def test_sku_change_must_stay_unique(self, feed, feeder):
        with pytest.raises(ValidationError, match="SKU 'EQ-FEEDER-01' already exists"):
            inventory_service.update_product(feed.id, {"sku": "EQ-FEEDER-01"})

        assert inventory_service.update_product(feed.id, {"sku": "FEED-LM-25"}).sku == "FEED-LM-25"

    @pytest.mark.parametrize("payload,message", [
        ({"stock": 5}, "Field not allowed: stock"),
        ({"selling_price_cents": -1}, "selling_price_cents must be >= 0"),
        ({"product_type": "TOYS"}, "product_type must be one of"),
        ({"name": "   "}, "name cannot be blank"),
    ])
    def test_invalid_updates_rejected(self, feed, payload, message):
        with pytest.raises(ValidationError, match=message):
            inventory_service.update_product(feed.id, payload)

    def test_deactivated_product_leaves_the_catalogue(self, feed, feeder):
        inventory_service.update_product(feeder.id, {"is_active": False})

        assert [p.id for p in inventory_service.list_products()] == [feed.id]
