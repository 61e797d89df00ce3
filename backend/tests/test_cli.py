"""Flask CLI command tests."""

from datetime import timedelta

from sqlalchemy import update

from agripos.extensions import db
from agripos.models import Account, Product, Staff, Transaction
from agripos.services import account_service
from agripos.services.sales_service import CartLine, SaleRequest, process_sale


class TestSystemCommands:

    def test_init_creates_admin_and_egg_products(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['system', 'init'])

        assert result.exit_code == 0, result.output
        assert 'DONE' in result.output
        assert db.session.query(Staff).filter_by(username='admin').count() == 1
        skus = {p.sku: p.category for p in db.session.query(Product).all()}
        assert skus == {'EGG-HEN-DZ': 'hen_eggs', 'EGG-DUCK-DZ': 'duck_eggs'}

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=['system', 'init'])

        result = runner.invoke(args=['system', 'init'])

        assert result.exit_code == 0, result.output
        assert 'already exists' in result.output
        assert db.session.query(Product).count() == 2


class TestLedgerCommands:

    def test_reconcile_passes_on_clean_ledger(self, app, vendor, farmer):
        result = app.test_cli_runner().invoke(args=['ledger', 'reconcile'])

        assert result.exit_code == 0, result.output
        assert 'PASS 2 account(s) reconciled' in result.output

    def test_reconcile_reports_drift(self, app, farmer):
        account_service.apply_sale_on_credit(farmer, 5_000)
        db.session.execute(
            update(Account).where(Account.id == farmer.id).values(credit_balance_cents=4_000)
        )
        db.session.commit()

        result = app.test_cli_runner().invoke(args=['ledger', 'reconcile', '--account-id', str(farmer.id)])

        assert result.exit_code == 1
        assert f'DRIFT account {farmer.id}' in result.output
        assert 'drift -10.00' in result.output


class TestAccountCommands:

    def test_list_accounts(self, app, farmer, vendor):
        result = app.test_cli_runner().invoke(args=['accounts', 'list', '--kind', 'VENDOR'])

        assert result.exit_code == 0, result.output
        assert 'Valley Feed Mill' in result.output
        assert '500.00' in result.output
        assert 'Green Valley Farm' not in result.output

    def test_age_persists_status(self, app, ctx, farmer, feed):
        txn = process_sale(ctx, SaleRequest(
            items=[CartLine(product_id=feed.id, quantity=1)],
            payment_method='CREDIT',
            customer_id=farmer.id,
        )).transaction
        due = db.session.get(Transaction, txn.id).due_date
        as_of = (due + timedelta(days=40)).date().isoformat()

        result = app.test_cli_runner().invoke(args=['accounts', 'age', '--as-of', as_of])

        assert result.exit_code == 0, result.output
        assert f'UPDATE account {farmer.id}: CURRENT -> OVERDUE_60' in result.output
        db.session.expire_all()
        assert account_service.get_account(farmer.id).credit_status == 'OVERDUE_60'

    def test_age_rejects_bad_date(self, app, db_session):
        result = app.test_cli_runner().invoke(args=['accounts', 'age', '--as-of', 'next week'])
        assert result.exit_code != 0

    def test_nothing_to_age(self, app, farmer):
        result = app.test_cli_runner().invoke(args=['accounts', 'age'])
        assert 'up to date' in result.output
