"""
Pytest fixtures for AgriPOS ledger tests.

Provides test database setup, staff contexts, accounts, products and test client.
"""

import pytest
from agripos import create_app
from agripos.extensions import db
from agripos.services import account_service, inventory_service
from agripos.services.auth_service import context_for, create_staff


STAFF_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret-key',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'TAX_RATE_BPS': 800,
        'CREDIT_ALERT_PCT': 80,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# STAFF
# =============================================================================

@pytest.fixture(scope='function')
def admin_staff(db_session):
    return create_staff(
        username="admin",
        password=STAFF_PASSWORD,
        first_name="Store",
        last_name="Admin",
        position="ADMIN",
    )


@pytest.fixture(scope='function')
def cashier_staff(db_session):
    return create_staff(
        username="cashier",
        password=STAFF_PASSWORD,
        first_name="Counter",
        last_name="Cashier",
        position="CASHIER",
    )


@pytest.fixture(scope='function')
def ctx(admin_staff):
    """LedgerContext with every permission."""
    return context_for(admin_staff)


@pytest.fixture(scope='function')
def cashier_ctx(cashier_staff):
    """LedgerContext with pos_sales and cash_handle only."""
    return context_for(cashier_staff)


# =============================================================================
# ACCOUNTS
# =============================================================================

@pytest.fixture(scope='function')
def farmer(db_session):
    """Farmer with a 15,000.00 limit and nothing owed."""
    return account_service.create_account({
        "kind": "FARMER",
        "name": "Green Valley Farm",
        "contact_person": "Maria Santos",
        "credit_limit_cents": 1_500_000,
        "payment_terms_days": 30,
    })


@pytest.fixture(scope='function')
def regular_customer(db_session):
    return account_service.create_account({
        "kind": "REGULAR",
        "name": "Town Pet Shop",
        "credit_limit_cents": 50_000,
        "payment_terms_days": 15,
    })


@pytest.fixture(scope='function')
def wholesale_customer(db_session):
    return account_service.create_account({
        "kind": "WHOLESALE",
        "name": "Metro Grocers",
        "credit_limit_cents": 500_000,
        "payment_terms_days": 45,
    })


@pytest.fixture(scope='function')
def vendor(db_session):
    """Feed supplier the store owes 500.00."""
    return account_service.create_account({
        "kind": "VENDOR",
        "name": "Valley Feed Mill",
        "opening_balance_cents": 50_000,
    })


# =============================================================================
# PRODUCTS
# =============================================================================

@pytest.fixture(scope='function')
def feed(db_session):
    return inventory_service.create_product({
        "sku": "FEED-LM-50",
        "name": "Layer Mash 50kg",
        "product_type": "FEED",
        "unit": "bags",
        "cost_price_cents": 2800,
        "selling_price_cents": 4000,
        "wholesale_price_cents": 3200,
        "stock": 100,
        "minimum_stock": 5,
    })


@pytest.fixture(scope='function')
def feeder(db_session):
    """Equipment with no wholesale price."""
    return inventory_service.create_product({
        "sku": "EQ-FEEDER-01",
        "name": "Poultry Feeder",
        "product_type": "EQUIPMENT",
        "unit": "pieces",
        "selling_price_cents": 2500,
        "stock": 20,
        "minimum_stock": 2,
    })


@pytest.fixture(scope='function')
def hen_eggs_product(db_session):
    return inventory_service.create_product({
        "sku": "EGG-HEN-DZ",
        "name": "Fresh Hen Eggs",
        "product_type": "EGGS",
        "category": "hen_eggs",
        "unit": "dozen",
        "selling_price_cents": 300,
        "wholesale_price_cents": 270,
        "stock": 0,
    })


@pytest.fixture(scope='function')
def duck_eggs_product(db_session):
    return inventory_service.create_product({
        "sku": "EGG-DUCK-DZ",
        "name": "Fresh Duck Eggs",
        "product_type": "EGGS",
        "category": "duck_eggs",
        "unit": "dozen",
        "selling_price_cents": 480,
        "wholesale_price_cents": 440,
        "stock": 0,
    })


# =============================================================================
# HTTP HELPERS
# =============================================================================

def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a staff member."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_staff):
    return auth_headers(get_auth_token(client, "admin", STAFF_PASSWORD))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_staff):
    return auth_headers(get_auth_token(client, "cashier", STAFF_PASSWORD))
