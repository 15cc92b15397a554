"""
Pytest fixtures for shop ledger backend tests.

Provides the application, a per-test clean database, authenticated client
headers and small factories for accounts, products and parties.
"""

import pytest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.services import account_balance_service as ledger
from shopledger.services.account_service import create_account
from shopledger.services.auth_service import create_user
from shopledger.services.customer_service import create_customer
from shopledger.services.products_service import create_product
from shopledger.services.session_service import create_session
from shopledger.services.supplier_service import create_supplier
from shopledger.validation import parse_line_items


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
        'LOG_DIR': None,
        'LEDGER_ATOMIC_WORKFLOWS': True,
        'ALLOW_NEGATIVE_BALANCE': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table but keep the schema."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()
    app.config['LEDGER_ATOMIC_WORKFLOWS'] = True
    app.config['ALLOW_NEGATIVE_BALANCE'] = False


@pytest.fixture(scope='function')
def compensating(app, db_session):
    """Run workflows step-by-step with undo on failure instead of one DB transaction."""
    app.config['LEDGER_ATOMIC_WORKFLOWS'] = False
    yield
    app.config['LEDGER_ATOMIC_WORKFLOWS'] = True


@pytest.fixture(scope='function')
def cash_account(db_session):
    """Default cash account holding 1000.00."""
    account = create_account({"type": "cash", "name": "Cash Box"})
    ledger.record_manual_entry("deposit", "1000.00", account_id=account.id)
    return account


@pytest.fixture(scope='function')
def bank_account(db_session):
    """Default bank account holding 500.00."""
    account = create_account({"type": "bank", "bank_name": "City Bank", "account_number": "0042"})
    ledger.record_manual_entry("deposit", "500.00", account_id=account.id)
    return account


@pytest.fixture(scope='function')
def product(db_session):
    return create_product({"name": "Rice 5kg", "sku": "RICE-5", "sale_price": "12.50"})


@pytest.fixture(scope='function')
def other_product(db_session):
    return create_product({"name": "Lentils 1kg", "sku": "LENT-1", "sale_price": "3.00"})


@pytest.fixture(scope='function')
def supplier(db_session):
    return create_supplier({"name": "Karim Traders", "phone": "0170000000"})


@pytest.fixture(scope='function')
def customer(db_session):
    return create_customer({"name": "Rahim", "phone": "0180000000"})


@pytest.fixture(scope='function')
def user(db_session):
    return create_user("clerk", "Password123!")


@pytest.fixture(scope='function')
def auth_headers(user):
    """Authorization headers for a fresh session of the clerk user."""
    _, token = create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def lines():
    """
    Build normalized line items the way the routes do.

    Usage: lines((product, qty, price), ...)
    """
    def _build(*items):
        return parse_line_items(
            [{"product_id": p.id, "qty": qty, "price": price} for p, qty, price in items],
            price_keys=("price",),
        )
    return _build
