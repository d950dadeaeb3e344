"""
Pytest fixtures for cash desk backend tests.

Provides test database setup, a branch with users and a register, the
denomination catalog, helpers to record sales against a session, and the
test client.
"""

from datetime import time
from decimal import Decimal

import pytest
from app import create_app
from app.extensions import db
from app.models import Branch, CashMovement, Denomination, Register, Sale, SalePayment
from app.models.auth import ROLE_CASHIER, ROLE_MANAGER, ROLE_OWNER
from app.models.sales import METHOD_CASH, SALE_COMPLETED, SALE_VOIDED
from app.services import auth_service
from app.time_utils import utcnow


MANAGER_PIN = "1234"
OWNER_PIN = "9876"
CASHIER_PIN = "5555"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'PIN_HASH_ROUNDS': 4,
    # Branch fixtures are open 00:00-23:59; one minute of grace covers the day
    'AFTER_HOURS_GRACE_MINUTES': 1,
    'SESSION_RETRY_ATTEMPTS': 3,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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


@pytest.fixture(scope='function')
def branch(db_session):
    """Branch open all day every day, no petty-cash minimum."""
    branch = Branch(
        name="Centro",
        code="CEN",
        timezone="UTC",
        petty_cash_amount=Decimal("0.00"),
        weekday_opening_time=time(0, 0),
        weekday_closing_time=time(23, 59),
        sunday_opening_time=time(0, 0),
        sunday_closing_time=time(23, 59),
    )
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session):
    branch = Branch(name="Norte", code="NOR", timezone="UTC")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def owner(db_session):
    return auth_service.create_user("owner", ROLE_OWNER, full_name="Olga Owner", pin=OWNER_PIN)


@pytest.fixture(scope='function')
def manager(db_session, branch):
    return auth_service.create_user("manager", ROLE_MANAGER, branch_id=branch.id, pin=MANAGER_PIN)


@pytest.fixture(scope='function')
def cashier(db_session, branch):
    return auth_service.create_user("cashier", ROLE_CASHIER, branch_id=branch.id, pin=CASHIER_PIN)


@pytest.fixture(scope='function')
def register(db_session, branch):
    register = Register(branch_id=branch.id, register_number=1, name="Caja 1", is_active=True)
    db_session.add(register)
    db_session.commit()
    return register


@pytest.fixture(scope='function')
def denominations(db_session):
    """1000, 500, 100 active; 20 inactive."""
    rows = [
        Denomination(value=Decimal("1000"), label="$1.000", display_order=0, is_active=True),
        Denomination(value=Decimal("500"), label="$500", display_order=1, is_active=True),
        Denomination(value=Decimal("100"), label="$100", display_order=2, is_active=True),
        Denomination(value=Decimal("20"), label="$20", display_order=3, is_active=False),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return {int(row.value): row for row in rows}


_sale_counter = {"n": 0}


def record_sale(session_id, branch_id, amount, *, method=METHOD_CASH, created_by=None, status=SALE_COMPLETED):
    """Insert a sale with a single payment, as the checkout pipeline would."""
    _sale_counter["n"] += 1
    sale = Sale(
        branch_id=branch_id,
        register_session_id=session_id,
        sale_number=f"S-{_sale_counter['n']:06d}",
        total_amount=Decimal(str(amount)),
        status=status,
        created_by=created_by,
    )
    db.session.add(sale)
    db.session.flush()
    db.session.add(SalePayment(sale_id=sale.id, method=method, amount=Decimal(str(amount))))
    db.session.commit()
    return sale


def void_sale(sale, voided_by, reason="Wrong item scanned", approved_by=None):
    sale.status = SALE_VOIDED
    sale.voided_by = voided_by
    sale.voided_at = utcnow()
    sale.void_reason = reason
    if approved_by is not None:
        approve_void(sale, approved_by)
    db.session.commit()
    return sale


def approve_void(sale, approved_by):
    sale.void_approved_by = approved_by
    sale.void_approved_at = utcnow()
    db.session.commit()
    return sale


def record_movement(session_id, movement_type, amount, performed_by=None):
    movement = CashMovement(
        register_session_id=session_id,
        movement_type=movement_type,
        amount=Decimal(str(amount)),
        performed_by=performed_by,
    )
    db.session.add(movement)
    db.session.commit()
    return movement


def auth_headers(user) -> dict:
    """Headers the upstream gateway sets for an authenticated user."""
    return {'X-User-Id': str(user.id)}
