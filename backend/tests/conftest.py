"""
Pytest fixtures for quoteflow backend tests.

Provides the application (in-memory SQLite), a per-test clean database,
the test client, quotation factories and recording collaborators.
"""

import itertools

import pytest

from quoteflow import create_app
from quoteflow.extensions import db
from quoteflow.errors import BestEffortFailure
from quoteflow.models import Quotation, QuotationItem
from quoteflow.services.lifecycle_service import QuotationLifecycleService
from quoteflow.time_utils import days_from_now


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'NOTIFICATION_WEBHOOK_URL': None,
}

# (quantity, unit_price_cents): $10 x 2 and $5 x 1, total $25
DEFAULT_ITEMS = ((2, 1000), (1, 500))


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
def make_quotation(db_session):
    """
    Insert a quotation directly, in any stored status.

    Bypasses the services so tests can start from sent/approved/expired states.
    """
    counter = itertools.count(1)

    def _make(
        *,
        status="draft",
        items=DEFAULT_ITEMS,
        valid_until=None,
        customer_name="Ada Buyer",
        customer_email="ada@example.com",
        customer_company="Analytical Engines Ltd",
        created_by_user_id=1,
    ):
        quotation = Quotation(
            quotation_number=f"QT-T{next(counter):05d}",
            status=status,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_company=customer_company,
            currency="USD",
            valid_until=valid_until or days_from_now(10),
            created_by_user_id=created_by_user_id,
        )
        quotation.items = [
            QuotationItem(
                product_id=f"P-{index + 1}",
                product_name=f"Product {index + 1}",
                quantity=quantity,
                unit_price_cents=unit_price_cents,
                line_total_cents=quantity * unit_price_cents,
                sort_order=index,
            )
            for index, (quantity, unit_price_cents) in enumerate(items)
        ]
        quotation.recompute_total()
        db_session.add(quotation)
        db_session.commit()
        return quotation

    return _make


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


class FailingNotifier:
    def __init__(self):
        self.calls = 0

    def notify(self, event):
        self.calls += 1
        raise BestEffortFailure("webhook unreachable")


class RecordingAuditor:
    def __init__(self):
        self.events = []

    def record(self, event):
        self.events.append(event)


@pytest.fixture(scope='function')
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope='function')
def auditor():
    return RecordingAuditor()


@pytest.fixture(scope='function')
def lifecycle(db_session, notifier, auditor):
    """Lifecycle service with recording collaborators."""
    return QuotationLifecycleService(notifier=notifier, auditor=auditor)


def item_ids(quotation):
    """Item ids in quotation order."""
    return [item.id for item in quotation.items]


def actor_headers(user_id: int = 7) -> dict:
    """Helper to create gateway identity headers."""
    return {'X-User-Id': str(user_id)}
