"""
Pytest fixtures for gudang backend tests.

Provides an in-memory database, a recording email sender, approval chain
and product fixtures, and a test client with the service key.
"""

import pytest

from gudang import create_app
from gudang.extensions import db
from gudang.models import ApprovalLevel, Division, Product
from gudang.services import delivery_service


SERVICE_KEY = "test-service-key"


class RecordingEmailSender:
    """EmailSender double that keeps every message instead of calling the provider."""

    configured = True

    def __init__(self):
        self.sent = []
        self.fail_with = None

    def reset(self):
        self.sent = []
        self.fail_with = None

    def send(self, *, to, subject, html):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": list(to), "subject": subject, "html": html})
        return f"email-{len(self.sent)}"

    def sent_to(self, address):
        return [m for m in self.sent if address in m["to"]]


@pytest.fixture(scope='session')
def email_sender():
    return RecordingEmailSender()


@pytest.fixture(scope='session')
def app(email_sender):
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'SERVICE_API_KEY': SERVICE_KEY,
            'PUBLIC_BASE_URL': 'https://gudang.test',
            'APPROVAL_CC_EMAILS': [],
        },
        email_sender=email_sender,
    )

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app, email_sender):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        email_sender.reset()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def service_headers():
    return {'Authorization': f'Bearer {SERVICE_KEY}'}


@pytest.fixture(scope='function')
def make_chain(db_session):
    """Factory: division with approval levels named in order (level_order 1..n)."""
    def _make(division_name="Gudang Utama", names=("Supervisor", "Manager")):
        division = Division(name=division_name)
        db_session.add(division)
        db_session.flush()
        levels = []
        for order, name in enumerate(names, start=1):
            level = ApprovalLevel(
                division_id=division.id,
                name=name,
                email=f"{name.lower()}@{division_name.lower().replace(' ', '-')}.test",
                level_order=order,
            )
            db_session.add(level)
            levels.append(level)
        db_session.commit()
        return division, levels
    return _make


@pytest.fixture(scope='function')
def chain(make_chain):
    """Division with [Supervisor(1), Manager(2)]."""
    return make_chain()


@pytest.fixture(scope='function')
def products(db_session):
    """Product A (stock 10) and product B (stock 5)."""
    product_a = Product(code="PRD-A", name="Semen 50kg", unit="sak", stock_quantity=10)
    product_b = Product(code="PRD-B", name="Besi 10mm", unit="batang", stock_quantity=5)
    db_session.add_all([product_a, product_b])
    db_session.commit()
    return product_a, product_b


@pytest.fixture(scope='function')
def make_note(db_session, products):
    """Factory: submit a delivery note through delivery_service."""
    def _make(division, items=None, customer_name="PT Maju Jaya"):
        product_a, product_b = products
        if items is None:
            items = [
                {"product_id": product_a.id, "quantity": 5},
                {"product_id": product_b.id, "quantity": 2},
            ]
        note, _ = delivery_service.create_delivery_note({
            "customer_name": customer_name,
            "customer_address": "Jl. Industri No. 1",
            "division_id": division.id,
            "delivery_date": "2026-10-20",
            "items": items,
        })
        return note
    return _make
