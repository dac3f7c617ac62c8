"""
Pytest fixtures for tierstock backend tests.

Provides the in-memory test database, a tier of actors (HQ, master agent,
agent, branch, marketer), a product with tier prices, and a fake payment
gateway.
"""

import pytest

from tierstock import create_app
from tierstock.extensions import db
from tierstock.models import Actor, ActorRelationship, Product, Bundle, BundleItem
from tierstock.models.actors import (
    ROLE_HQ,
    ROLE_MASTER_AGENT,
    ROLE_AGENT,
    ROLE_BRANCH,
    ROLE_MARKETER,
)
from tierstock.errors import ExternalGatewayError
from tierstock.services.payment_gateway import GATEWAY_PENDING, PaymentGateway


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'HQ_ACTOR_ID': None,
        'PAYMENT_GATEWAY_URL': '',
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


def _actor(session, name, role, staff_code=None):
    actor = Actor(name=name, role=role, staff_code=staff_code, is_active=True)
    session.add(actor)
    session.commit()
    return actor


@pytest.fixture(scope='function')
def hq(db_session, app, monkeypatch):
    """HQ actor, also configured as HQ_ACTOR_ID."""
    actor = _actor(db_session, "Headquarters", ROLE_HQ, "HQ")
    monkeypatch.setitem(app.config, "HQ_ACTOR_ID", actor.id)
    return actor


@pytest.fixture(scope='function')
def master_agent(db_session):
    return _actor(db_session, "Master Agent One", ROLE_MASTER_AGENT, "MA-1")


@pytest.fixture(scope='function')
def agent(db_session, master_agent):
    """Agent assigned to master_agent."""
    actor = _actor(db_session, "Agent One", ROLE_AGENT, "AG-1")
    db_session.add(ActorRelationship(master_agent_id=master_agent.id, agent_id=actor.id))
    db_session.commit()
    return actor


@pytest.fixture(scope='function')
def branch(db_session):
    return _actor(db_session, "Branch North", ROLE_BRANCH, "BR-N")


@pytest.fixture(scope='function')
def marketer(db_session):
    return _actor(db_session, "Marketer One", ROLE_MARKETER, "MK-1")


@pytest.fixture(scope='function')
def product(db_session):
    """Product with a single-unit bundle: master agent 1000, agent 1500 (cents)."""
    product = Product(sku="SKU-A-1", name="Product A", base_cost_cents=400)
    db_session.add(product)
    db_session.flush()

    bundle = Bundle(name="Product A x1", master_agent_price_cents=1000, agent_price_cents=1500)
    bundle.items.append(BundleItem(product_id=product.id, units=1))
    db_session.add(bundle)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def other_product(db_session):
    product = Product(sku="SKU-B-2", name="Product B", base_cost_cents=600)
    db_session.add(product)
    db_session.commit()
    return product


class FakeGateway(PaymentGateway):
    """
    Payment gateway double.

    statuses maps payment reference -> gateway status, or an exception
    instance to raise. Unknown references are pending.
    """

    def __init__(self):
        self.statuses = {}
        self.calls = []

    def get_status(self, reference: str) -> str:
        self.calls.append(reference)
        status = self.statuses.get(reference, GATEWAY_PENDING)
        if isinstance(status, Exception):
            raise status
        return status


@pytest.fixture(scope='function')
def gateway(app, monkeypatch):
    """Fake gateway installed where the services look it up."""
    fake = FakeGateway()
    monkeypatch.setitem(app.extensions, "payment_gateway", fake)
    return fake


@pytest.fixture(scope='function')
def gateway_down():
    return ExternalGatewayError("Payment gateway unreachable: connection refused")
