"""
Pytest fixtures for docledger backend tests.

Provides the app on an in-memory database, a clean documents table per test,
a seeded tenant (categories, products, suppliers) and a helper for inducing
store failures.
"""

import pytest

from docledger import create_app
from docledger.extensions import db
from docledger.models import Actor, Document
from docledger.services.document_store import DocumentStore, DocumentStoreError, get_store


TENANT = "t1"
OTHER_TENANT = "t2"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty the documents table before each test."""
    db.session.execute(Document.__table__.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    return get_store()


@pytest.fixture(scope='function')
def actor():
    return Actor(user_id="u1", name="Test User", role="admin")


@pytest.fixture(scope='function')
def tenant(store):
    """Seed tenant t1 with the reference documents the services look up."""
    docs = [
        {"_id": f"{TENANT}:category:salary", "name": "Salary", "type": "income"},
        {"_id": f"{TENANT}:category:rent", "name": "Rent", "type": "expense"},
        {"_id": f"{TENANT}:category:transfers", "name": "Internal transfers", "type": "expense"},
        {
            "_id": f"{TENANT}:product:widget",
            "sku": "WID-1",
            "name": "Widget",
            "minimumStockLevel": 10,
            "unitsOfMeasure": [
                {"name": "piece", "priceTiers": {"retail": 500, "wholesale": 400, "dealer": 350}},
            ],
        },
        {"_id": f"{TENANT}:product:gadget", "sku": "GAD-1", "name": "Gadget", "minimumStockLevel": 0},
        {"_id": f"{TENANT}:supplier:acme", "name": "Acme Supplies", "email": "orders@acme.test", "status": "active"},
        {"_id": f"{TENANT}:supplier:dormant", "name": "Dormant Ltd", "status": "inactive"},
        {"_id": f"{OTHER_TENANT}:product:widget", "sku": "WID-1", "name": "Other tenant widget"},
    ]
    for doc in docs:
        store.insert(doc)
    return TENANT


@pytest.fixture(scope='function')
def fail_writes(monkeypatch):
    """
    Make DocumentStore.insert (or .destroy) raise DocumentStoreError for
    matching calls.

    `match` receives the document (insert) or the document id (destroy).
    `skip` lets that many matching calls through first; `times` caps the
    number of induced failures. Returns a dict counting induced failures.
    """
    def _install(match, *, method="insert", skip=0, times=None):
        original = getattr(DocumentStore, method)
        state = {"seen": 0, "failures": 0}

        def _patched(self, target, *args, **kwargs):
            if match(target):
                state["seen"] += 1
                if state["seen"] > skip and (times is None or state["failures"] < times):
                    state["failures"] += 1
                    raise DocumentStoreError(f"induced {method} failure")
            return original(self, target, *args, **kwargs)

        monkeypatch.setattr(DocumentStore, method, _patched)
        return state

    return _install


def kind_is(kind):
    return lambda doc: isinstance(doc, dict) and doc.get("kind") == kind


def id_is(doc_id):
    return lambda target: (target.get("_id") if isinstance(target, dict) else target) == doc_id
