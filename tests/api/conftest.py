"""API test fixtures: the real app and services over the in-memory ledger database."""

import pytest
from starlette.testclient import TestClient

from api.app import build_services, create_app
from core.event_bus import EventBus
from core.events import LedgerEvent


@pytest.fixture
def published():
    return []


@pytest.fixture
def services(ledger_db, published):
    event_bus = EventBus()
    event_bus.subscribe(LedgerEvent, published.append)
    return build_services(ledger_db, event_bus=event_bus)


@pytest.fixture
def app(services):
    return create_app(services)


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def invoice(ledger_db, company, customer):
    return ledger_db.add_invoice(company["id"], customer["id"], total="1000.00")


@pytest.fixture
def credit_note(ledger_db, company, customer):
    return ledger_db.add_credit_note(company["id"], customer["id"], total="300.00")


@pytest.fixture
def post_action(client):
    """POST an action, stringifying UUIDs and amounts."""
    def post(domain: str, name: str, **data):
        payload = {k: str(v) if v is not None else None for k, v in data.items()}
        return client.post("/api/actions", json={"domain": domain, "action": name, "data": payload})
    return post
