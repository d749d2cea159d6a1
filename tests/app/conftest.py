from typing import Iterator
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from sopmaker.app.app import app
from sopmaker.models.account import Account, IdentityAssertion
from tests._factories import AccountFactory

# Accounts the mocked legacy provider knows about, keyed by bearer token.
OWNER_ID = UUID("00000000-0000-0000-0000-0000000000a1")
OTHER_ID = UUID("00000000-0000-0000-0000-0000000000b2")
EDITOR_ID = UUID("00000000-0000-0000-0000-0000000000c3")
ADMIN_ID = UUID("00000000-0000-0000-0000-0000000000d4")

_factory = AccountFactory()
TEST_ACCOUNTS: dict[str, Account] = {
    "owner_token": _factory.make({"id": OWNER_ID}),
    "other_token": _factory.make(
        {"id": OTHER_ID, "email": "other@example.com", "name": "Other"}
    ),
    "editor_token": _factory.make(
        {"id": EDITOR_ID, "email": "editor@example.com", "name": "Editor", "role": "editor"}
    ),
    "admin_token": _factory.make(
        {"id": ADMIN_ID, "email": "admin@example.com", "name": "Admin", "role": "admin"}
    ),
}


@pytest.fixture(scope="function")
def mock_identity() -> Iterator[dict[str, Account]]:
    """Replace token validation and reconciliation with a fixed token table.

    Mock at the location where they're used, not where they're defined.
    """

    def mock_validate(token: str):
        if token in TEST_ACCOUNTS:
            return {"sub": token, "user_id": token, "email": "test@example.com"}
        return None

    def mock_reconcile(assertion: IdentityAssertion) -> Account:
        return TEST_ACCOUNTS[assertion.subject]

    from sopmaker.app import identity

    original_validate = identity.validate_firebase_token
    original_reconcile = identity.reconcile_identity
    identity.validate_firebase_token = mock_validate  # type: ignore[assignment]
    identity.reconcile_identity = mock_reconcile  # type: ignore[assignment]

    try:
        yield TEST_ACCOUNTS
    finally:
        identity.validate_firebase_token = original_validate  # type: ignore[assignment]
        identity.reconcile_identity = original_reconcile  # type: ignore[assignment]


def _client_with_token(token: str) -> TestClient:
    client = TestClient(app)
    client.headers = {"Authorization": f"Bearer {token}"}
    return client


@pytest.fixture(scope="function")
def client(mock_identity) -> TestClient:
    """Unauthenticated test client."""
    return TestClient(app)


@pytest.fixture(scope="function")
def owner_client(mock_identity) -> TestClient:
    """Viewer who owns the factory SOP."""
    return _client_with_token("owner_token")


@pytest.fixture(scope="function")
def other_client(mock_identity) -> TestClient:
    """Viewer who owns nothing."""
    return _client_with_token("other_token")


@pytest.fixture(scope="function")
def editor_client(mock_identity) -> TestClient:
    return _client_with_token("editor_token")


@pytest.fixture(scope="function")
def admin_client(mock_identity) -> TestClient:
    return _client_with_token("admin_token")
