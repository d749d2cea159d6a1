import os
from pathlib import Path
from typing import Any, Iterator
from unittest.mock import MagicMock

import pytest
from testcontainers.postgres import PostgresContainer
from alembic.config import Config
from alembic import command
from fastapi.testclient import TestClient

# Ensure allowed environment for env_loader
os.environ.setdefault("ENV", "dev")

# Legacy-provider tokens the mocked validator accepts, with the claims it returns.
# Reconciliation itself is real, so these become rows in the users table.
TOKEN_CLAIMS: dict[str, dict[str, Any]] = {
    "u1_token": {
        "sub": "e2eOwnerUid",
        "user_id": "e2eOwnerUid",
        "email": "u1@example.com",
        "name": "User One",
    },
    "u2_token": {
        "sub": "e2eOtherUid",
        "user_id": "e2eOtherUid",
        "email": "u2@example.com",
        "name": "User Two",
    },
    "admin_token": {
        "sub": "e2eAdminUid",
        "user_id": "e2eAdminUid",
        "email": "admin@example.com",
        "custom_role": "admin",
    },
}


@pytest.fixture(scope="session")
def db_url() -> Iterator[str]:
    """Start a Postgres container, run migrations, and return the DB URL."""
    with PostgresContainer("postgres:16") as pg:
        raw_url = pg.get_connection_url()
        # Normalize to psycopg3-compatible URL if needed
        url = raw_url.replace("postgresql+psycopg2://", "postgresql://")
        os.environ["DATABASE_URL"] = url

        # Run Alembic migrations against this database
        api_dir = Path(__file__).resolve().parents[2]
        alembic_cfg = Config(str(api_dir / "alembic.ini"))
        command.upgrade(alembic_cfg, "head")

        yield url


@pytest.fixture(scope="session")
def _mock_identity(db_url: str) -> Iterator[None]:
    """Session-scoped token mocking for E2E tests.

    Only signature verification is replaced; accounts are reconciled against
    the real database. Must depend on db_url so the DB is ready first.
    """
    from sopmaker.app import identity

    original_validate = identity.validate_firebase_token

    def mock_validate(token: str) -> dict[str, Any] | None:
        claims = TOKEN_CLAIMS.get(token)
        return dict(claims) if claims else None

    identity.validate_firebase_token = mock_validate  # type: ignore[assignment]

    yield

    identity.validate_firebase_token = original_validate  # type: ignore[assignment]


@pytest.fixture(scope="session")
def storage() -> MagicMock:
    """Object storage stand-in; uploads succeed and return a public URL."""
    mock = MagicMock()
    mock.upload.side_effect = (
        lambda path, content, content_type: f"https://storage.test/public/{path}"
    )
    mock.public_url.side_effect = lambda path: f"https://storage.test/public/{path}"
    return mock


@pytest.fixture(scope="session")
def _app(db_url: str, _mock_identity: None, storage: MagicMock):
    from sopmaker.app.app import app
    from sopmaker.app.dependencies import storage_client

    app.dependency_overrides[storage_client] = lambda: storage
    yield app
    app.dependency_overrides.pop(storage_client, None)


def _client(app, token: str | None = None) -> TestClient:
    client = TestClient(app)
    if token:
        client.headers = {"Authorization": f"Bearer {token}"}
    return client


@pytest.fixture(scope="session")
def client(_app) -> TestClient:
    """Unauthenticated test client."""
    return _client(_app)


@pytest.fixture(scope="session")
def u1_client(_app) -> TestClient:
    return _client(_app, "u1_token")


@pytest.fixture(scope="session")
def u2_client(_app) -> TestClient:
    return _client(_app, "u2_token")


@pytest.fixture(scope="session")
def admin_client(_app) -> TestClient:
    return _client(_app, "admin_token")
