"""Database operations for accounts and identity reconciliation."""

import logging
from typing import Optional
from uuid import UUID

from sopmaker.models.account import Account, IdentityAssertion, Role
from .connection import get_db_cursor
from .identity_mappings import get_or_create_mapping

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL_DOMAIN = "users.noreply.sopmaker.local"

_ACCOUNT_COLUMNS = (
    "id, firebase_uid, email, name, avatar_url, role, created_at, updated_at"
)


def get_account_by_id(account_id: UUID) -> Optional[Account]:
    """Get an account by its canonical id."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE id = %s",
            (str(account_id),),
        )
        row = cursor.fetchone()
        return _row_to_account(row) if row else None


def get_account_by_firebase_uid(firebase_uid: str) -> Optional[Account]:
    """Get an account by its legacy identity-provider UID."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE firebase_uid = %s",
            (firebase_uid,),
        )
        row = cursor.fetchone()
        return _row_to_account(row) if row else None


def create_account(
    account_id: UUID,
    email: Optional[str],
    name: Optional[str],
    avatar_url: Optional[str] = None,
    role: Role = "viewer",
    firebase_uid: Optional[str] = None,
) -> Account:
    """Create a new account record.

    If a concurrent request inserted the same account first, the existing row
    is returned instead of failing.

    Args:
        account_id: Canonical id for the account.
        email: Cached email from the identity provider.
        name: Cached display name.
        avatar_url: Cached avatar URL.
        role: Initial role, defaults to 'viewer'.
        firebase_uid: Legacy-provider UID, if the account came from that provider.

    Returns:
        The created (or concurrently created) Account.
    """
    logger.info(f"Creating account id={account_id} firebase_uid={firebase_uid}")

    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            INSERT INTO users (id, firebase_uid, email, name, avatar_url, role)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT DO NOTHING
            RETURNING {_ACCOUNT_COLUMNS}
            """,
            (str(account_id), firebase_uid, email, name, avatar_url, role),
        )
        row = cursor.fetchone()
        if row is None:
            cursor.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE id = %s",
                (str(account_id),),
            )
            row = cursor.fetchone()
        return _row_to_account(row)


def update_account_profile(
    account_id: UUID,
    email: Optional[str],
    name: Optional[str],
    avatar_url: Optional[str],
    role: Optional[Role] = None,
) -> Optional[Account]:
    """Update an account's cached profile fields, and its role when given.

    Returns:
        The updated Account, or None if the account doesn't exist.
    """
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            UPDATE users
            SET email = %s, name = %s, avatar_url = %s, role = COALESCE(%s, role)
            WHERE id = %s
            RETURNING {_ACCOUNT_COLUMNS}
            """,
            (email, name, avatar_url, role, str(account_id)),
        )
        row = cursor.fetchone()
        return _row_to_account(row) if row else None


def reconcile_identity(assertion: IdentityAssertion) -> Account:
    """Map a verified identity onto its canonical account.

    This is the main entry point for identity handling during authentication.
    An existing account has its cached profile refreshed (and its role, if the
    token carried a recognized role claim). An unseen identity gets a new
    account with the claimed role, or 'viewer'.

    Legacy-provider UIDs that aren't UUIDs are translated through the
    identity mapping table. Calling this twice with the same subject always
    returns the same account id.

    Raises:
        ValueError: If a primary-provider subject is not a UUID.
    """
    email = assertion.email or f"{assertion.subject}@{PLACEHOLDER_EMAIL_DOMAIN}"
    name = assertion.name or (assertion.email or "").split("@")[0] or "Anonymous User"

    if assertion.provider == "firebase":
        existing = get_account_by_firebase_uid(assertion.subject)
    else:
        existing = get_account_by_id(UUID(assertion.subject))

    if existing:
        return _refresh_profile(existing, email, name, assertion)

    if assertion.provider == "firebase":
        canonical_id = _canonical_id_for_firebase_uid(assertion.subject)
        firebase_uid: Optional[str] = assertion.subject
    else:
        canonical_id = UUID(assertion.subject)
        firebase_uid = None

    return create_account(
        canonical_id,
        email=email,
        name=name,
        avatar_url=assertion.avatar_url,
        role=assertion.role_claim or "viewer",
        firebase_uid=firebase_uid,
    )


def _canonical_id_for_firebase_uid(firebase_uid: str) -> UUID:
    try:
        return UUID(firebase_uid)
    except ValueError:
        return get_or_create_mapping(firebase_uid)


def _refresh_profile(
    existing: Account, email: str, name: str, assertion: IdentityAssertion
) -> Account:
    # Keep a stored name/avatar when the provider stops sending one.
    name = assertion.name or existing.name or name
    avatar_url = assertion.avatar_url or existing.avatar_url
    role = assertion.role_claim if assertion.role_claim != existing.role else None

    if (
        existing.email == email
        and existing.name == name
        and existing.avatar_url == avatar_url
        and role is None
    ):
        return existing

    logger.debug(f"Updating profile for account {existing.id}")
    updated = update_account_profile(existing.id, email, name, avatar_url, role=role)
    return updated or existing


def _row_to_account(row) -> Account:
    """Convert a database row to an Account object."""
    id, firebase_uid, email, name, avatar_url, role, created_at, updated_at = row
    return Account(
        id=id,
        firebase_uid=firebase_uid,
        email=email,
        name=name,
        avatar_url=avatar_url,
        role=role,
        created_at=created_at,
        updated_at=updated_at,
    )
