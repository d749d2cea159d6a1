"""Account model for application-level identity and roles."""

from __future__ import annotations
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


Role = Literal["admin", "editor", "viewer"]
IdentityProvider = Literal["supabase", "firebase"]

VALID_ROLES: tuple[Role, ...] = ("admin", "editor", "viewer")


def parse_role_claim(value: object) -> Role | None:
    """Return the role named by a token claim, or None if it isn't a known role."""
    if isinstance(value, str) and value in VALID_ROLES:
        return value  # type: ignore[return-value]
    return None


class Account(BaseModel):
    """Canonical identity record.

    The `id` is the stable key every other table references, regardless of
    which identity provider authenticated the user. `firebase_uid` is set for
    accounts first seen through the legacy provider.
    """

    id: UUID
    firebase_uid: str | None = None
    email: str | None
    name: str | None
    avatar_url: str | None = None
    role: Role
    created_at: datetime
    updated_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class IdentityAssertion(BaseModel):
    """A verified statement from an identity provider about who the caller is."""

    subject: str = Field(min_length=1)
    provider: IdentityProvider
    email: str | None = None
    name: str | None = None
    avatar_url: str | None = None
    role_claim: Role | None = None


class Caller(BaseModel):
    """The resolved identity attached to a request."""

    account: Account
    provider: IdentityProvider

    @property
    def account_id(self) -> UUID:
        return self.account.id

    @property
    def role(self) -> Role:
        return self.account.role
