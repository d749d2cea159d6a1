from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from sopmaker.models.account import IdentityProvider, Role
from .env_loader import EnvironmentName


class EnvironmentResponse(BaseModel):
    """Response model for the environment endpoint."""

    environment: EnvironmentName


class AuthStatusResponse(BaseModel):
    """Who the current request is authenticated as, if anyone."""

    authenticated: bool
    account_id: Optional[UUID] = None
    role: Optional[Role] = None
    provider: Optional[IdentityProvider] = None


class AdminCheckResponse(BaseModel):
    is_admin: bool


class MessageResponse(BaseModel):
    message: str
