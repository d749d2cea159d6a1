from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials

from sopmaker.app.auth import get_optional_caller, require_viewer
from sopmaker.app.errors import UnauthorizedError
from sopmaker.app.identity import bearer_scheme, resolve_bearer_caller
from sopmaker.app.models import AdminCheckResponse, AuthStatusResponse
from sopmaker.models.account import Account, Caller

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/sync", response_model=Account)
def sync_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Account:
    """Create or refresh the Account for a legacy-provider ID token."""
    if credentials is None:
        raise UnauthorizedError("No authorization token provided")
    caller = resolve_bearer_caller(credentials.credentials)
    if caller is None:
        raise UnauthorizedError("Invalid token")
    return caller.account


@router.get("/status", response_model=AuthStatusResponse)
def auth_status(
    caller: Optional[Caller] = Depends(get_optional_caller),
) -> AuthStatusResponse:
    """Report who the request is authenticated as. Never fails with 401."""
    if caller is None:
        return AuthStatusResponse(authenticated=False)
    return AuthStatusResponse(
        authenticated=True,
        account_id=caller.account_id,
        role=caller.role,
        provider=caller.provider,
    )


@router.get("/check-admin", response_model=AdminCheckResponse)
def check_admin(caller: Caller = Depends(require_viewer)) -> AdminCheckResponse:
    return AdminCheckResponse(is_admin=caller.account.is_admin)
