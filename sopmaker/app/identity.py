"""Session and bearer-token verification, and request caller resolution.

Two identity providers are accepted while the legacy one is phased out:

- the primary provider's session cookie, an HS256 JWT signed with the
  project's JWT secret whose `sub` is already the canonical account id;
- the legacy provider's ID token, sent as `Authorization: Bearer`, an RS256
  JWT verified against the provider's published signing keys.

Either way the verified identity is reconciled onto a canonical Account
before any authorization check runs.
"""

import os
import time
import logging
from typing import Optional, Dict, Any

import jwt
from jwt import PyJWKClient
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from sopmaker.db.accounts import reconcile_identity
from sopmaker.models.account import (
    Caller,
    IdentityAssertion,
    IdentityProvider,
    parse_role_claim,
)
from .env_loader import legacy_auth_disabled
from .errors import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)

FIREBASE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/"
    "securetoken@system.gserviceaccount.com"
)
FIREBASE_ROLE_CLAIM = "custom_role"

# JWKS client cache
_jwks_client: Optional[PyJWKClient] = None
_jwks_cache_time: float = 0
JWKS_CACHE_DURATION = 3600  # 1 hour


def get_session_cookie_name() -> str:
    return os.getenv("SESSION_COOKIE_NAME", "sb-access-token")


def get_session_jwt_secret() -> str:
    """Secret used to sign primary-provider session tokens.

    This is a required environment variable validated at startup.
    """
    return os.environ["SUPABASE_JWT_SECRET"]


def get_session_audience() -> str:
    return os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")


def get_firebase_project_id() -> str:
    return os.environ["FIREBASE_PROJECT_ID"]


def get_jwks_client() -> PyJWKClient:
    """Get or refresh the JWKS client for legacy-provider tokens."""
    global _jwks_client, _jwks_cache_time

    current_time = time.time()
    if _jwks_client is None or (current_time - _jwks_cache_time) > JWKS_CACHE_DURATION:
        _jwks_client = PyJWKClient(
            FIREBASE_JWKS_URL, cache_keys=True, lifespan=JWKS_CACHE_DURATION
        )
        _jwks_cache_time = current_time
        logger.info(f"Refreshed JWKS client from {FIREBASE_JWKS_URL}")

    return _jwks_client


def validate_session_token(token: str) -> Optional[Dict[str, Any]]:
    """Validate a primary-provider session token.

    Returns decoded claims if valid, None if invalid.
    """
    try:
        return jwt.decode(
            token,
            get_session_jwt_secret(),
            algorithms=["HS256"],
            audience=get_session_audience(),
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Session token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid session token: {e}")
        return None


def validate_firebase_token(token: str) -> Optional[Dict[str, Any]]:
    """Validate a legacy-provider ID token locally using its JWKS.

    Returns decoded claims if valid, None if invalid or if the legacy
    provider has been switched off.
    """
    if legacy_auth_disabled():
        logger.debug("Legacy provider disabled; ignoring bearer token")
        return None
    try:
        jwks_client = get_jwks_client()
        signing_key = jwks_client.get_signing_key_from_jwt(token)

        project_id = get_firebase_project_id()
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=f"https://securetoken.google.com/{project_id}",
            audience=project_id,
            options={"require": ["exp", "iss", "sub", "aud"]},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Legacy ID token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid legacy ID token: {e}")
        return None
    except jwt.PyJWKClientError as e:
        logger.error(f"Could not fetch legacy signing keys: {e}")
        return None


def session_assertion(claims: Dict[str, Any]) -> IdentityAssertion:
    """Build an identity assertion from primary-provider session claims."""
    user_metadata = claims.get("user_metadata") or {}
    app_metadata = claims.get("app_metadata") or {}
    return IdentityAssertion(
        subject=claims["sub"],
        provider="supabase",
        email=claims.get("email"),
        name=user_metadata.get("full_name") or user_metadata.get("name"),
        avatar_url=user_metadata.get("avatar_url"),
        role_claim=parse_role_claim(app_metadata.get("role")),
    )


def firebase_assertion(claims: Dict[str, Any]) -> IdentityAssertion:
    """Build an identity assertion from legacy-provider ID token claims."""
    role_claim = parse_role_claim(claims.get(FIREBASE_ROLE_CLAIM))
    if role_claim is None:
        logger.debug(
            f"Claim '{FIREBASE_ROLE_CLAIM}' missing or invalid for {claims.get('sub')}"
        )
    return IdentityAssertion(
        subject=claims.get("user_id") or claims["sub"],
        provider="firebase",
        email=claims.get("email"),
        name=claims.get("name"),
        avatar_url=claims.get("picture"),
        role_claim=role_claim,
    )


def _caller_from_claims(
    claims: Dict[str, Any], provider: IdentityProvider
) -> Optional[Caller]:
    try:
        if provider == "supabase":
            assertion = session_assertion(claims)
        else:
            assertion = firebase_assertion(claims)
        account = reconcile_identity(assertion)
    except (KeyError, ValueError) as e:
        logger.warning(f"Rejected {provider} token with unusable subject: {e}")
        return None
    return Caller(account=account, provider=provider)


def resolve_bearer_caller(token: str) -> Optional[Caller]:
    """Reconcile a legacy-provider ID token onto its Account, or return None."""
    claims = validate_firebase_token(token)
    if not claims:
        return None
    return _caller_from_claims(claims, "firebase")


def resolve_caller(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[Caller]:
    """Work out who is calling, trying the session cookie before a bearer token.

    Returns None when neither credential is present and valid.
    """
    session_token = request.cookies.get(get_session_cookie_name())
    if session_token:
        claims = validate_session_token(session_token)
        if claims:
            caller = _caller_from_claims(claims, "supabase")
            if caller:
                return caller

    if credentials:
        return resolve_bearer_caller(credentials.credentials)

    return None


def get_optional_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Caller]:
    """FastAPI dependency returning the caller, or None for anonymous requests."""
    caller = resolve_caller(request, credentials)
    request.state.caller = caller
    return caller


def get_current_caller(
    caller: Optional[Caller] = Depends(get_optional_caller),
) -> Caller:
    """FastAPI dependency requiring an authenticated caller.

    Raises:
        UnauthorizedError: If no valid session cookie or bearer token was sent.
    """
    if caller is None:
        raise UnauthorizedError("Missing or invalid credentials")
    return caller


def require_viewer(caller: Caller = Depends(get_current_caller)) -> Caller:
    """Any authenticated account (viewer, editor or admin)."""
    return caller


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    """Admins only.

    Raises:
        ForbiddenError: If the caller is not an admin.
    """
    if not caller.account.is_admin:
        raise ForbiddenError("Admin access required")
    return caller
