"""Shared dependencies for API endpoints.

Access guard: bearer-token authentication (required and optional), flat
role checks, and ownership checks. The authenticated principal is passed
to handlers as a typed AuthContext.

App-scoped services (settings, token service, session service) are
created once in create_app() and read from app.state here.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Annotated, Any

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import OAuthCredentials, Settings
from app.core.database import STORE_UNAVAILABLE_ERRORS, get_db
from app.core.errors import ForbiddenError, UnauthenticatedError
from app.core.oauth_client import OAuthProviderAdapter
from app.core.tokens import (
    CredentialError,
    TokenClaims,
    TokenClass,
    TokenService,
    extract_bearer,
)
from app.models.account import Account, AccountRole
from app.repositories.account_repository import AccountRepository
from app.services.session_service import SessionService

logger = logging.getLogger(__name__)

# Generic 401 message, intentionally vague to prevent information leakage.
# Security: Never include specifics about WHY auth failed (expired, bad sig, etc.).
_UNAUTHENTICATED_MESSAGE = "Authentication required"


@dataclass(frozen=True)
class AuthContext:
    """Authenticated principal for the current request.

    Attributes:
        account: Account loaded from the store for this request.
        claims: Verified access-token claims.
    """

    account: Account
    claims: TokenClaims

    @property
    def account_id(self) -> uuid.UUID:
        return self.account.id

    @property
    def role(self) -> AccountRole:
        return AccountRole(self.account.role)


# =============================================================================
# App-scoped services
# =============================================================================


def get_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    """Application-wide token service."""
    return request.app.state.token_service


def get_session_service(request: Request) -> SessionService:
    """Application-wide session service."""
    return request.app.state.session_service


OAuthAdapterFactory = Callable[[str, OAuthCredentials], OAuthProviderAdapter]


def get_oauth_adapter_factory(request: Request) -> OAuthAdapterFactory:
    """Return a factory building provider adapters.

    Uses the optional httpx transport stored on app.state.oauth_transport.
    """
    transport: httpx.AsyncBaseTransport | None = getattr(
        request.app.state, "oauth_transport", None
    )

    def _factory(provider: str, credentials: OAuthCredentials) -> OAuthProviderAdapter:
        return OAuthProviderAdapter(provider, credentials, transport=transport)

    return _factory


# Reusable type aliases for dependency injection
AppSettings = Annotated[Settings, Depends(get_settings)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Tokens = Annotated[TokenService, Depends(get_token_service)]
Sessions = Annotated[SessionService, Depends(get_session_service)]
AdapterFactory = Annotated[OAuthAdapterFactory, Depends(get_oauth_adapter_factory)]


# =============================================================================
# Authentication
# =============================================================================


async def _authenticate(
    token: str | None,
    db: AsyncSession,
    tokens: TokenService,
) -> AuthContext:
    if token is None:
        raise UnauthenticatedError(_UNAUTHENTICATED_MESSAGE)

    try:
        claims = tokens.verify(token, TokenClass.ACCESS)
        account_id = uuid.UUID(claims.account_id)
    except (CredentialError, ValueError) as exc:
        raise UnauthenticatedError(_UNAUTHENTICATED_MESSAGE) from exc

    account = await AccountRepository.get_by_id(db, account_id)
    if account is None:
        raise UnauthenticatedError(_UNAUTHENTICATED_MESSAGE)

    return AuthContext(account=account, claims=claims)


async def get_auth_context(
    request: Request,
    db: DbSession,
    tokens: Tokens,
) -> AuthContext:
    """Require a valid bearer access token for an existing account.

    Validation steps:
    1. Read the token from the Authorization: Bearer header
    2. Verify signature, structure and expiry
    3. Load the account named by the accountId claim

    Raises:
        UnauthenticatedError: 401 for any failure in the steps above.
    """
    token = extract_bearer(request.headers.get("Authorization"))
    return await _authenticate(token, db, tokens)


async def get_optional_auth_context(
    request: Request,
    db: DbSession,
    tokens: Tokens,
) -> AuthContext | None:
    """Like get_auth_context, but yields None instead of failing.

    Credential failures are silent. Store failures are logged at warning
    level and also yield None.
    """
    token = extract_bearer(request.headers.get("Authorization"))
    if token is None:
        return None

    try:
        return await _authenticate(token, db, tokens)
    except UnauthenticatedError:
        return None
    except STORE_UNAVAILABLE_ERRORS:
        logger.warning("Optional authentication skipped: store unavailable")
        return None


CurrentAuth = Annotated[AuthContext, Depends(get_auth_context)]
OptionalAuth = Annotated[AuthContext | None, Depends(get_optional_auth_context)]


# =============================================================================
# Authorization
# =============================================================================


def require_roles(
    *roles: AccountRole,
) -> Callable[[AuthContext], Awaitable[AuthContext]]:
    """Build a dependency admitting only accounts with one of the roles.

    Usage:
        AdminAuth = Annotated[AuthContext, Depends(require_roles(AccountRole.ADMIN))]
    """
    allowed = frozenset(AccountRole(role).value for role in roles)

    async def _require_roles(auth: CurrentAuth) -> AuthContext:
        if auth.account.role not in allowed:
            raise ForbiddenError("Insufficient permissions")
        return auth

    return _require_roles


async def _owner_from_body(request: Request, owner_field: str) -> Any:
    if not await request.body():
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    return body.get(owner_field)


def _same_account(owner_id: Any, account_id: uuid.UUID) -> bool:
    try:
        return uuid.UUID(str(owner_id)) == account_id
    except ValueError:
        return False


def require_ownership(
    owner_field: str,
) -> Callable[[Request, AuthContext], Awaitable[AuthContext]]:
    """Build a dependency admitting the resource owner or an admin.

    The owner id is read from the path parameters first, then from the
    JSON body.

    Raises:
        ForbiddenError: If no owner id is present, or the account is
            neither that owner nor an admin.
    """

    async def _require_ownership(request: Request, auth: CurrentAuth) -> AuthContext:
        owner_id = request.path_params.get(owner_field)
        if owner_id is None:
            owner_id = await _owner_from_body(request, owner_field)
        if owner_id is None:
            raise ForbiddenError("Resource owner could not be determined")

        if auth.role is AccountRole.ADMIN or _same_account(owner_id, auth.account_id):
            return auth
        raise ForbiddenError("You do not have access to this resource")

    return _require_ownership


AdminAuth = Annotated[AuthContext, Depends(require_roles(AccountRole.ADMIN))]
