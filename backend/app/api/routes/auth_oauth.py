"""OAuth authentication endpoints.

Initiation and callback for Google, Discord and Twitch. Uses PKCE where
the provider supports it and a signed state cookie for CSRF protection.

The callback never answers with an error envelope: every outcome is a
redirect to the frontend, carrying either the token pair or an error code.
"""

import logging
import secrets
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from starlette.responses import Response

from app.api.deps import AdapterFactory, AppSettings, DbSession, Sessions
from app.core.account_linking import resolve_account
from app.core.config import SUPPORTED_PROVIDERS, Settings
from app.core.database import STORE_UNAVAILABLE_ERRORS
from app.core.errors import (
    ConflictRetryExhaustedError,
    NotFoundError,
    StoreUnavailableError,
)
from app.core.oauth import (
    OAUTH_STATE_COOKIE,
    OAuthProfileError,
    create_oauth_state_cookie,
    generate_code_challenge,
    generate_code_verifier,
    validate_oauth_state_cookie,
)
from app.core.rate_limiting import (
    OAUTH_CALLBACK_RATE_LIMIT,
    OAUTH_INITIATE_RATE_LIMIT,
    limiter,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Cookie lifetime matches the state JWT expiry (10 minutes)
_STATE_COOKIE_MAX_AGE = 600

# Callback error codes sent to the frontend
ERROR_ACCESS_DENIED = "access_denied"
ERROR_INVALID_STATE = "invalid_state"
ERROR_PROVIDER_DISABLED = "provider_disabled"
ERROR_OAUTH_FAILED = "oauth_failed"
ERROR_MISSING_EMAIL = "missing_email"
ERROR_SERVER = "server_error"


def _state_secret(settings: Settings) -> str:
    return settings.jwt_access_secret.get_secret_value()


def _state_cookie_path(settings: Settings) -> str:
    return f"{settings.api_prefix}/auth"


def _frontend_redirect(settings: Settings, params: dict[str, str]) -> RedirectResponse:
    url = f"{settings.frontend_url.rstrip('/')}/auth/callback?{urlencode(params)}"
    redirect = RedirectResponse(url=url, status_code=307)
    redirect.delete_cookie(key=OAUTH_STATE_COOKIE, path=_state_cookie_path(settings))
    return redirect


def _error_redirect(settings: Settings, provider: str, error: str) -> RedirectResponse:
    logger.info(
        "OAuth callback failed",
        extra={"provider": provider, "error": error},
    )
    return _frontend_redirect(settings, {"error": error})


# ===================================================================
# GET /auth/{provider} - OAuth Initiation
# ===================================================================


@router.get("/{provider}")
@limiter.limit(OAUTH_INITIATE_RATE_LIMIT)
async def oauth_initiate(
    provider: str,
    request: Request,
    settings: AppSettings,
    adapter_factory: AdapterFactory,
) -> Response:
    """Redirect to the OAuth provider's authorization URL.

    Generates a PKCE code verifier + challenge and a state parameter,
    stores both in a signed cookie, and redirects to the provider.
    Disabled providers redirect straight back to the frontend with
    error=provider_disabled.

    Raises:
        NotFoundError: If the provider is not supported at all.
    """
    if provider not in SUPPORTED_PROVIDERS:
        raise NotFoundError("OAuth provider", provider)

    credentials = settings.provider_credentials(provider)
    if credentials is None:
        return _error_redirect(settings, provider, ERROR_PROVIDER_DISABLED)

    # Generate PKCE code verifier + challenge
    code_verifier = generate_code_verifier()
    code_challenge = generate_code_challenge(code_verifier)

    # Generate state parameter for CSRF protection
    state = secrets.token_urlsafe(32)

    state_cookie = create_oauth_state_cookie(
        state=state,
        code_verifier=code_verifier,
        secret=_state_secret(settings),
        ttl_seconds=_STATE_COOKIE_MAX_AGE,
    )

    adapter = adapter_factory(provider, credentials)
    auth_url = adapter.authorization_url(state, code_challenge)

    redirect = RedirectResponse(url=auth_url, status_code=307)
    redirect.set_cookie(
        key=OAUTH_STATE_COOKIE,
        value=state_cookie,
        httponly=True,
        secure=settings.oauth_state_cookie_secure,
        samesite="lax",
        max_age=_STATE_COOKIE_MAX_AGE,
        path=_state_cookie_path(settings),
    )
    return redirect


# ===================================================================
# GET /auth/{provider}/callback - OAuth Callback
# ===================================================================


@router.get("/{provider}/callback")
@limiter.limit(OAUTH_CALLBACK_RATE_LIMIT)
async def oauth_callback(
    provider: str,
    request: Request,
    settings: AppSettings,
    db: DbSession,
    sessions: Sessions,
    adapter_factory: AdapterFactory,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> Response:
    """Handle the provider callback after user consent.

    Validates state, exchanges the code for a profile, resolves the
    account (login, link or create), issues a token pair, and redirects
    to {frontend}/auth/callback?accessToken=...&refreshToken=...
    """
    # Provider reported an error (user denied consent, etc.)
    if error:
        return _error_redirect(settings, provider, ERROR_ACCESS_DENIED)

    credentials = (
        settings.provider_credentials(provider)
        if provider in SUPPORTED_PROVIDERS
        else None
    )
    if credentials is None:
        return _error_redirect(settings, provider, ERROR_PROVIDER_DISABLED)

    # Validate required parameters and state cookie
    state_cookie = request.cookies.get(OAUTH_STATE_COOKIE)
    if not code or not state or not state_cookie:
        return _error_redirect(settings, provider, ERROR_INVALID_STATE)

    code_verifier = validate_oauth_state_cookie(
        cookie_value=state_cookie,
        expected_state=state,
        secret=_state_secret(settings),
    )
    if code_verifier is None:
        return _error_redirect(settings, provider, ERROR_INVALID_STATE)

    # Exchange code for profile
    adapter = adapter_factory(provider, credentials)
    try:
        profile = await adapter.exchange_code(code, code_verifier)
    except (httpx.HTTPError, OAuthProfileError):
        logger.exception("OAuth code exchange failed", extra={"provider": provider})
        return _error_redirect(settings, provider, ERROR_OAUTH_FAILED)

    if not (profile.email or "").strip():
        return _error_redirect(settings, provider, ERROR_MISSING_EMAIL)

    # Find, link or create the account, then issue tokens
    try:
        account, outcome = await resolve_account(db, profile)
        result = await sessions.authenticate(db, account.id)
        await db.commit()
    except (
        ConflictRetryExhaustedError,
        StoreUnavailableError,
        NotFoundError,
        *STORE_UNAVAILABLE_ERRORS,
    ):
        await db.rollback()
        return _error_redirect(settings, provider, ERROR_SERVER)

    logger.info(
        "OAuth callback successful",
        extra={
            "account_id": str(account.id),
            "provider": provider,
            "outcome": outcome.value,
        },
    )
    return _frontend_redirect(
        settings,
        {
            "accessToken": result.tokens.access_token,
            "refreshToken": result.tokens.refresh_token,
        },
    )
