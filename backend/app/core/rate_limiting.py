"""Rate limiting configuration using slowapi.

Requests carrying a valid access token are keyed per account so players
behind a shared IP do not throttle each other. Everything else falls back
to IP-based keying.

Usage in routers:
    from app.core.rate_limiting import limiter

    @router.post("/refresh")
    @limiter.limit(REFRESH_RATE_LIMIT)
    async def refresh(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.responses import ErrorResponse
from app.core.tokens import CredentialError, TokenClass, TokenService, extract_bearer

OAUTH_INITIATE_RATE_LIMIT = "10/minute"
OAUTH_CALLBACK_RATE_LIMIT = "20/minute"
REFRESH_RATE_LIMIT = "30/minute"


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid bearer access token: "account:{accountId}"
    - No/invalid token: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    # Full auth validation happens in deps.py; keying only needs the claim.
    token = extract_bearer(request.headers.get("Authorization"))
    token_service: TokenService | None = getattr(
        request.app.state, "token_service", None
    )
    if token and token_service is not None:
        try:
            claims = token_service.verify(token, TokenClass.ACCESS)
        except CredentialError:
            pass
        else:
            return f"account:{claims.account_id}"

    return f"unauth:{get_remote_address(request)}"


# Global limiter instance. create_app() toggles `enabled` from settings.
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(key_func=_rate_limit_key_func)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns 429 Too Many Requests with the standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        # Validate it looks like a time value
        int(retry_after.rstrip("s"))  # "60" or "60s" -> 60
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content=ErrorResponse(
            code="RATE_LIMITED",
            message=f"Rate limit exceeded: {exc.detail}",
        ).model_dump(exclude_none=True),
        headers={"Retry-After": retry_after},
    )
