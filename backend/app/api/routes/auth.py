"""Session endpoints.

GET /auth/me, POST /auth/refresh, POST /auth/logout, DELETE /auth/account.

Tokens are stateless JWTs: logout only records an audit entry and the
client discards its pair.
"""

from fastapi import APIRouter, Request

from app.api.deps import CurrentAuth, DbSession, Sessions
from app.core.rate_limiting import REFRESH_RATE_LIMIT, limiter
from app.core.responses import DataResponse, MessageResponse
from app.schemas.account import AccountSnapshot, RefreshRequest, TokenPairSchema

router = APIRouter()


# ===================================================================
# GET /auth/me - Current account
# ===================================================================


@router.get("/me")
async def get_me(
    auth: CurrentAuth,
    db: DbSession,
    sessions: Sessions,
) -> DataResponse[AccountSnapshot]:
    """Return the authenticated account."""
    account = await sessions.get_current_account(db, auth.account_id)
    return DataResponse(data=account)


# ===================================================================
# POST /auth/refresh - Rotate token pair
# ===================================================================


@router.post("/refresh")
@limiter.limit(REFRESH_RATE_LIMIT)
async def refresh_tokens(
    request: Request,
    body: RefreshRequest,
    db: DbSession,
    sessions: Sessions,
) -> DataResponse[TokenPairSchema]:
    """Exchange a refresh token for a new access + refresh pair.

    The new pair reflects the account's current email and role.
    """
    tokens = await sessions.refresh(db, body.refresh_token)
    return DataResponse(
        data=TokenPairSchema(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        )
    )


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(auth: CurrentAuth, sessions: Sessions) -> MessageResponse:
    """Acknowledge logout. The client discards its tokens."""
    sessions.logout(auth.account_id)
    return MessageResponse(message="Logged out successfully")


# ===================================================================
# DELETE /auth/account
# ===================================================================


@router.delete("/account")
async def delete_account(
    auth: CurrentAuth,
    db: DbSession,
    sessions: Sessions,
) -> MessageResponse:
    """Delete the authenticated account and all of its identities."""
    await sessions.delete_account(db, auth.account_id)
    return MessageResponse(message="Account deleted successfully")
