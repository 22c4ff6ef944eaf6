"""Account profile and linked-identity endpoints.

/users/me routes are registered before the /users/{account_id} routes so
that "me" is never parsed as an account id.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.deps import (
    AdminAuth,
    AuthContext,
    CurrentAuth,
    DbSession,
    OptionalAuth,
    require_ownership,
)
from app.core.config import SUPPORTED_PROVIDERS
from app.core.errors import BadRequestError, NotFoundError
from app.core.responses import DataResponse, MessageResponse
from app.models.account import AccountRole
from app.repositories.account_repository import AccountRepository
from app.schemas.account import (
    AccountProfile,
    AccountSnapshot,
    ChangeRoleRequest,
    IdentitySchema,
    PublicAccount,
    UpdateProfileRequest,
)
from app.services import account_service

router = APIRouter()

OwnerAuth = Annotated[AuthContext, Depends(require_ownership("account_id"))]


# =============================================================================
# Current account
# =============================================================================


@router.get("/me")
async def get_my_profile(
    auth: CurrentAuth,
    db: DbSession,
) -> DataResponse[AccountProfile]:
    """Return the authenticated account with all linked identities."""
    profile = await account_service.get_profile(db, auth.account_id)
    return DataResponse(data=profile)


@router.patch("/me")
async def update_my_profile(
    body: UpdateProfileRequest,
    auth: CurrentAuth,
    db: DbSession,
) -> DataResponse[AccountProfile]:
    """Update username, riotId and riotPuuid of the authenticated account."""
    profile = await account_service.update_profile(
        db, auth.account_id, body.model_dump(exclude_unset=True)
    )
    return DataResponse(data=profile)


@router.get("/me/oauth-accounts")
async def list_my_identities(
    auth: CurrentAuth,
    db: DbSession,
) -> DataResponse[list[IdentitySchema]]:
    """List linked identities, oldest first."""
    identities = await account_service.list_identities(db, auth.account_id)
    return DataResponse(data=identities)


@router.delete("/me/oauth-accounts/{provider}")
async def unlink_my_identity(
    provider: str,
    auth: CurrentAuth,
    db: DbSession,
) -> MessageResponse:
    """Unlink a provider. The last remaining identity cannot be removed."""
    provider = provider.lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise BadRequestError(
            f"Invalid provider. Must be one of: {', '.join(SUPPORTED_PROVIDERS)}"
        )

    await account_service.unlink_identity(db, auth.account_id, provider)
    return MessageResponse(message=f"{provider} account unlinked successfully")


# =============================================================================
# Any account
# =============================================================================


@router.get("/{account_id}")
async def get_account(
    account_id: uuid.UUID,
    viewer: OptionalAuth,
    db: DbSession,
) -> DataResponse[AccountProfile | PublicAccount]:
    """Return an account's public profile.

    The owner and admins receive the full profile with identities.
    """
    if viewer is not None and (
        viewer.account_id == account_id or viewer.role is AccountRole.ADMIN
    ):
        profile = await account_service.get_profile(db, account_id)
        return DataResponse(data=profile)

    account = await AccountRepository.get_by_id(db, account_id)
    if account is None:
        raise NotFoundError("Account")
    return DataResponse(data=PublicAccount.model_validate(account))


@router.patch("/{account_id}")
async def update_account(
    account_id: uuid.UUID,
    body: UpdateProfileRequest,
    _auth: OwnerAuth,
    db: DbSession,
) -> DataResponse[AccountProfile]:
    """Update an account's profile (owner or admin)."""
    profile = await account_service.update_profile(
        db, account_id, body.model_dump(exclude_unset=True)
    )
    return DataResponse(data=profile)


@router.patch("/{account_id}/role")
async def change_account_role(
    account_id: uuid.UUID,
    body: ChangeRoleRequest,
    _auth: AdminAuth,
    db: DbSession,
) -> DataResponse[AccountSnapshot]:
    """Change an account's role (admin only).

    The account's existing tokens carry the old role until refreshed.
    """
    account = await account_service.change_role(db, account_id, body.role)
    return DataResponse(data=account)
