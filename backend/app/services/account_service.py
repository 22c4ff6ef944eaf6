"""Account management - profile reads/updates and identity unlinking.

Every account must keep at least one identity. unlink_identity enforces
this under a row lock on the account, so two concurrent unlinks cannot
both pass the count check.
"""

import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, NotFoundError
from app.models.account import AccountRole
from app.models.identity import Identity
from app.repositories.account_repository import AccountRepository
from app.repositories.identity_repository import IdentityRepository
from app.schemas.account import AccountProfile, AccountSnapshot, IdentitySchema

logger = logging.getLogger(__name__)

# Fields an account owner may change through update_profile().
_PROFILE_FIELDS: frozenset[str] = frozenset({"username", "riot_id", "riot_puuid"})


async def get_profile(db: AsyncSession, account_id: uuid.UUID) -> AccountProfile:
    """Load an account together with its linked identities.

    Raises:
        NotFoundError: If the account does not exist.
    """
    account = await AccountRepository.get_by_id(db, account_id)
    if account is None:
        raise NotFoundError("Account")
    identities = await IdentityRepository.list_for_account(db, account_id)
    snapshot = AccountSnapshot.model_validate(account)
    return AccountProfile(
        **snapshot.model_dump(),
        identities=[IdentitySchema.model_validate(i) for i in identities],
    )


async def list_identities(
    db: AsyncSession, account_id: uuid.UUID
) -> list[IdentitySchema]:
    """List an account's identities, oldest first.

    Raises:
        NotFoundError: If the account does not exist.
    """
    account = await AccountRepository.get_by_id(db, account_id)
    if account is None:
        raise NotFoundError("Account")
    identities = await IdentityRepository.list_for_account(db, account_id)
    return [IdentitySchema.model_validate(i) for i in identities]


async def unlink_identity(
    db: AsyncSession,
    account_id: uuid.UUID,
    provider: str,
) -> int:
    """Remove the identity for a provider from an account.

    The account row is locked (SELECT ... FOR UPDATE) for the rest of the
    transaction before identities are counted.

    Args:
        db: Async database session.
        account_id: Account to unlink from.
        provider: Provider name of the identity to remove.

    Returns:
        Number of identities remaining on the account.

    Raises:
        NotFoundError: If the account does not exist, or has no identity
            for the provider.
        BadRequestError: If the account has only one identity left.
    """
    account = await AccountRepository.get_by_id(db, account_id, for_update=True)
    if account is None:
        raise NotFoundError("Account")

    identities = await IdentityRepository.list_for_account(db, account_id)
    if len(identities) <= 1:
        raise BadRequestError(
            "Cannot remove the only sign-in method. "
            "Link another provider before unlinking this one."
        )

    target: Identity | None = next(
        (i for i in identities if i.provider == provider), None
    )
    if target is None:
        raise NotFoundError(f"{provider} identity")

    await IdentityRepository.delete(db, target)
    remaining = len(identities) - 1

    logger.info(
        "OAuth identity unlinked",
        extra={
            "account_id": str(account_id),
            "provider": provider,
            "remaining_identities": remaining,
        },
    )
    return remaining


async def update_profile(
    db: AsyncSession,
    account_id: uuid.UUID,
    changes: dict[str, Any],
) -> AccountProfile:
    """Apply owner-editable profile changes.

    An empty username is ignored. riot_id and riot_puuid are applied as
    given, so None clears them.

    Args:
        db: Async database session.
        account_id: Account to update.
        changes: Field names (snake_case) to new values. Only keys that
            were present in the request should be passed.

    Returns:
        Updated profile with identities.

    Raises:
        ValueError: If a field outside the profile fields is passed.
        NotFoundError: If the account does not exist.
    """
    unknown = set(changes) - _PROFILE_FIELDS
    if unknown:
        msg = f"Unknown fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)

    updates = dict(changes)
    if not updates.get("username"):
        updates.pop("username", None)

    if updates:
        account = await AccountRepository.update(db, account_id, **updates)
        if account is None:
            raise NotFoundError("Account")
        logger.info(
            "Account profile updated",
            extra={"account_id": str(account_id), "fields": sorted(updates)},
        )

    return await get_profile(db, account_id)


async def change_role(
    db: AsyncSession,
    account_id: uuid.UUID,
    role: AccountRole,
) -> AccountSnapshot:
    """Change an account's role.

    Existing tokens keep the old role claim until they are refreshed.

    Raises:
        NotFoundError: If the account does not exist.
    """
    account = await AccountRepository.set_role(db, account_id, role=role)
    if account is None:
        raise NotFoundError("Account")
    logger.info(
        "Account role changed",
        extra={"account_id": str(account_id), "role": account.role},
    )
    return AccountSnapshot.model_validate(account)
