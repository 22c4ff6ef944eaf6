"""Account linking logic for OAuth sign-in.

Resolves an incoming provider profile onto exactly one durable account.
Shared by every provider callback.

Rules (first match wins):
1. If provider+subject already exists -> returning account (login)
2. If an account has the same email -> link this provider to it (linked)
3. Otherwise -> create account + first identity together (created)

Linking trusts the provider's email. A profile whose email the provider
did not mark verified is still linked, with a warning in the log.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import STORE_UNAVAILABLE_ERRORS
from app.core.errors import (
    BadRequestError,
    ConflictRetryExhaustedError,
    StoreUnavailableError,
)
from app.models.account import Account
from app.repositories.account_repository import AccountRepository
from app.repositories.identity_repository import IdentityRepository

logger = logging.getLogger(__name__)

# One initial attempt plus one retry after a uniqueness race.
_MAX_ATTEMPTS = 2


@dataclass(frozen=True)
class OAuthProfile:
    """Normalized user profile returned by a provider adapter.

    Attributes:
        provider: Provider name ("google", "discord", "twitch").
        provider_subject_id: Provider's unique user identifier.
        email: Email reported by the provider (None if not shared).
        username: Display name for a newly created account.
        avatar_url: Profile picture URL.
        email_verified: Whether the provider vouches for the email.
    """

    provider: str
    provider_subject_id: str
    email: str | None
    username: str
    avatar_url: str | None = None
    email_verified: bool = False


class ResolutionOutcome(str, Enum):
    """How a profile was resolved onto its account."""

    LOGIN = "login"
    LINKED = "linked"
    CREATED = "created"


def _utcnow() -> datetime:
    return datetime.now(UTC)


async def _resolve_once(
    db: AsyncSession,
    profile: OAuthProfile,
    email: str,
    now: datetime,
) -> tuple[Account, ResolutionOutcome] | None:
    # Step 1: Check if this provider+subject already exists (returning account)
    existing_identity = await IdentityRepository.get_by_provider_subject(
        db, profile.provider, profile.provider_subject_id
    )
    if existing_identity:
        account = await AccountRepository.update(
            db, existing_identity.account_id, last_login_at=now
        )
        if account:
            return account, ResolutionOutcome.LOGIN

    # Step 2: Check if email exists for account linking
    existing_account = await AccountRepository.get_by_email(db, email)
    if existing_account:
        if not profile.email_verified:
            logger.warning(
                "Linking OAuth identity by unverified provider email",
                extra={
                    "account_id": str(existing_account.id),
                    "provider": profile.provider,
                },
            )
        await IdentityRepository.create(
            db,
            account_id=existing_account.id,
            provider=profile.provider,
            provider_subject_id=profile.provider_subject_id,
            email=email,
        )
        account = await AccountRepository.update(
            db, existing_account.id, last_login_at=now
        )
        if account:
            return account, ResolutionOutcome.LINKED
        return None

    # Step 3: Create new account + first identity
    account = await AccountRepository.create_with_identity(
        db,
        email=email,
        username=profile.username,
        avatar_url=profile.avatar_url,
        provider=profile.provider,
        provider_subject_id=profile.provider_subject_id,
        last_login_at=now,
    )
    return account, ResolutionOutcome.CREATED


async def resolve_account(
    db: AsyncSession,
    profile: OAuthProfile,
    *,
    clock: Callable[[], datetime] = _utcnow,
) -> tuple[Account, ResolutionOutcome]:
    """Find, link, or create the account for a provider profile.

    The read-then-write runs inside a savepoint. A uniqueness violation
    from a concurrent resolution rolls the savepoint back and the rules
    are re-run once from the top.

    Args:
        db: Async database session.
        profile: Normalized provider profile.
        clock: Returns the current UTC time (stamped as last_login_at).

    Returns:
        Tuple of (Account, outcome).

    Raises:
        BadRequestError: If the profile carries no email.
        ConflictRetryExhaustedError: If the retry also hit a uniqueness
            violation.
        StoreUnavailableError: If the database could not be reached.
    """
    # Normalize email early for consistent matching
    email = (profile.email or "").strip().lower()
    if not email:
        raise BadRequestError("OAuth profile has no email address")

    for attempt in range(1, _MAX_ATTEMPTS + 1):
        try:
            async with db.begin_nested():
                resolved = await _resolve_once(db, profile, email, clock())
        except IntegrityError as exc:
            if attempt >= _MAX_ATTEMPTS:
                logger.warning(
                    "OAuth resolution conflict persisted after retry",
                    extra={"provider": profile.provider},
                )
                raise ConflictRetryExhaustedError() from exc
            logger.warning(
                "OAuth resolution hit a uniqueness conflict, retrying",
                extra={"provider": profile.provider, "attempt": attempt},
            )
            continue
        except STORE_UNAVAILABLE_ERRORS as exc:
            logger.error(
                "Identity store unavailable during OAuth resolution",
                extra={"provider": profile.provider},
            )
            raise StoreUnavailableError() from exc

        if resolved is None:
            # Account vanished between lookup and update; re-run the rules.
            continue

        account, outcome = resolved
        logger.info(
            "OAuth account resolved",
            extra={
                "account_id": str(account.id),
                "provider": profile.provider,
                "outcome": outcome.value,
            },
        )
        return account, outcome

    raise ConflictRetryExhaustedError()
