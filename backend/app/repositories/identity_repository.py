"""Repository for Identity operations.

Provides database access for the identities table.
Follows the repository pattern established by AccountRepository.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.identity import Identity


class IdentityRepository:
    """Stateless repository for Identity table operations.

    All methods are static - no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_provider_subject(
        db: AsyncSession,
        provider: str,
        provider_subject_id: str,
    ) -> Identity | None:
        """Find an identity by provider name and provider's user ID.

        Used to identify returning users: if the provider + subject
        already exists, we know which account this is (regardless of email).

        Args:
            db: Async database session.
            provider: Provider name (e.g., "google").
            provider_subject_id: Provider's unique user identifier.

        Returns:
            Identity if found, None otherwise.
        """
        stmt = select(Identity).where(
            Identity.provider == provider,
            Identity.provider_subject_id == provider_subject_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_account(
        db: AsyncSession,
        account_id: uuid.UUID,
    ) -> list[Identity]:
        """List all identities linked to an account, oldest first.

        Args:
            db: Async database session.
            account_id: UUID of the account.

        Returns:
            List of Identity records (may be empty).
        """
        stmt = (
            select(Identity)
            .where(Identity.account_id == account_id)
            .order_by(Identity.created_at.asc(), Identity.id.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        account_id: uuid.UUID,
        provider: str,
        provider_subject_id: str,
        email: str | None = None,
    ) -> Identity:
        """Link a provider identity to an existing account.

        Args:
            db: Async database session.
            account_id: FK to accounts table.
            provider: Provider name.
            provider_subject_id: Provider's unique user identifier.
            email: Provider-reported email at link time.

        Returns:
            Created Identity with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If provider+subject already exists.
        """
        identity = Identity(
            account_id=account_id,
            provider=provider,
            provider_subject_id=provider_subject_id,
            email=email,
        )
        db.add(identity)
        await db.flush()
        await db.refresh(identity)
        return identity

    @staticmethod
    async def delete(db: AsyncSession, identity: Identity) -> None:
        """Delete an identity row.

        Args:
            db: Async database session.
            identity: Identity to remove.
        """
        await db.delete(identity)
        await db.flush()
