"""Repository for Account CRUD operations.

Provides database access for the accounts table. Identity rows are
handled by IdentityRepository, except for the initial identity which is
written together with its account.
"""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import Account, AccountRole
from app.models.identity import Identity

# Fields that may be updated via AccountRepository.update().
# Security: Never add 'id', 'email', 'created_at', or 'updated_at'.
# - id: primary key, immutable
# - email: linking key, immutable once the account exists
# - created_at/updated_at: server-managed timestamps
# Security: role is excluded to prevent mass-assignment privilege escalation.
# Use set_role() for explicit role changes.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "username",
        "avatar_url",
        "riot_id",
        "riot_puuid",
        "last_login_at",
    }
)


class AccountRepository:
    """Stateless repository for Account table operations.

    All methods are static - no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(
        db: AsyncSession,
        account_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Account | None:
        """Fetch an account by primary key.

        Args:
            db: Async database session.
            account_id: UUID primary key.
            for_update: Take a row lock (SELECT ... FOR UPDATE) held until
                the surrounding transaction ends.

        Returns:
            Account if found, None otherwise.
        """
        if not for_update:
            return await db.get(Account, account_id)

        stmt = select(Account).where(Account.id == account_id).with_for_update()
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Account | None:
        """Fetch an account by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            Account if found, None otherwise.
        """
        stmt = select(Account).where(Account.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_with_identity(
        db: AsyncSession,
        *,
        email: str,
        username: str,
        provider: str,
        provider_subject_id: str,
        avatar_url: str | None = None,
        last_login_at: datetime | None = None,
    ) -> Account:
        """Create a new account together with its first identity.

        Both rows are written in one flush, so a failure on either leaves
        neither behind. Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            email: Account email address (also recorded on the identity).
            username: Display name.
            provider: Provider of the first identity.
            provider_subject_id: Provider's unique user identifier.
            avatar_url: Profile picture URL.
            last_login_at: Login timestamp to stamp on the new account.

        Returns:
            Created Account with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If the email or the
                provider+subject pair already exists.
        """
        email = email.strip().lower()
        account_id = uuid.uuid4()
        account = Account(
            id=account_id,
            email=email,
            username=username,
            avatar_url=avatar_url,
            role=AccountRole.PLAYER.value,
            last_login_at=last_login_at,
        )
        identity = Identity(
            account_id=account_id,
            provider=provider,
            provider_subject_id=provider_subject_id,
            email=email,
        )
        db.add_all([account, identity])
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def update(
        db: AsyncSession,
        account_id: uuid.UUID,
        **kwargs: str | datetime | None,
    ) -> Account | None:
        """Update account fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            account_id: UUID of the account to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated Account if found, None if the account does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        account = await db.get(Account, account_id)
        if account is None:
            return None

        for field, value in kwargs.items():
            setattr(account, field, value)

        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def set_role(
        db: AsyncSession, account_id: uuid.UUID, *, role: AccountRole
    ) -> Account | None:
        """Set the role of an account.

        Separated from update() to prevent mass-assignment privilege
        escalation. Only call from explicit admin paths.

        Args:
            db: Async database session.
            account_id: UUID of the account.
            role: New role.

        Returns:
            Updated Account if found, None if the account does not exist.
        """
        account = await db.get(Account, account_id)
        if account is None:
            return None
        account.role = AccountRole(role).value
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def delete(db: AsyncSession, account_id: uuid.UUID) -> bool:
        """Delete an account. Its identities go with it (ON DELETE CASCADE).

        Args:
            db: Async database session.
            account_id: UUID of the account.

        Returns:
            True if a row was deleted, False if the account does not exist.
        """
        account = await db.get(Account, account_id)
        if account is None:
            return False
        await db.delete(account)
        await db.flush()
        return True
