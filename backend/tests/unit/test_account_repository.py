"""Tests for AccountRepository.

Runs against PostgreSQL (skipped when it is not reachable). Covers account
creation with its first identity, lookups, updates, role changes and
cascading delete.
"""

import uuid
from datetime import UTC, datetime

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import AccountRole
from app.repositories.account_repository import AccountRepository
from app.repositories.identity_repository import IdentityRepository

_MISSING_UUID = uuid.UUID("99999999-9999-9999-9999-999999999999")


async def _create(db: AsyncSession, email: str = "Player@Example.com", **kwargs):
    values = {
        "email": email,
        "username": "Player One",
        "provider": "google",
        "provider_subject_id": f"google-{uuid.uuid4()}",
    }
    values.update(kwargs)
    return await AccountRepository.create_with_identity(db, **values)


class TestCreateWithIdentity:
    """Test AccountRepository.create_with_identity()."""

    async def test_creates_account_and_first_identity(self, db_session: AsyncSession):
        login_at = datetime(2026, 3, 1, 12, tzinfo=UTC)
        account = await _create(
            db_session,
            provider_subject_id="google-1",
            avatar_url="https://example.com/a.png",
            last_login_at=login_at,
        )

        assert account.id is not None
        assert account.email == "player@example.com"
        assert account.role == AccountRole.PLAYER.value
        assert account.avatar_url == "https://example.com/a.png"
        assert account.last_login_at == login_at
        assert account.created_at is not None

        identities = await IdentityRepository.list_for_account(db_session, account.id)
        assert [(i.provider, i.provider_subject_id) for i in identities] == [
            ("google", "google-1")
        ]
        assert identities[0].email == "player@example.com"

    async def test_duplicate_email_is_rejected(self, db_session: AsyncSession):
        await _create(db_session, "dup@example.com")

        with pytest.raises(IntegrityError):
            async with db_session.begin_nested():
                await _create(db_session, "DUP@example.com")

    async def test_duplicate_subject_is_rejected(self, db_session: AsyncSession):
        await _create(db_session, "a@example.com", provider_subject_id="same")

        with pytest.raises(IntegrityError):
            async with db_session.begin_nested():
                await _create(db_session, "b@example.com", provider_subject_id="same")

        assert await AccountRepository.get_by_email(db_session, "b@example.com") is None


class TestLookups:
    """Test get_by_id() and get_by_email()."""

    async def test_get_by_id(self, db_session: AsyncSession):
        account = await _create(db_session)
        found = await AccountRepository.get_by_id(db_session, account.id)
        assert found is not None
        assert found.id == account.id

    async def test_get_by_id_for_update(self, db_session: AsyncSession):
        account = await _create(db_session)
        found = await AccountRepository.get_by_id(
            db_session, account.id, for_update=True
        )
        assert found is not None

    async def test_get_by_id_missing(self, db_session: AsyncSession):
        assert await AccountRepository.get_by_id(db_session, _MISSING_UUID) is None

    async def test_get_by_email_is_case_insensitive(self, db_session: AsyncSession):
        account = await _create(db_session, "mixed@example.com")
        found = await AccountRepository.get_by_email(db_session, " MIXED@Example.com ")
        assert found is not None
        assert found.id == account.id

    async def test_get_by_email_missing(self, db_session: AsyncSession):
        assert await AccountRepository.get_by_email(db_session, "no@one.com") is None


class TestUpdate:
    """Test AccountRepository.update()."""

    async def test_updates_allowed_fields(self, db_session: AsyncSession):
        account = await _create(db_session)

        updated = await AccountRepository.update(
            db_session, account.id, username="Renamed", riot_id="Renamed#EUW"
        )

        assert updated is not None
        assert updated.username == "Renamed"
        assert updated.riot_id == "Renamed#EUW"

    async def test_rejects_protected_fields(self, db_session: AsyncSession):
        account = await _create(db_session)
        with pytest.raises(ValueError, match="Unknown fields: email, role"):
            await AccountRepository.update(
                db_session, account.id, role="admin", email="x@example.com"
            )

    async def test_missing_account(self, db_session: AsyncSession):
        assert (
            await AccountRepository.update(db_session, _MISSING_UUID, username="x")
            is None
        )


class TestSetRole:
    """Test AccountRepository.set_role()."""

    async def test_sets_role(self, db_session: AsyncSession):
        account = await _create(db_session)
        updated = await AccountRepository.set_role(
            db_session, account.id, role=AccountRole.ORGANIZER
        )
        assert updated is not None
        assert updated.role == "organizer"

    async def test_missing_account(self, db_session: AsyncSession):
        result = await AccountRepository.set_role(
            db_session, _MISSING_UUID, role=AccountRole.ADMIN
        )
        assert result is None


class TestDelete:
    """Test AccountRepository.delete()."""

    async def test_delete_cascades_to_identities(self, db_session: AsyncSession):
        account = await _create(db_session, provider_subject_id="google-gone")
        await IdentityRepository.create(
            db_session,
            account_id=account.id,
            provider="discord",
            provider_subject_id="discord-gone",
        )

        assert await AccountRepository.delete(db_session, account.id) is True

        assert await AccountRepository.get_by_id(db_session, account.id) is None
        assert (
            await IdentityRepository.get_by_provider_subject(
                db_session, "discord", "discord-gone"
            )
            is None
        )

    async def test_delete_missing_account(self, db_session: AsyncSession):
        assert await AccountRepository.delete(db_session, _MISSING_UUID) is False
