"""Tests for the access guard dependencies.

Required and optional authentication, role checks and ownership checks,
exercised through a small router mounted on the real application so the
error envelope is rendered by the production exception handlers.
"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from typing import Annotated

import pytest
import pytest_asyncio
from fastapi import APIRouter, Depends, FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from app.api.deps import (
    AdminAuth,
    AuthContext,
    CurrentAuth,
    OptionalAuth,
    require_ownership,
    require_roles,
)
from app.core.tokens import TokenConfig, TokenService
from app.main import create_app
from app.models.account import AccountRole
from app.repositories.account_repository import AccountRepository
from app.services.session_service import claims_for
from tests.conftest import bearer, issue_tokens
from tests.fakes import fake_session_factory

_StaffAuth = Annotated[
    AuthContext, Depends(require_roles(AccountRole.ORGANIZER, AccountRole.ADMIN))
]
_PathOwner = Annotated[AuthContext, Depends(require_ownership("owner_id"))]
_BodyOwner = Annotated[AuthContext, Depends(require_ownership("ownerId"))]


def _days_ago(days: int) -> datetime:
    return datetime.now(UTC) - timedelta(days=days)


def _guard_router() -> APIRouter:
    router = APIRouter(prefix="/guard")

    @router.get("/required")
    async def required(auth: CurrentAuth) -> dict:
        return {"accountId": str(auth.account_id), "role": auth.role.value}

    @router.get("/optional")
    async def optional(auth: OptionalAuth) -> dict:
        return {"accountId": str(auth.account_id) if auth else None}

    @router.get("/staff")
    async def staff(auth: _StaffAuth) -> dict:
        return {"role": auth.role.value}

    @router.get("/admin")
    async def admin_only(auth: AdminAuth) -> dict:
        return {"role": auth.role.value}

    @router.get("/owned/{owner_id}")
    async def owned_by_path(owner_id: str, auth: _PathOwner) -> dict:
        return {"ok": True}

    @router.post("/owned")
    async def owned_by_body(auth: _BodyOwner) -> dict:
        return {"ok": True}

    return router


@pytest.fixture
def guard_app(test_settings, store) -> FastAPI:
    app = create_app(test_settings, session_factory=fake_session_factory(store))
    app.include_router(_guard_router())
    return app


@pytest_asyncio.fixture
async def guard_client(guard_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=guard_app), base_url="http://test"
    ) as ac:
        yield ac


# =============================================================================
# Required authentication
# =============================================================================


class TestRequiredAuth:
    """Tests for get_auth_context (CurrentAuth)."""

    async def test_valid_token_yields_context(
        self, guard_client, player, player_headers
    ):
        response = await guard_client.get("/guard/required", headers=player_headers)
        assert response.status_code == 200
        assert response.json() == {"accountId": str(player.id), "role": "player"}

    async def test_missing_header_is_401(self, guard_client, store):
        response = await guard_client.get("/guard/required")
        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "message": "Authentication required",
            "code": "UNAUTHENTICATED",
        }

    @pytest.mark.parametrize(
        "header",
        ["Bearer not-a-jwt", "Token abc", "Bearer"],
    )
    async def test_bad_credential_is_401(self, guard_client, store, header):
        response = await guard_client.get(
            "/guard/required", headers={"Authorization": header}
        )
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHENTICATED"

    async def test_refresh_token_is_rejected(
        self, guard_client, token_service, player
    ):
        """Refresh tokens cannot authenticate API requests."""
        refresh = issue_tokens(token_service, player).refresh_token
        response = await guard_client.get("/guard/required", headers=bearer(refresh))
        assert response.status_code == 401

    async def test_expired_token_is_401(self, guard_client, test_settings, player):
        config = TokenConfig.from_settings(test_settings)
        past = TokenService(
            config, clock=lambda: _days_ago(test_settings.jwt_access_ttl.days + 1)
        )
        token = past.issue_access_token(claims_for(player))
        response = await guard_client.get("/guard/required", headers=bearer(token))
        assert response.status_code == 401

    async def test_deleted_account_is_401(
        self, guard_client, store, player, player_headers
    ):
        """A valid token for an account that no longer exists is rejected."""
        del store.accounts[player.id]
        response = await guard_client.get("/guard/required", headers=player_headers)
        assert response.status_code == 401

    async def test_role_comes_from_store_not_token(
        self, guard_client, player, player_headers
    ):
        """The context reflects the account's current role."""
        player.role = AccountRole.ORGANIZER.value
        response = await guard_client.get("/guard/required", headers=player_headers)
        assert response.json()["role"] == "organizer"


# =============================================================================
# Optional authentication
# =============================================================================


class TestOptionalAuth:
    """Tests for get_optional_auth_context (OptionalAuth)."""

    async def test_anonymous_is_none(self, guard_client, store):
        response = await guard_client.get("/guard/optional")
        assert response.status_code == 200
        assert response.json() == {"accountId": None}

    async def test_invalid_token_is_silent(self, guard_client, store):
        response = await guard_client.get(
            "/guard/optional", headers=bearer("not-a-jwt")
        )
        assert response.status_code == 200
        assert response.json() == {"accountId": None}

    async def test_valid_token_yields_context(
        self, guard_client, player, player_headers
    ):
        response = await guard_client.get("/guard/optional", headers=player_headers)
        assert response.json() == {"accountId": str(player.id)}

    async def test_store_failure_is_logged_and_anonymous(
        self, guard_client, player_headers, monkeypatch, caplog
    ):
        async def unreachable(db, account_id, *, for_update=False):
            raise OperationalError("SELECT", {}, ConnectionRefusedError())

        monkeypatch.setattr(AccountRepository, "get_by_id", staticmethod(unreachable))

        with caplog.at_level("WARNING", logger="app.api.deps"):
            response = await guard_client.get(
                "/guard/optional", headers=player_headers
            )

        assert response.status_code == 200
        assert response.json() == {"accountId": None}
        assert "store unavailable" in caplog.text


# =============================================================================
# Role checks
# =============================================================================


class TestRequireRoles:
    """Tests for require_roles."""

    async def test_player_is_forbidden(self, guard_client, player_headers):
        response = await guard_client.get("/guard/staff", headers=player_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    async def test_organizer_is_allowed(self, guard_client, store, token_service):
        organizer = store.add_account(
            email="org@example.com", role=AccountRole.ORGANIZER
        )
        headers = bearer(issue_tokens(token_service, organizer).access_token)
        response = await guard_client.get("/guard/staff", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"role": "organizer"}

    async def test_admin_only(self, guard_client, admin_headers, player_headers):
        assert (
            await guard_client.get("/guard/admin", headers=admin_headers)
        ).status_code == 200
        assert (
            await guard_client.get("/guard/admin", headers=player_headers)
        ).status_code == 403

    async def test_unauthenticated_is_401_not_403(self, guard_client, store):
        response = await guard_client.get("/guard/admin")
        assert response.status_code == 401


# =============================================================================
# Ownership checks
# =============================================================================


class TestRequireOwnership:
    """Tests for require_ownership."""

    async def test_owner_from_path(self, guard_client, player, player_headers):
        response = await guard_client.get(
            f"/guard/owned/{player.id}", headers=player_headers
        )
        assert response.status_code == 200

    async def test_other_account_is_forbidden(
        self, guard_client, other_player, player_headers
    ):
        response = await guard_client.get(
            f"/guard/owned/{other_player.id}", headers=player_headers
        )
        assert response.status_code == 403

    async def test_admin_passes_for_any_owner(
        self, guard_client, other_player, admin_headers
    ):
        response = await guard_client.get(
            f"/guard/owned/{other_player.id}", headers=admin_headers
        )
        assert response.status_code == 200

    async def test_non_uuid_owner_is_forbidden(self, guard_client, player_headers):
        response = await guard_client.get(
            "/guard/owned/not-a-uuid", headers=player_headers
        )
        assert response.status_code == 403

    async def test_owner_from_body(self, guard_client, player, player_headers):
        response = await guard_client.post(
            "/guard/owned", json={"ownerId": str(player.id)}, headers=player_headers
        )
        assert response.status_code == 200

    async def test_missing_owner_is_forbidden(self, guard_client, player_headers):
        """Without an owner id in path or body access is denied."""
        response = await guard_client.post("/guard/owned", headers=player_headers)
        assert response.status_code == 403
        assert "could not be determined" in response.json()["message"]

    async def test_non_object_body_is_forbidden(self, guard_client, player_headers):
        response = await guard_client.post(
            "/guard/owned", json=["ownerId"], headers=player_headers
        )
        assert response.status_code == 403
