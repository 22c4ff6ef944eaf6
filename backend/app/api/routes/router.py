"""API router aggregator.

All endpoint routers are included here and mounted under
settings.api_prefix ("/api") by create_app().
"""

from fastapi import APIRouter

from app.api.routes import auth, auth_oauth, users

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

# Session routes first: /auth/me must win over /auth/{provider}.
router.include_router(auth.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_oauth.router, prefix=_AUTH_PREFIX, tags=["auth"])

# =============================================================================
# Accounts
# =============================================================================

router.include_router(users.router, prefix="/users", tags=["users"])
