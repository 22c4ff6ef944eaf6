"""Pydantic request/response schemas for API endpoints."""

from app.schemas.account import (
    AccountProfile,
    AccountSnapshot,
    ChangeRoleRequest,
    IdentitySchema,
    PublicAccount,
    RefreshRequest,
    TokenPairSchema,
    UpdateProfileRequest,
)

__all__ = [
    # Responses
    "AccountProfile",
    "AccountSnapshot",
    "IdentitySchema",
    "PublicAccount",
    "TokenPairSchema",
    # Requests
    "ChangeRoleRequest",
    "RefreshRequest",
    "UpdateProfileRequest",
]
