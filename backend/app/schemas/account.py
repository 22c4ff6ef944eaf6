"""Account and identity request/response schemas.

JSON keys are camelCase on the wire (alias generator); Python code uses
snake_case field names. Response schemas validate straight from ORM rows
(from_attributes). Request schemas use extra="forbid" to reject
unexpected fields.
"""

import re
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models.account import AccountRole

# Riot ID: 3-16 word/space characters, '#', then a 3-5 character tagline.
_RIOT_ID_PATTERN = re.compile(r"^[\w\s]{3,16}#\w{3,5}$")

_USERNAME_MIN = 3
_USERNAME_MAX = 50
_RIOT_PUUID_MAX = 128

_RESPONSE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    from_attributes=True,
)

_REQUEST_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="forbid",
)


# =============================================================================
# Responses
# =============================================================================


class IdentitySchema(BaseModel):
    """A linked provider identity.

    Attributes:
        id: Identity UUID.
        provider: Provider name.
        provider_subject_id: Provider's unique user ID.
        email: Email reported by the provider at link time.
        created_at: When the identity was linked.
    """

    model_config = _RESPONSE_CONFIG

    id: uuid.UUID
    provider: str
    provider_subject_id: str
    email: str | None = None
    created_at: datetime


class AccountSnapshot(BaseModel):
    """Account fields returned to the account owner."""

    model_config = _RESPONSE_CONFIG

    id: uuid.UUID
    email: str
    username: str
    avatar_url: str | None = None
    role: AccountRole
    riot_id: str | None = None
    riot_puuid: str | None = None
    created_at: datetime
    last_login_at: datetime | None = None


class AccountProfile(AccountSnapshot):
    """Account snapshot plus all linked identities (oldest first)."""

    identities: list[IdentitySchema]


class PublicAccount(BaseModel):
    """Account fields visible to anyone, including anonymous viewers."""

    model_config = _RESPONSE_CONFIG

    id: uuid.UUID
    username: str
    avatar_url: str | None = None
    role: AccountRole
    riot_id: str | None = None
    created_at: datetime


class TokenPairSchema(BaseModel):
    """Access + refresh credential pair."""

    model_config = _RESPONSE_CONFIG

    access_token: str
    refresh_token: str


# =============================================================================
# Requests
# =============================================================================


class RefreshRequest(BaseModel):
    """Request body for POST /auth/refresh."""

    model_config = _REQUEST_CONFIG

    refresh_token: str = Field(min_length=1)


class UpdateProfileRequest(BaseModel):
    """Request body for PATCH /users/me and PATCH /users/{accountId}.

    An empty username is ignored. riotId and riotPuuid may be cleared with
    null or an empty string.
    """

    model_config = _REQUEST_CONFIG

    username: str | None = None
    riot_id: str | None = None
    riot_puuid: str | None = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: str | None) -> str | None:
        """Strip whitespace and enforce length for non-empty usernames."""
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        if not _USERNAME_MIN <= len(value) <= _USERNAME_MAX:
            msg = (
                f"username must be between {_USERNAME_MIN} and "
                f"{_USERNAME_MAX} characters"
            )
            raise ValueError(msg)
        return value

    @field_validator("riot_id")
    @classmethod
    def validate_riot_id(cls, value: str | None) -> str | None:
        """Validate Riot ID format (e.g. PlayerName#EUW)."""
        if not value:
            return None
        if not _RIOT_ID_PATTERN.match(value):
            msg = "riotId must look like PlayerName#EUW"
            raise ValueError(msg)
        return value

    @field_validator("riot_puuid")
    @classmethod
    def validate_riot_puuid(cls, value: str | None) -> str | None:
        if not value:
            return None
        if len(value) > _RIOT_PUUID_MAX:
            msg = f"riotPuuid must be at most {_RIOT_PUUID_MAX} characters"
            raise ValueError(msg)
        return value


class ChangeRoleRequest(BaseModel):
    """Request body for PATCH /users/{accountId}/role."""

    model_config = _REQUEST_CONFIG

    role: AccountRole
