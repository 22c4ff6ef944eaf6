"""Token service - issuance and verification of bearer credentials.

Access and refresh tokens are HS256 JWTs carrying the claim set
{accountId, email, role, iat, exp}. Each token class has its own secret
and lifetime. Nothing is stored server-side: there is no revocation list,
so a token stays valid until it expires.

Pipeline:
- issue_access_token / issue_refresh_token / issue_pair: signing
- verify: signature + structure + expiry against the service clock
- extract_bearer: Authorization header parsing (never raises)
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

import jwt

from app.core.config import Settings
from app.models.account import AccountRole

_ALGORITHM = "HS256"

_REQUIRED_CLAIMS = ("accountId", "email", "role", "iat", "exp")

_VALID_ROLES = frozenset(role.value for role in AccountRole)


class TokenClass(str, Enum):
    """Bearer credential class. Each class has its own secret and TTL."""

    ACCESS = "access"
    REFRESH = "refresh"


class CredentialError(Exception):
    """Base class for token verification failures."""


class ExpiredCredentialError(CredentialError):
    """Token signature is valid but its expiry has passed."""


class MalformedCredentialError(CredentialError):
    """Token signature or structure is invalid."""


@dataclass(frozen=True)
class TokenClaims:
    """Claim set embedded in a bearer credential.

    Attributes:
        account_id: Account UUID as a string.
        email: Account email at issue time.
        role: Account role at issue time.
        issued_at: Issue time (set on verified claims only).
        expires_at: Expiry time (set on verified claims only).
    """

    account_id: str
    email: str
    role: str
    issued_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class TokenPair:
    """Access + refresh credential pair handed to the client."""

    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenConfig:
    """Secrets and lifetimes for both token classes."""

    access_secret: str
    refresh_secret: str
    access_ttl: timedelta
    refresh_ttl: timedelta

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        """Build token configuration from application settings."""
        return cls(
            access_secret=settings.jwt_access_secret.get_secret_value(),
            refresh_secret=settings.jwt_refresh_secret.get_secret_value(),
            access_ttl=settings.jwt_access_ttl,
            refresh_ttl=settings.jwt_refresh_ttl,
        )


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenService:
    """Stateless issuer/verifier for access and refresh credentials.

    Args:
        config: Secrets and lifetimes per token class.
        clock: Returns the current UTC time. Injected so expiry can be
            tested without sleeping.
    """

    def __init__(
        self,
        config: TokenConfig,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._clock = clock

    def _secret_and_ttl(self, token_class: TokenClass) -> tuple[str, timedelta]:
        if token_class is TokenClass.ACCESS:
            return self._config.access_secret, self._config.access_ttl
        return self._config.refresh_secret, self._config.refresh_ttl

    def _issue(self, claims: TokenClaims, token_class: TokenClass) -> str:
        secret, ttl = self._secret_and_ttl(token_class)
        now = self._clock()
        payload = {
            "accountId": claims.account_id,
            "email": claims.email,
            "role": claims.role,
            "iat": int(now.timestamp()),
            # Rounded up: exp is never earlier than now + ttl
            "exp": math.ceil((now + ttl).timestamp()),
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    def issue_access_token(self, claims: TokenClaims) -> str:
        """Sign a short-lived access token for the claim set."""
        return self._issue(claims, TokenClass.ACCESS)

    def issue_refresh_token(self, claims: TokenClaims) -> str:
        """Sign a long-lived refresh token for the claim set."""
        return self._issue(claims, TokenClass.REFRESH)

    def issue_pair(self, claims: TokenClaims) -> TokenPair:
        """Sign both an access and a refresh token for the claim set."""
        return TokenPair(
            access_token=self.issue_access_token(claims),
            refresh_token=self.issue_refresh_token(claims),
        )

    def verify(self, token: str, token_class: TokenClass) -> TokenClaims:
        """Verify a token against its class secret and the service clock.

        Args:
            token: Encoded JWT.
            token_class: Which secret to verify against.

        Returns:
            Decoded claim set including issue and expiry times.

        Raises:
            ExpiredCredentialError: Signature valid, but now >= exp.
            MalformedCredentialError: Bad signature, structure, or claims.
        """
        secret, _ = self._secret_and_ttl(token_class)
        try:
            # Expiry is checked below against the injected clock instead of
            # PyJWT's wall clock.
            payload: dict[str, Any] = jwt.decode(
                token,
                secret,
                algorithms=[_ALGORITHM],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": list(_REQUIRED_CLAIMS),
                },
            )
        except jwt.InvalidTokenError as exc:
            raise MalformedCredentialError(str(exc)) from exc

        account_id = payload["accountId"]
        email = payload["email"]
        role = payload["role"]
        if not all(isinstance(value, str) for value in (account_id, email, role)):
            raise MalformedCredentialError("Claim types are invalid")
        if role not in _VALID_ROLES:
            raise MalformedCredentialError("Unknown role claim")

        try:
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=UTC)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=UTC)
        except (TypeError, ValueError, OverflowError) as exc:
            raise MalformedCredentialError("Timing claims are invalid") from exc

        if self._clock() >= expires_at:
            raise ExpiredCredentialError("Token has expired")

        return TokenClaims(
            account_id=account_id,
            email=email,
            role=role,
            issued_at=issued_at,
            expires_at=expires_at,
        )


def extract_bearer(header_value: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Args:
        header_value: Raw Authorization header value, or None if absent.

    Returns:
        Token substring, or None if the header is absent or malformed
        (wrong scheme, wrong segment count, empty token).
    """
    if not header_value:
        return None

    parts = header_value.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None

    return parts[1]
