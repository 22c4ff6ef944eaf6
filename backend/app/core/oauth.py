"""OAuth utilities - PKCE, state cookies, and provider configuration.

PKCE code verifier/challenge generation (RFC 7636), state parameter
management via signed JWT cookies, and the configuration record for each
supported provider (Google, Discord, Twitch). Providers differ only in
their endpoints and in how their userinfo payload maps onto an
OAuthProfile.
"""

import base64
import hashlib
import secrets
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import jwt

from app.core.account_linking import OAuthProfile

# PKCE code verifier length (RFC 7636 allows 43-128)
_VERIFIER_LENGTH = 128

# Characters allowed in PKCE code verifier (RFC 7636 §4.1)
# unreserved = ALPHA / DIGIT / "-" / "." / "_" / "~"
_UNRESERVED_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"

# Default TTL for OAuth state cookie (10 minutes)
_DEFAULT_STATE_TTL = 600

OAUTH_STATE_COOKIE = "oauth_state"

_DEFAULT_USERNAME = "Player"

_DISCORD_AVATAR_URL = "https://cdn.discordapp.com/avatars/{subject}/{avatar}.png"


class OAuthProfileError(Exception):
    """Provider returned a userinfo payload that cannot be used."""


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier.

    RFC 7636 §4.1: 128-character string from unreserved characters.

    Returns:
        Random 128-character code verifier string.
    """
    return "".join(secrets.choice(_UNRESERVED_CHARS) for _ in range(_VERIFIER_LENGTH))


def generate_code_challenge(verifier: str) -> str:
    """Generate a PKCE code challenge from a verifier.

    RFC 7636 §4.2: BASE64URL(SHA256(code_verifier)), no padding.

    Args:
        verifier: PKCE code verifier string.

    Returns:
        Base64url-encoded SHA256 hash without padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def create_oauth_state_cookie(
    *,
    state: str,
    code_verifier: str,
    secret: str,
    ttl_seconds: int = _DEFAULT_STATE_TTL,
) -> str:
    """Create a signed JWT cookie containing OAuth state and PKCE verifier.

    Stored as a cookie between the initiation redirect and callback.
    Signed with HS256 to prevent tampering.

    Args:
        state: Random state parameter for CSRF protection.
        code_verifier: PKCE code verifier to use in token exchange.
        secret: HMAC signing secret.
        ttl_seconds: Cookie expiry in seconds (default 10 minutes).

    Returns:
        Signed JWT string.
    """
    payload = {
        "state": state,
        "code_verifier": code_verifier,
        "exp": int(time.time()) + ttl_seconds,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def validate_oauth_state_cookie(
    *,
    cookie_value: str,
    expected_state: str,
    secret: str,
) -> str | None:
    """Validate an OAuth state cookie and return the PKCE code verifier.

    Verifies JWT signature, expiry, and state match. Returns the
    code_verifier if valid, None if any check fails.

    Args:
        cookie_value: JWT string from the oauth_state cookie.
        expected_state: State parameter from the callback query string.
        secret: HMAC signing secret.

    Returns:
        Code verifier string if valid, None otherwise.
    """
    try:
        payload = jwt.decode(
            cookie_value,
            secret,
            algorithms=["HS256"],
            options={"require": ["state", "code_verifier", "exp"]},
        )
    except jwt.InvalidTokenError:
        return None

    if not secrets.compare_digest(str(payload["state"]), expected_state):
        return None

    code_verifier = payload["code_verifier"]
    if not isinstance(code_verifier, str):
        return None
    return code_verifier


# ===================================================================
# Userinfo -> OAuthProfile
# ===================================================================


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _fallback_username(name: str | None, email: str | None) -> str:
    """Provider display name, else email local part, else "Player"."""
    if name:
        return name
    if email and "@" in email:
        local_part = email.split("@", 1)[0].strip()
        if local_part:
            return local_part
    return _DEFAULT_USERNAME


def _require_subject(payload: Mapping[str, Any], key: str, provider: str) -> str:
    subject = _str_or_none(payload.get(key))
    if subject is None:
        msg = f"{provider} userinfo has no '{key}'"
        raise OAuthProfileError(msg)
    return subject


def parse_google_profile(payload: Mapping[str, Any]) -> OAuthProfile:
    """Map an OpenID Connect userinfo response onto a profile."""
    subject = _require_subject(payload, "sub", "google")
    email = _str_or_none(payload.get("email"))
    return OAuthProfile(
        provider="google",
        provider_subject_id=subject,
        email=email,
        username=_fallback_username(_str_or_none(payload.get("name")), email),
        avatar_url=_str_or_none(payload.get("picture")),
        email_verified=payload.get("email_verified") is True,
    )


def parse_discord_profile(payload: Mapping[str, Any]) -> OAuthProfile:
    """Map a Discord /users/@me response onto a profile.

    The avatar is a hash; the image lives on Discord's CDN.
    """
    subject = _require_subject(payload, "id", "discord")
    email = _str_or_none(payload.get("email"))
    name = _str_or_none(payload.get("global_name")) or _str_or_none(
        payload.get("username")
    )
    avatar_hash = _str_or_none(payload.get("avatar"))
    avatar_url = (
        _DISCORD_AVATAR_URL.format(subject=subject, avatar=avatar_hash)
        if avatar_hash
        else None
    )
    return OAuthProfile(
        provider="discord",
        provider_subject_id=subject,
        email=email,
        username=_fallback_username(name, email),
        avatar_url=avatar_url,
        email_verified=payload.get("verified") is True,
    )


def parse_twitch_profile(payload: Mapping[str, Any]) -> OAuthProfile:
    """Map a Twitch Helix /users response onto a profile.

    Helix wraps the user in data[0]. Twitch only returns an email once the
    user has verified it.
    """
    data = payload.get("data")
    if not isinstance(data, list) or not data or not isinstance(data[0], Mapping):
        msg = "twitch userinfo has no user entry"
        raise OAuthProfileError(msg)
    user = data[0]
    subject = _require_subject(user, "id", "twitch")
    email = _str_or_none(user.get("email"))
    name = _str_or_none(user.get("display_name")) or _str_or_none(user.get("login"))
    return OAuthProfile(
        provider="twitch",
        provider_subject_id=subject,
        email=email,
        username=_fallback_username(name, email),
        avatar_url=_str_or_none(user.get("profile_image_url")),
        email_verified=email is not None,
    )


# ===================================================================
# OAuth Provider Configuration
# ===================================================================


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Configuration for an OAuth provider.

    Attributes:
        authorization_url: Provider's authorization endpoint.
        token_url: Provider's token exchange endpoint.
        userinfo_url: Provider's userinfo endpoint.
        scopes: OAuth scopes to request.
        profile_parser: Maps the userinfo JSON onto an OAuthProfile.
        supports_pkce: Whether to send a PKCE code challenge/verifier.
        extra_auth_params: Additional authorization query parameters.
        userinfo_requires_client_id: Send a Client-Id header on userinfo.
    """

    authorization_url: str
    token_url: str
    userinfo_url: str
    scopes: tuple[str, ...]
    profile_parser: Callable[[Mapping[str, Any]], OAuthProfile]
    supports_pkce: bool = True
    extra_auth_params: Mapping[str, str] = field(default_factory=dict)
    userinfo_requires_client_id: bool = False


_PROVIDERS: dict[str, OAuthProviderConfig] = {
    "google": OAuthProviderConfig(  # nosec B106 - token_url is an endpoint, not a password
        authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
        scopes=("openid", "email", "profile"),
        profile_parser=parse_google_profile,
        extra_auth_params={"prompt": "select_account"},
    ),
    "discord": OAuthProviderConfig(  # nosec B106 - token_url is an endpoint, not a password
        authorization_url="https://discord.com/oauth2/authorize",
        token_url="https://discord.com/api/oauth2/token",
        userinfo_url="https://discord.com/api/users/@me",
        scopes=("identify", "email"),
        profile_parser=parse_discord_profile,
        supports_pkce=False,
    ),
    "twitch": OAuthProviderConfig(  # nosec B106 - token_url is an endpoint, not a password
        authorization_url="https://id.twitch.tv/oauth2/authorize",
        token_url="https://id.twitch.tv/oauth2/token",
        userinfo_url="https://api.twitch.tv/helix/users",
        scopes=("user:read:email",),
        profile_parser=parse_twitch_profile,
        supports_pkce=False,
        userinfo_requires_client_id=True,
    ),
}


def get_provider_config(provider: str) -> OAuthProviderConfig:
    """Get OAuth configuration for a provider.

    Args:
        provider: Provider name (e.g., "google", "discord").

    Returns:
        OAuthProviderConfig for the provider.

    Raises:
        ValueError: If provider is not supported.
    """
    config = _PROVIDERS.get(provider)
    if config is None:
        msg = f"Unsupported OAuth provider: {provider}"
        raise ValueError(msg)
    return config
