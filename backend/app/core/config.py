"""Application configuration loaded from environment variables.

Settings for database, HTTP surface, JWT credentials, and OAuth providers.
Uses pydantic-settings for validation and .env file support.

The Settings object is frozen. Build it once at startup and pass it to
``create_app()``; services receive the pieces they need from there.
"""

from dataclasses import dataclass
from datetime import timedelta

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure defaults that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "tft_arena_dev_password"  # nosec B105
_INSECURE_DEFAULT_ACCESS_SECRET = "dev-access-secret-key"  # nosec B105
_INSECURE_DEFAULT_REFRESH_SECRET = "dev-refresh-secret-key"  # nosec B105

# Minimum length for JWT secrets in production (256 bits = 32 bytes)
_MIN_JWT_SECRET_LENGTH = 32

SUPPORTED_PROVIDERS: tuple[str, ...] = ("google", "discord", "twitch")


@dataclass(frozen=True)
class OAuthCredentials:
    """Client credentials for one OAuth provider.

    Attributes:
        client_id: OAuth client ID issued by the provider.
        client_secret: OAuth client secret issued by the provider.
        callback_url: Redirect URI registered with the provider.
    """

    client_id: str
    client_secret: str
    callback_url: str


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "tft_arena"
    database_user: str = "tft_arena_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # HTTP
    api_prefix: str = "/api"
    # CRITICAL: Never set to ["*"], credentials are allowed on CORS requests
    allowed_origins: list[str] = ["http://localhost:5173"]

    # JWT credentials
    # Access and refresh tokens are signed with distinct secrets so a leaked
    # refresh secret cannot mint access tokens and vice versa.
    jwt_access_secret: SecretStr = SecretStr(_INSECURE_DEFAULT_ACCESS_SECRET)
    jwt_refresh_secret: SecretStr = SecretStr(_INSECURE_DEFAULT_REFRESH_SECRET)
    jwt_access_ttl: timedelta = timedelta(days=7)
    jwt_refresh_ttl: timedelta = timedelta(days=30)

    # OAuth providers (an empty client id or secret disables the provider)
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")
    google_callback_url: str = ""
    discord_client_id: str = ""
    discord_client_secret: SecretStr = SecretStr("")
    discord_callback_url: str = ""
    twitch_client_id: str = ""
    twitch_client_secret: SecretStr = SecretStr("")
    twitch_callback_url: str = ""

    # Frontend URL (OAuth callback redirects land here)
    frontend_url: str = "http://localhost:5173"

    # Public base URL of this API (used to derive default callback URLs)
    backend_url: str = "http://localhost:8000"

    oauth_state_cookie_secure: bool = True

    # Rate Limiting (Security)
    rate_limit_enabled: bool = True

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def is_development(self) -> bool:
        """Whether internal error detail may be exposed in responses."""
        return self.environment == "development"

    def provider_credentials(self, provider: str) -> OAuthCredentials | None:
        """Get client credentials for an OAuth provider.

        Args:
            provider: Provider name (e.g., "google", "discord").

        Returns:
            OAuthCredentials, or None when the provider is unknown or
            not configured.
        """
        if provider not in SUPPORTED_PROVIDERS:
            return None

        client_id: str = getattr(self, f"{provider}_client_id")
        client_secret: SecretStr = getattr(self, f"{provider}_client_secret")
        if not client_id or not client_secret.get_secret_value():
            return None

        callback_url: str = getattr(self, f"{provider}_callback_url") or (
            f"{self.backend_url.rstrip('/')}{self.api_prefix}/auth/{provider}/callback"
        )
        return OAuthCredentials(
            client_id=client_id,
            client_secret=client_secret.get_secret_value(),
            callback_url=callback_url,
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Checks:
        - Token lifetimes must be positive, access shorter than refresh
        - Access and refresh secrets must differ (all environments)
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - JWT secrets must be non-default and >= 32 chars in production
        """
        if self.jwt_access_ttl <= timedelta(0) or self.jwt_refresh_ttl <= timedelta(0):
            msg = "JWT_ACCESS_TTL and JWT_REFRESH_TTL must be positive."
            raise ValueError(msg)
        if self.jwt_access_ttl >= self.jwt_refresh_ttl:
            msg = (
                "JWT_ACCESS_TTL must be shorter than JWT_REFRESH_TTL. "
                f"Got: {self.jwt_access_ttl} >= {self.jwt_refresh_ttl}"
            )
            raise ValueError(msg)

        access_secret = self.jwt_access_secret.get_secret_value()
        refresh_secret = self.jwt_refresh_secret.get_secret_value()
        if access_secret == refresh_secret:
            msg = "JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be different."
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application allows credentials on CORS requests, which "
                "is incompatible with wildcard origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            for name, value, default in (
                ("JWT_ACCESS_SECRET", access_secret, _INSECURE_DEFAULT_ACCESS_SECRET),
                (
                    "JWT_REFRESH_SECRET",
                    refresh_secret,
                    _INSECURE_DEFAULT_REFRESH_SECRET,
                ),
            ):
                if not value or value == default:
                    msg = (
                        f"{name} must be set in production. "
                        'Generate with: python -c "import secrets; '
                        'print(secrets.token_hex(32))"'
                    )
                    raise ValueError(msg)
                if len(value) < _MIN_JWT_SECRET_LENGTH:
                    msg = (
                        f"{name} must be at least {_MIN_JWT_SECRET_LENGTH} "
                        "characters for adequate security."
                    )
                    raise ValueError(msg)

        return self
