"""
PawLenx Backend — Application Configuration
=============================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and yields one immutable `Settings` object.
Who:   Built once by `create_app()` and handed to every service constructor.
When:  At application construction; never re-read while the process runs.

There is deliberately no module-level instance: tests build their own
`Settings(...)` and pass it to `create_app(settings=...)`.
"""

from typing import List

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Placeholder secrets that must be replaced outside local development
_DEV_JWT_SECRET = "pawlenx-dev-jwt-secret"
_DEV_IDENTITY_SECRET = "pawlenx-dev-identity-secret"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have development defaults. Production deployments MUST set
    GITHUB_TOKEN / GITHUB_OWNER / GITHUB_REPO and both signing secrets.
    """

    # ── Remote Document Host (GitHub contents API) ────────────────────────
    # Profiles and pet collections live at users/<key>/*.json in this repo;
    # application files are replicated to applications/<folder>/.
    github_token: SecretStr = Field(
        default=SecretStr(""),
        description="Personal access token with contents:write on the data repo",
    )
    github_owner: str = Field(default="", description="Owner of the data repository")
    github_repo: str = Field(default="", description="Name of the data repository")
    github_branch: str = Field(default="main")
    github_api_url: str = Field(default="https://api.github.com")

    # Hard ceiling for one remote round trip (connect + read + write)
    remote_timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    # ── Authentication ────────────────────────────────────────────────────
    jwt_secret: SecretStr = Field(default=SecretStr(_DEV_JWT_SECRET))
    jwt_algorithm: str = Field(default="HS256")
    token_ttl_days: int = Field(default=7, ge=1, le=90)

    # Keys the HMAC that turns (display name, secret) into a collection key
    identity_key_secret: SecretStr = Field(default=SecretStr(_DEV_IDENTITY_SECRET))

    # bcrypt work factor; tests drop this to 4
    bcrypt_rounds: int = Field(default=12, ge=4, le=16)

    # ── Local Staging Storage ─────────────────────────────────────────────
    storage_root: str = Field(default="./storage")

    # Default: 10 MiB = 10 * 1024 * 1024 = 10485760 bytes per uploaded part
    max_file_size: int = Field(default=10_485_760, ge=1024, le=52_428_800)

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:3000,http://localhost:8080")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=3001, ge=1024, le=65535)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("github_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # ── Remote Retry Configuration ────────────────────────────────────────
    # Tenacity settings for transient remote failures (timeouts, 5xx)
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: float = Field(default=1.0, ge=0, le=30)
    retry_max_wait: float = Field(default=8.0, ge=0, le=120)

    # ── Circuit Breaker ───────────────────────────────────────────────────
    cb_failure_threshold: int = Field(default=5, ge=2, le=20)
    cb_recovery_timeout: int = Field(default=60, ge=1, le=300)

    # ── Compare-and-swap retry (read-modify-write on pet collections) ────
    cas_max_attempts: int = Field(default=5, ge=1, le=20)
    cas_backoff_initial: float = Field(default=0.1, ge=0, le=10)
    cas_backoff_max: float = Field(default=2.0, ge=0, le=30)

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # Per-IP sliding window over the credential and submission endpoints
    rate_limit_requests: int = Field(default=30, ge=1, le=10000)
    rate_limit_window: int = Field(default=900, ge=1, le=86400)  # seconds

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def remote_configured(self) -> bool:
        """True when enough GitHub settings exist to attempt remote calls."""
        return bool(
            self.github_token.get_secret_value() and self.github_owner and self.github_repo
        )

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan); failures are logged.
        How:   Collects every problem and raises one ValueError listing them.
        """
        errors = []
        if not self.remote_configured:
            errors.append(
                "GITHUB_TOKEN, GITHUB_OWNER and GITHUB_REPO must all be set; "
                "account and pet storage will fail without them"
            )
        if self.jwt_secret.get_secret_value() == _DEV_JWT_SECRET:
            errors.append("JWT_SECRET is using the development default")
        if self.identity_key_secret.get_secret_value() == _DEV_IDENTITY_SECRET:
            errors.append("IDENTITY_KEY_SECRET is using the development default")
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )
