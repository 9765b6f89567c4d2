"""
Application configuration — all values overridable via environment variables.
Never hardcode secrets. Use .env for local dev, secrets manager in production.
"""

from functools import lru_cache
from typing import Literal
from urllib.parse import urlparse

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "CHANGE_ME_IN_PRODUCTION_use_openssl_rand_hex_32"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── API ────────────────────────────────────────────────────────────────────
    API_VERSION: str = "1.0.0"
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False
    API_PREFIX: str = "/api"
    HOST: str = "0.0.0.0"
    PORT: int = 3001

    # ── CORS ───────────────────────────────────────────────────────────────────
    # Required: the frontend origin(s) allowed to call the API
    CORS_ORIGINS: list[str]

    # ── Identity provider ──────────────────────────────────────────────────────
    AUTH_PROVIDER: Literal["firebase", "local"] = "firebase"
    FIREBASE_PROJECT_ID: str | None = None
    FIREBASE_CLIENT_EMAIL: str | None = None
    FIREBASE_PRIVATE_KEY: SecretStr | None = None
    FIREBASE_SERVICE_ACCOUNT_PATH: str | None = None
    FIREBASE_WEB_API_KEY: SecretStr | None = None

    # Local provider only (development and tests)
    JWT_SECRET_KEY: str = Field(
        default=DEFAULT_JWT_SECRET,
        description="HS256 signing key for AUTH_PROVIDER=local",
    )
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Emails promoted to super_admin the first time they sync
    SUPER_ADMIN_EMAILS: list[str] = []

    # ── Document store ─────────────────────────────────────────────────────────
    DOCUMENT_STORE: Literal["firestore", "sql"] = "firestore"
    DATABASE_URL: str = "sqlite+aiosqlite:///./housing.db"

    # ── Rate limiting ──────────────────────────────────────────────────────────
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_RESIDENT: str = "60/minute"
    RATE_LIMIT_ADMIN: str = "300/minute"
    RATE_LIMIT_PUBLIC: str = "10/minute"
    RATE_LIMIT_DEFAULT: str = "30/minute"

    # ── Logging ────────────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    @field_validator("CORS_ORIGINS")
    @classmethod
    def validate_origins(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one CORS origin is required")
        for origin in v:
            parsed = urlparse(origin)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValueError(f"CORS origin must be an absolute URL: {origin!r}")
        return v

    @field_validator("SUPER_ADMIN_EMAILS")
    @classmethod
    def normalize_emails(cls, v: list[str]) -> list[str]:
        return [email.strip().lower() for email in v if email.strip()]

    @model_validator(mode="after")
    def check_critical_settings(self) -> "Settings":
        missing: list[str] = []
        needs_project = self.AUTH_PROVIDER == "firebase" or self.DOCUMENT_STORE == "firestore"
        if needs_project and not self.FIREBASE_PROJECT_ID:
            missing.append("FIREBASE_PROJECT_ID")
        if self.DOCUMENT_STORE == "firestore" and not self.FIREBASE_SERVICE_ACCOUNT_PATH:
            if not self.FIREBASE_CLIENT_EMAIL:
                missing.append("FIREBASE_CLIENT_EMAIL")
            if not self.FIREBASE_PRIVATE_KEY:
                missing.append("FIREBASE_PRIVATE_KEY")
        if missing:
            raise ValueError("missing required environment variables: " + ", ".join(missing))

        if (
            self.AUTH_PROVIDER == "local"
            and self.ENVIRONMENT == "production"
            and self.JWT_SECRET_KEY == DEFAULT_JWT_SECRET
        ):
            raise ValueError("JWT_SECRET_KEY must be set when AUTH_PROVIDER=local in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def firebase_private_key(self) -> str | None:
        """Private key with literal ``\\n`` sequences expanded, as stored in .env files."""
        if not self.FIREBASE_PRIVATE_KEY:
            return None
        return self.FIREBASE_PRIVATE_KEY.get_secret_value().replace("\\n", "\n")


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
