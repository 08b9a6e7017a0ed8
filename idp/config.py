"""
Application settings, loaded from the environment (and .env when present).
"""

from typing import List
from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "dev-jwt-secret-change-in-production"
DEV_COOKIE_SECRET = "dev-cookie-secret-change-in-production"
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./idp.db", validation_alias="DATABASE_URL"
    )
    db_echo: bool = Field(default=False, validation_alias="DB_ECHO")

    jwt_secret: str = Field(default=DEV_JWT_SECRET, validation_alias="JWT_SECRET")
    cookie_secret: str = Field(default=DEV_COOKIE_SECRET, validation_alias="COOKIE_SECRET")
    issuer: str = Field(default="http://localhost:3000", validation_alias="IDP_URL")
    cors_origins: str = Field(
        default="http://localhost:3001,http://localhost:3002", validation_alias="CORS_ORIGINS"
    )

    # Demo relying parties, production URLs are added to their redirect lists when set.
    app_a_url: str = Field(default="", validation_alias="APP_A_URL")
    app_b_url: str = Field(default="", validation_alias="APP_B_URL")

    google_client_id: str = Field(default="", validation_alias="GOOGLE_CLIENT_ID")
    google_client_secret: str = Field(default="", validation_alias="GOOGLE_CLIENT_SECRET")
    google_authorize_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    google_token_url: str = "https://oauth2.googleapis.com/token"
    google_userinfo_url: str = "https://openidconnect.googleapis.com/v1/userinfo"
    google_scopes: str = "openid email profile"

    # Tokens whose unverified issuer matches this pattern are treated as federated.
    federated_issuer_pattern: str = Field(
        default=r"^(https://)?accounts\.google\.com$",
        validation_alias="FEDERATED_ISSUER_PATTERN",
    )
    upstream_timeout_seconds: float = Field(default=10.0, validation_alias="UPSTREAM_TIMEOUT")
    cleanup_interval_seconds: int = Field(default=3600, validation_alias="CLEANUP_INTERVAL")
    seed_demo_data: bool = Field(default=True, validation_alias="SEED_DEMO_DATA")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_for_production(self) -> None:
        """
        Refuse to start a production deployment with missing or weak secrets.
        """
        problems = []
        for name in ("jwt_secret", "cookie_secret"):
            value = getattr(self, name)
            if not value or value in (DEV_JWT_SECRET, DEV_COOKIE_SECRET):
                problems.append(f"{name.upper()} must be set")
            elif len(value) < MIN_SECRET_LENGTH:
                problems.append(f"{name.upper()} must be at least {MIN_SECRET_LENGTH} characters")
        if problems:
            raise ValueError("Invalid production configuration: " + "; ".join(problems))
        for name in ("jwt_secret", "cookie_secret"):
            lowered = getattr(self, name).lower()
            if any(word in lowered for word in ("secret", "change", "example", "default")):
                logger.warning(f"{name.upper()} looks like a placeholder value")
        for url in [self.issuer, self.app_a_url, self.app_b_url]:
            if url and not url.startswith("https://"):
                logger.warning(f"Non-HTTPS URL configured in production: {url}")


settings = Settings()
