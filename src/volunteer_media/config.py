"""Configuration and environment variable validation for the volunteer portal."""

import os
import logging
from typing import List, Optional

logger = logging.getLogger(__name__)

VALID_SSL_MODES = ("disable", "require", "verify-ca", "verify-full")
WEAK_SECRET_MARKERS = ("change", "example", "test", "default")


def validate_jwt_secret(secret: Optional[str]) -> None:
    """
    Reject JWT secrets that are missing, short or obviously low entropy.

    Raises:
        ValueError: If the secret is not fit for signing tokens
    """
    if not secret:
        raise ValueError("JWT_SECRET environment variable is required")
    if len(secret) < 32:
        raise ValueError("JWT_SECRET must be at least 32 characters long for security")
    if len(set(secret)) == 1:
        raise ValueError("JWT_SECRET appears to be all the same character - insufficient entropy")
    if len(set(secret)) <= 10:
        raise ValueError(
            "JWT_SECRET has insufficient character variety - use a cryptographically random secret"
        )
    lowered = secret.lower()
    if any(marker in lowered for marker in WEAK_SECRET_MARKERS):
        raise ValueError(
            "JWT_SECRET appears to be a default/example value - use a secure random secret"
        )


class Config:
    """Configuration class that loads and validates environment variables."""

    def __init__(self):
        self.load_config()

    def load_config(self):
        """Load and validate all environment variables."""
        # Environment detection
        self.environment = os.getenv("ENV", "development").lower()
        self.is_production = self.environment == "production"
        self.is_development = self.environment == "development"
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        # JWT configuration
        self.jwt_secret = os.getenv("JWT_SECRET")
        self.jwt_expire_hours = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.bcrypt_rounds = int(os.getenv("BCRYPT_ROUNDS", "12"))

        # Database configuration
        self.db_host = os.getenv("DB_HOST", "localhost")
        self.db_port = os.getenv("DB_PORT", "5432")
        self.db_user = os.getenv("DB_USER", "postgres")
        self.db_password = os.getenv("DB_PASSWORD", "postgres")
        self.db_name = os.getenv("DB_NAME", "volunteer_media_dev")
        self.db_sslmode = os.getenv("DB_SSLMODE", "disable")
        self.database_url = os.getenv("DATABASE_URL") or self._build_database_url()
        self.db_echo = os.getenv("DB_ECHO", "false").lower() == "true"
        self.db_pool_size = int(os.getenv("DB_POOL_SIZE", "10"))

        # HTTP surface
        self.frontend_url = os.getenv("FRONTEND_URL", "http://localhost:5173")
        self.allowed_origins = self._split_csv(
            os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000")
        )
        self.auth_rate_limit_per_minute = int(os.getenv("AUTH_RATE_LIMIT_PER_MINUTE", "5"))
        self.frontend_dist_dir = os.getenv("FRONTEND_DIST_DIR", "frontend/dist")

        # Email configuration
        self.email_enabled = os.getenv("EMAIL_ENABLED", "true").lower() not in ("false", "0")
        self.email_provider = os.getenv("EMAIL_PROVIDER", "smtp").lower()
        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = os.getenv("SMTP_PORT", "")
        self.smtp_username = os.getenv("SMTP_USERNAME", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL", "")
        self.smtp_from_name = os.getenv("SMTP_FROM_NAME", "")
        self.resend_api_key = os.getenv("RESEND_API_KEY", "")
        self.resend_from_email = os.getenv("RESEND_FROM_EMAIL", "")
        self.resend_from_name = os.getenv("RESEND_FROM_NAME", "")

        # GroupMe
        self.groupme_api_url = os.getenv("GROUPME_API_URL", "https://api.groupme.com/v3/bots/post")

        # Storage configuration
        self.storage_provider = os.getenv("STORAGE_PROVIDER", "postgres").lower()
        self.azure_account_name = os.getenv("AZURE_STORAGE_ACCOUNT_NAME", "")
        self.azure_account_key = os.getenv("AZURE_STORAGE_ACCOUNT_KEY", "")
        self.azure_container_name = os.getenv("AZURE_STORAGE_CONTAINER_NAME", "")
        self.azure_endpoint = os.getenv("AZURE_STORAGE_ENDPOINT", "")
        self.azure_use_managed_identity = (
            os.getenv("AZURE_STORAGE_USE_MANAGED_IDENTITY", "false").lower() == "true"
        )

        # Validate configuration based on environment
        self._validate_config()

    def _build_database_url(self) -> str:
        url = (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )
        if self.db_sslmode != "disable":
            url += f"?ssl={self.db_sslmode}"
        return url

    @staticmethod
    def _split_csv(value: str) -> List[str]:
        return [item.strip() for item in value.split(",") if item.strip()]

    def _validate_config(self):
        """Validate configuration and log warnings for potential issues."""
        if self.db_sslmode not in VALID_SSL_MODES:
            raise ValueError(
                f"invalid SSL mode: {self.db_sslmode} "
                f"(must be one of: {', '.join(VALID_SSL_MODES)})"
            )

        if self.storage_provider not in ("postgres", "azure"):
            raise ValueError(f"Unsupported STORAGE_PROVIDER: {self.storage_provider}")

        if self.is_production:
            validate_jwt_secret(self.jwt_secret)

            if not os.getenv("DATABASE_URL") and not os.getenv("DB_HOST"):
                raise ValueError("DATABASE_URL or DB_HOST must be set in production")

            if "*" in self.allowed_origins:
                logger.warning("ALLOWED_ORIGINS contains '*' in production")

        else:
            logger.info(f"Running in {self.environment} mode")
            if not self.jwt_secret:
                logger.warning("JWT_SECRET not set - tokens cannot be issued")


# Global config instance
config = Config()
