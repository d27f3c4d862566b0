"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from typing import List
import warnings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "FinHub Backend API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite:///./finhub.db"

    # Tokens
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    REFRESH_SECRET_KEY: str = "dev-refresh-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Credentials
    BCRYPT_ROUNDS: int = 12
    LOCKOUT_THRESHOLD: int = 5
    LOCKOUT_DURATION_MINUTES: int = 30

    # Authorization
    PERMISSION_CACHE_TTL_SECONDS: int = 300

    # Company defaults
    DEFAULT_CURRENCY: str = "TWD"
    DEFAULT_TAX_RATE: int = 5

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def database_url(self) -> str:
        """Get properly formatted database URL"""
        url = self.DATABASE_URL
        if url.startswith("file:"):
            path = url[5:]
            return f"sqlite:///{path}"
        return url

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def validate_security_settings(self):
        """Validate security settings and warn about insecure defaults"""
        default_keys = [
            "dev-secret-key-change-in-production",
            "dev-refresh-secret-key-change-in-production",
            "secret-key",
            "change-me",
        ]

        for name in ("SECRET_KEY", "REFRESH_SECRET_KEY"):
            value = getattr(self, name)
            if value in default_keys:
                if self.is_production:
                    raise ValueError(
                        f"CRITICAL: Default {name} detected in production! "
                        f"Set the {name} environment variable to a secure random value."
                    )
                warnings.warn(
                    f"WARNING: Using default {name}. "
                    f"Set {name} environment variable for production.",
                    UserWarning
                )
            elif len(value) < 32 and self.is_production:
                raise ValueError(
                    f"CRITICAL: {name} is too short for production! "
                    "Use at least 32 characters."
                )

        if self.SECRET_KEY == self.REFRESH_SECRET_KEY:
            warnings.warn(
                "WARNING: SECRET_KEY and REFRESH_SECRET_KEY are identical; "
                "refresh tokens could be replayed as access tokens.",
                UserWarning
            )

        if self.is_production and self.DEBUG:
            raise ValueError(
                "CRITICAL: DEBUG mode is enabled in production! "
                "Set DEBUG=False for production environment."
            )

        return True

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

# Validate security settings on import (but don't crash in development)
try:
    settings.validate_security_settings()
except ValueError as e:
    if settings.is_production:
        raise
    else:
        warnings.warn(str(e), UserWarning)
