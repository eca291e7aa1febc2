import hashlib

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Cache (empty = in-process memory cache)
    REDIS_URL: str = ""

    # JWT Authentication
    SECRET_KEY: str
    REFRESH_SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "tenant-auth"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    REMEMBER_ME_EXPIRE_DAYS: int = 30
    TWO_FACTOR_TOKEN_EXPIRE_MINUTES: int = 5

    # Security
    BCRYPT_ROUNDS: int = 12
    ENCRYPTION_KEY: str = ""
    VERIFICATION_EXPIRE_HOURS: int = 24
    PASSWORD_RESET_EXPIRE_HOURS: int = 1
    INVITATION_EXPIRE_DAYS: int = 7
    MAX_2FA_ATTEMPTS: int = 5
    TWO_FACTOR_RATE_LIMIT_MINUTES: int = 15
    TRUSTED_DEVICE_DAYS: int = 30
    PERMISSION_CACHE_TTL_SECONDS: int = 900
    TOTP_ISSUER: str = "Tenant Auth"

    # Application
    APP_NAME: str = "Tenant Auth API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # CORS
    CORS_ORIGINS: str = ""
    CORS_ALLOW_CREDENTIALS: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS from comma-separated string"""
        if not self.CORS_ORIGINS:
            return []
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def refresh_secret_key(self) -> str:
        """Refresh tokens are signed with their own key so access keys can't refresh"""
        if self.REFRESH_SECRET_KEY:
            return self.REFRESH_SECRET_KEY
        return hashlib.sha256(f"refresh:{self.SECRET_KEY}".encode("utf-8")).hexdigest()


# Global settings instance
settings = Settings()
