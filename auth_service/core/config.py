from dataclasses import dataclass
from typing import List, Optional, Tuple, Union
import json

from pydantic import field_validator
from pydantic_settings import BaseSettings


class ConfigurationError(RuntimeError):
    """Raised at startup when the service cannot run with the given settings."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Auth Service"
    BRAND_NAME: str = "Made in World"

    # Database Settings
    POSTGRES_USER: str = "user"
    POSTGRES_PASSWORD: str = "password"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "auth_db"
    SQLALCHEMY_DATABASE_URI: Optional[str] = None
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URI:
            return self.SQLALCHEMY_DATABASE_URI
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Redis Settings (Celery broker for maintenance tasks)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # JWT Settings
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 30
    REFRESH_TOKEN_TTL_DAYS: int = 30
    REFRESH_TOKEN_BYTES: int = 32

    # One-time code policy
    CODE_EXPIRATION_MINUTES: int = 10
    MAX_CODE_ATTEMPTS: int = 3
    RATE_LIMIT_REQUESTS_PER_HOUR: int = 5
    RATE_LIMIT_WINDOW_HOURS: int = 1
    BCRYPT_ROUNDS: int = 12

    # Retention windows for cleanup
    CODE_RETENTION_HOURS: int = 1
    RATE_LIMIT_RETENTION_HOURS: int = 24
    REFRESH_TOKEN_CLEANUP_GRACE_DAYS: int = 7

    # Account policy
    ADMIN_ALLOWED_ROLES: Union[List[str], str] = ["Admin", "Manufacturer", "3PL", "Partner"]
    DEFAULT_USER_ROLE: str = "Customer"

    # Messaging (AWS SES for email, AWS SNS for SMS)
    AWS_REGION: str = "eu-central-1"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_SES_FROM_EMAIL: str = "no-reply@example.com"
    AWS_SES_FROM_NAME: str = "Made in World"
    SMS_SENDER_ID: str = ""
    MESSAGE_DISPATCH_TIMEOUT_SECONDS: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True

    # CORS Settings - can be set as JSON string in .env
    BACKEND_CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000", "http://localhost:8000"]

    @field_validator("BACKEND_CORS_ORIGINS", "ADMIN_ALLOWED_ROLES", mode="before")
    @classmethod
    def parse_string_list(cls, v: Union[List[str], str]) -> List[str]:
        """Parse a list from JSON string or comma-separated string"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, split by comma
                return [item.strip() for item in v.split(",") if item.strip()]
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@dataclass(frozen=True)
class AuthConfig:
    """
    Immutable policy values handed to every auth component at construction.

    Built once from Settings; components never read the environment themselves.
    """
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_ttl_minutes: int = 30
    refresh_token_ttl_days: int = 30
    refresh_token_bytes: int = 32
    code_ttl_minutes: int = 10
    max_attempts: int = 3
    rate_limit_per_window: int = 5
    rate_limit_window_hours: int = 1
    bcrypt_rounds: int = 12
    code_retention_hours: int = 1
    rate_limit_retention_hours: int = 24
    refresh_token_cleanup_grace_days: int = 7
    admin_allowed_roles: Tuple[str, ...] = ("Admin", "Manufacturer", "3PL", "Partner")
    default_user_role: str = "Customer"
    dispatch_timeout_seconds: int = 10
    brand_name: str = "Made in World"

    def validate(self) -> "AuthConfig":
        """Fail fast on a configuration the service cannot run with."""
        if not self.jwt_secret:
            raise ConfigurationError("JWT_SECRET is not configured")

        positive = {
            "JWT_EXPIRATION_MINUTES": self.access_token_ttl_minutes,
            "REFRESH_TOKEN_TTL_DAYS": self.refresh_token_ttl_days,
            "REFRESH_TOKEN_BYTES": self.refresh_token_bytes,
            "CODE_EXPIRATION_MINUTES": self.code_ttl_minutes,
            "MAX_CODE_ATTEMPTS": self.max_attempts,
            "RATE_LIMIT_REQUESTS_PER_HOUR": self.rate_limit_per_window,
            "RATE_LIMIT_WINDOW_HOURS": self.rate_limit_window_hours,
            "MESSAGE_DISPATCH_TIMEOUT_SECONDS": self.dispatch_timeout_seconds,
            "BCRYPT_ROUNDS": self.bcrypt_rounds,
            "CODE_RETENTION_HOURS": self.code_retention_hours,
            "RATE_LIMIT_RETENTION_HOURS": self.rate_limit_retention_hours,
            "REFRESH_TOKEN_CLEANUP_GRACE_DAYS": self.refresh_token_cleanup_grace_days,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value}")

        # Purging buckets inside the live window would reset the limit
        if self.rate_limit_retention_hours < self.rate_limit_window_hours:
            raise ConfigurationError(
                f"RATE_LIMIT_RETENTION_HOURS ({self.rate_limit_retention_hours}) must not be shorter "
                f"than RATE_LIMIT_WINDOW_HOURS ({self.rate_limit_window_hours})"
            )
        return self

    @classmethod
    def from_settings(cls, source: "Settings") -> "AuthConfig":
        return cls(
            jwt_secret=source.JWT_SECRET,
            jwt_algorithm=source.JWT_ALGORITHM,
            access_token_ttl_minutes=source.JWT_EXPIRATION_MINUTES,
            refresh_token_ttl_days=source.REFRESH_TOKEN_TTL_DAYS,
            refresh_token_bytes=source.REFRESH_TOKEN_BYTES,
            code_ttl_minutes=source.CODE_EXPIRATION_MINUTES,
            max_attempts=source.MAX_CODE_ATTEMPTS,
            rate_limit_per_window=source.RATE_LIMIT_REQUESTS_PER_HOUR,
            rate_limit_window_hours=source.RATE_LIMIT_WINDOW_HOURS,
            bcrypt_rounds=source.BCRYPT_ROUNDS,
            code_retention_hours=source.CODE_RETENTION_HOURS,
            rate_limit_retention_hours=source.RATE_LIMIT_RETENTION_HOURS,
            refresh_token_cleanup_grace_days=source.REFRESH_TOKEN_CLEANUP_GRACE_DAYS,
            admin_allowed_roles=tuple(source.ADMIN_ALLOWED_ROLES),
            default_user_role=source.DEFAULT_USER_ROLE,
            dispatch_timeout_seconds=source.MESSAGE_DISPATCH_TIMEOUT_SECONDS,
            brand_name=source.BRAND_NAME,
        )


settings = Settings()
