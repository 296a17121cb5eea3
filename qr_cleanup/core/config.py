from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, ValidationInfo
from typing import Optional
import warnings
import logging
from urllib.parse import quote_plus

logger = logging.getLogger(__name__)

ENVIRONMENTS = ("development", "staging", "production")
SSL_MODES = ("disable", "require", "verify-ca", "verify-full")


class Settings(BaseSettings):
    APP_NAME: str = "QR Token Cleanup"

    # Environment (declared before DEBUG and DB_SSL_MODE, their validators read it)
    ENVIRONMENT: str = "development"  # development, staging, production
    DEBUG: bool = False

    # Database
    POSTGRES_HOST: Optional[str] = None
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: Optional[str] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    DATABASE_URL: Optional[str] = Field(default=None, validate_default=True)

    # ===== Transport security =====
    # None -> выбирается по ENVIRONMENT (см. validate_ssl_mode)
    DB_SSL_MODE: Optional[str] = Field(default=None, validate_default=True)
    DB_SSL_ROOT_CERT: Optional[str] = None

    # ===== Timeouts (passed to the server, not enforced by the task) =====
    DB_CONNECT_TIMEOUT_SECONDS: int = 10
    DB_STATEMENT_TIMEOUT_MS: Optional[int] = None

    # ===== Scheduling =====
    CLEANUP_INTERVAL_SECONDS: int = 3600  # раз в час

    # ===== Logging =====
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json, compact
    LOG_TIMEZONE: str = "UTC"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        env_parse_none_str='empty',
    )

    @field_validator('ENVIRONMENT')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ENVIRONMENTS:
            raise ValueError(
                f"ENVIRONMENT must be one of {', '.join(ENVIRONMENTS)} (got: {v!r})"
            )
        return v

    @field_validator('DEBUG')
    @classmethod
    def validate_debug_mode(cls, v: bool, info: ValidationInfo) -> bool:
        """Warn if DEBUG is enabled in production"""
        environment = info.data.get('ENVIRONMENT', 'development')

        if v is True and environment == 'production':
            warnings.warn(
                "DEBUG=True in production environment! This should be disabled in production.",
                UserWarning
            )

        return v

    @field_validator('DATABASE_URL')
    @classmethod
    def build_database_url(cls, v: Optional[str], info: ValidationInfo) -> str:
        """Build DATABASE_URL from components if not provided"""
        if v:
            # libpq-style URLs (postgres://) are not accepted by SQLAlchemy
            if v.startswith("postgres://"):
                v = "postgresql://" + v[len("postgres://"):]
            return v

        data = info.data
        host = data.get('POSTGRES_HOST')
        port = data.get('POSTGRES_PORT')
        db = data.get('POSTGRES_DB')
        user = data.get('POSTGRES_USER')
        password = data.get('POSTGRES_PASSWORD')

        if not all([host, port, db, user, password]):
            raise ValueError(
                "Either DATABASE_URL must be provided, or all of "
                "POSTGRES_HOST, POSTGRES_PORT, POSTGRES_DB, POSTGRES_USER, POSTGRES_PASSWORD"
            )

        # URL-encode username and password to handle special characters
        encoded_user = quote_plus(str(user))
        encoded_password = quote_plus(str(password))

        return f"postgresql://{encoded_user}:{encoded_password}@{host}:{port}/{db}"

    @field_validator('DB_SSL_MODE', mode='before')
    @classmethod
    def validate_ssl_mode(cls, v: Optional[str], info: ValidationInfo) -> str:
        """
        Resolve the transport security policy.

        Without an explicit DB_SSL_MODE the legacy deployment posture is kept:
        encrypted but unverified in production, plaintext everywhere else.
        """
        environment = info.data.get('ENVIRONMENT', 'development')

        if v is None or v == "":
            v = "require" if environment == "production" else "disable"
            if environment == "production":
                warnings.warn(
                    "DB_SSL_MODE is not set; production connections are encrypted "
                    "but the server certificate is not validated. "
                    "Set DB_SSL_MODE=verify-full with DB_SSL_ROOT_CERT.",
                    UserWarning
                )
            return v

        v = str(v).strip().lower()
        if v not in SSL_MODES:
            raise ValueError(
                f"DB_SSL_MODE must be one of {', '.join(SSL_MODES)} (got: {v!r})"
            )
        return v

    @field_validator('LOG_FORMAT')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("json", "compact"):
            logger.warning(f"Unknown LOG_FORMAT {v!r}, falling back to json")
            return "json"
        return v

    @field_validator('DB_STATEMENT_TIMEOUT_MS', 'DB_CONNECT_TIMEOUT_SECONDS', 'CLEANUP_INTERVAL_SECONDS')
    @classmethod
    def validate_positive(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Settings are read on first use, not at import: a broken environment must
    surface inside the task, where it is reported as a failed run.
    """
    return Settings()
