# /backend/fusion/core/config.py

import json
import logging
from typing import Literal

from pydantic import AliasChoices, Field, PostgresDsn, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )

    # --- Environment & Debug ---
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development", validation_alias="APP_ENV"
    )
    DEBUG: bool = Field(default=False, validation_alias=AliasChoices("DEBUG_MODE", "DEBUG"))
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
    )

    # --- Server Configuration ---
    SERVER_HOST: str = Field(default="0.0.0.0", validation_alias="SERVER_HOST")
    SERVER_PORT: int = Field(default=8000, validation_alias="SERVER_PORT")

    # --- Core Application Settings ---
    APP_NAME: str = Field(default="Fusion Credentials API", validation_alias="APP_NAME")
    APP_VERSION: str = Field(default="0.1.0", validation_alias="APP_VERSION")
    APP_DESCRIPTION: str = Field(
        default="API key, webhook and admin credential lifecycle for Fusion.",
        validation_alias="APP_DESCRIPTION",
    )
    API_PREFIX: str = Field(default="/api", validation_alias="API_PREFIX")

    # --- Database Settings ---
    PRIMARY_DATABASE_URL_ENV: PostgresDsn | None = Field(
        default=None, validation_alias="DATABASE_URL"
    )
    POSTGRES_SERVER: str = Field(default="db", validation_alias="POSTGRES_SERVER")
    POSTGRES_USER: str = Field(default="fusion", validation_alias="POSTGRES_USER")
    POSTGRES_PASSWORD: str = Field(default="fusion", validation_alias="POSTGRES_PASSWORD")
    POSTGRES_DB: str = Field(default="fusion", validation_alias="POSTGRES_DB")
    POSTGRES_PORT: int = Field(default=5432, validation_alias="POSTGRES_PORT")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    # --- Resend Email Settings ---
    RESEND_API_KEY: str | None = Field(default=None, validation_alias="RESEND_API_KEY")
    RESEND_API_URL: str = Field(
        default="https://api.resend.com/emails", validation_alias="RESEND_API_URL"
    )
    ADMIN_EMAIL_FROM: str = Field(
        default="Fusion Admin <info@fusion.paperfrogs.dev>", validation_alias="ADMIN_EMAIL_FROM"
    )

    # --- Admin Console Login ---
    ADMIN_EMAIL_DOMAIN: str = Field(
        default="paperfrogs.dev",
        description="Only addresses under this domain may request admin login codes.",
        validation_alias="ADMIN_EMAIL_DOMAIN",
    )
    ADMIN_CODE_TTL_MINUTES: int = Field(default=5, validation_alias="ADMIN_CODE_TTL_MINUTES")
    ADMIN_SESSION_TTL_HOURS: int = Field(default=24, validation_alias="ADMIN_SESSION_TTL_HOURS")
    ADMIN_DEFAULT_ROLE: str = Field(default="ops_admin", validation_alias="ADMIN_DEFAULT_ROLE")
    TOTP_ISSUER: str = Field(
        default="Fusion Admin",
        description="Issuer shown in authenticator apps.",
        validation_alias="TOTP_ISSUER",
    )

    # --- Webhook Delivery ---
    WEBHOOK_TIMEOUT_SECONDS: float = Field(default=10.0, validation_alias="WEBHOOK_TIMEOUT_SECONDS")
    WEBHOOK_USER_AGENT: str = Field(
        default="Fusion-Webhooks/1.0", validation_alias="WEBHOOK_USER_AGENT"
    )
    WEBHOOK_BACKOFF_BASE_SECONDS: float = Field(
        default=1.0, validation_alias="WEBHOOK_BACKOFF_BASE_SECONDS"
    )
    WEBHOOK_BACKOFF_MAX_SECONDS: float = Field(
        default=60.0, validation_alias="WEBHOOK_BACKOFF_MAX_SECONDS"
    )

    # --- API Key Defaults ---
    API_KEY_RATE_LIMIT_PER_MINUTE: int = Field(
        default=100, validation_alias="API_KEY_RATE_LIMIT_PER_MINUTE"
    )
    API_KEY_RATE_LIMIT_PER_DAY: int = Field(
        default=10000, validation_alias="API_KEY_RATE_LIMIT_PER_DAY"
    )

    # --- Client Accounts ---
    PASSWORD_MIN_LENGTH: int = Field(default=8, validation_alias="PASSWORD_MIN_LENGTH")

    # --- Rate Limiting ---
    RATE_LIMIT_ENABLED: bool = Field(default=True, validation_alias="RATE_LIMIT_ENABLED")
    ADMIN_LOGIN_RATE_LIMIT: str = Field(
        default="10/15minutes", validation_alias="ADMIN_LOGIN_RATE_LIMIT"
    )

    # --- Fields for complex parsing ---
    backend_cors_origins_env_str: str | None = Field(
        default='["*"]',
        validation_alias=AliasChoices("BACKEND_CORS_ORIGINS", "BACKEND_CORS_ORIGINS_ENV"),
    )

    _parsed_backend_cors_origins: list[str] = []

    def _parse_string_list_input_helper(
        self, input_str: str | None, field_name_for_log: str
    ) -> list[str]:
        if not input_str or not input_str.strip():
            return []
        try:
            loaded_items = json.loads(input_str)
        except json.JSONDecodeError:
            logger.debug(
                f"JSONDecodeError for {field_name_for_log}. Falling back to comma separation."
            )
            return [item.strip() for item in input_str.split(",") if item.strip()]
        if isinstance(loaded_items, list):
            return [str(item).strip() for item in loaded_items if str(item).strip()]
        return [item.strip() for item in str(loaded_items).split(",") if item.strip()]

    @model_validator(mode="after")
    def _process_complex_fields_and_debug_overrides(self) -> "Settings":
        self._parsed_backend_cors_origins = self._parse_string_list_input_helper(
            self.backend_cors_origins_env_str, "BACKEND_CORS_ORIGINS"
        )
        self.ADMIN_EMAIL_DOMAIN = self.ADMIN_EMAIL_DOMAIN.lstrip("@").lower()

        if self.DEBUG:
            if self.LOG_LEVEL != "DEBUG":
                logger.info("DEBUG mode is ON. Overriding LOG_LEVEL to DEBUG.")
                self.LOG_LEVEL = "DEBUG"
            if not self.DB_ECHO:
                logger.info("DEBUG mode is ON. Overriding DB_ECHO to True.")
                self.DB_ECHO = True
        return self

    @property
    def BACKEND_CORS_ORIGINS(self) -> list[str]:
        return self._parsed_backend_cors_origins

    def _build_postgres_dsn(self, base_dsn: PostgresDsn | None, use_async: bool) -> PostgresDsn:
        driver_prefix = "postgresql+asyncpg://" if use_async else "postgresql://"

        if base_dsn:
            db_url_str = str(base_dsn)
            if db_url_str.startswith(driver_prefix):
                return base_dsn
            if "://" in db_url_str:
                # postgres://, postgresql://, postgresql+psycopg:// ... all point at the same DB
                return PostgresDsn(driver_prefix + db_url_str.split("://", 1)[1])
            raise ValueError(f"Malformed base DSN for DB (missing scheme?): {db_url_str}")
        return PostgresDsn(
            f"{driver_prefix}{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @computed_field(repr=False)
    @property
    def ASYNC_SQLALCHEMY_DATABASE_URL(self) -> PostgresDsn:
        return self._build_postgres_dsn(self.PRIMARY_DATABASE_URL_ENV, use_async=True)

    @computed_field(repr=False)
    @property
    def SYNC_SQLALCHEMY_DATABASE_URL(self) -> PostgresDsn:
        return self._build_postgres_dsn(self.PRIMARY_DATABASE_URL_ENV, use_async=False)

    @property
    def admin_email_suffix(self) -> str:
        return f"@{self.ADMIN_EMAIL_DOMAIN}"


settings = Settings()
