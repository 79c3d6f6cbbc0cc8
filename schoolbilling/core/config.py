"""Configuration settings for the school billing backend.

Wraps environment variables and provides defaults.
"""

from typing import Optional

from pydantic import Field, PostgresDsn, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings class.

    Attributes:
    ----------
        PROJECT_NAME (str): The name of the project.
        ENVIRONMENT (str): The deployment environment (local, dev, test, prd).
        LOCAL_DEVELOPMENT (bool): Whether the application is running locally.
        FRONTEND_LOCAL_DEVELOPMENT_PORT (int): Port for local frontend development.
        DEBUG (bool): Whether debug mode is enabled.
        LOG_LEVEL (str): The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        POSTGRES_HOST (str): The PostgreSQL server hostname.
        POSTGRES_PORT (int): The PostgreSQL server port.
        POSTGRES_DB (str): The PostgreSQL database name.
        POSTGRES_USER (str): The PostgreSQL username.
        POSTGRES_PASSWORD (str): The PostgreSQL password.
        SQLALCHEMY_ASYNC_DATABASE_URI (Optional[str]): The SQLAlchemy async database URI.
        RUN_ALEMBIC_MIGRATIONS (bool): Whether to run the alembic migrations on startup.
        STRIPE_ENABLED (bool): Whether the Stripe gateway is enabled.
        STRIPE_SECRET_KEY (Optional[str]): The Stripe API secret key.
        STRIPE_WEBHOOK_SECRET (Optional[str]): The signing secret for Stripe webhooks.
        AUTH_ENABLED (bool): Whether bearer tokens are verified.
        AUTH_TOKEN_SECRET (Optional[str]): Shared secret used to verify bearer tokens.
        AUTH_TOKEN_ALGORITHM (str): JWT algorithm used by the identity provider.
        LOCAL_SYSTEM_USER_ID (str): Identity used for every request when auth is disabled.

        # Custom deployment URLs
        APP_FULL_URL (Optional[str]): Base URL of the web app, used for checkout redirects.
        ADDITIONAL_CORS_ORIGINS (Optional[list[str]]): Additional CORS origins separated by commas.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "School Billing"
    ENVIRONMENT: str = "local"
    LOCAL_DEVELOPMENT: bool = False
    FRONTEND_LOCAL_DEVELOPMENT_PORT: int = 3000

    # Debug configuration
    DEBUG: bool = False

    # Logging configuration
    LOG_LEVEL: str = "INFO"

    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "schoolbilling"
    POSTGRES_USER: str = "schoolbilling"
    POSTGRES_PASSWORD: str = "schoolbilling"
    SQLALCHEMY_ASYNC_DATABASE_URI: Optional[str] = Field(default=None, validate_default=True)

    RUN_ALEMBIC_MIGRATIONS: bool = False

    # Stripe configuration
    STRIPE_ENABLED: bool = False
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None, validate_default=True)
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(default=None, validate_default=True)

    # Identity provider configuration
    AUTH_ENABLED: bool = False
    AUTH_TOKEN_SECRET: Optional[str] = Field(default=None, validate_default=True)
    AUTH_TOKEN_ALGORITHM: str = "HS256"
    LOCAL_SYSTEM_USER_ID: str = "local-system-admin"

    APP_FULL_URL: Optional[str] = None
    ADDITIONAL_CORS_ORIGINS: Optional[str] = None  # Separated by commas or semicolons

    @field_validator("ADDITIONAL_CORS_ORIGINS", mode="before")
    def parse_cors_origins(cls, v: Optional[str]) -> Optional[str]:
        """Normalise CORS origins so both comma and semicolon separators work.

        Args:
            v: The CORS origins string.

        Returns:
            Optional[str]: Comma separated origins or None.
        """
        if v is None:
            return v

        origins = [origin.strip() for origin in v.replace(";", ",").split(",")]
        return ",".join(origin for origin in origins if origin)

    @field_validator("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", mode="before")
    def validate_stripe_settings(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        """Require the Stripe keys when STRIPE_ENABLED is True.

        Args:
        ----
            v (Optional[str]): The value of the Stripe setting.
            info (ValidationInfo): The validation context containing all field values.

        Returns:
        -------
            Optional[str]: The validated Stripe setting.

        Raises:
        ------
            ValueError: If STRIPE_ENABLED is True and the key is empty.
        """
        if info.data.get("STRIPE_ENABLED", False) and not v:
            raise ValueError(f"{info.field_name} must be set when STRIPE_ENABLED is True")
        return v

    @field_validator("AUTH_TOKEN_SECRET", mode="before")
    def validate_auth_secret(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        """Require a token secret when AUTH_ENABLED is True."""
        if info.data.get("AUTH_ENABLED", False) and not v:
            raise ValueError("AUTH_TOKEN_SECRET must be set when AUTH_ENABLED is True")
        return v

    @field_validator("SQLALCHEMY_ASYNC_DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: Optional[str], info: ValidationInfo) -> str:
        """Build the SQLAlchemy database URI.

        Args:
        ----
            v (Optional[str]): The value of the SQLALCHEMY_ASYNC_DATABASE_URI setting.
            info (ValidationInfo): The validation context containing all field values.

        Returns:
        -------
            str: The assembled SQLAlchemy async database URI.

        """
        if isinstance(v, str):
            return v

        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=info.data.get("POSTGRES_USER"),
                password=info.data.get("POSTGRES_PASSWORD"),
                host=info.data.get("POSTGRES_HOST", "localhost"),
                port=info.data.get("POSTGRES_PORT"),
                path=f"{info.data.get('POSTGRES_DB') or ''}",
            )
        )

    @property
    def app_url(self) -> str:
        """The app URL.

        Returns:
            str: The app URL, without a trailing slash.
        """
        if self.APP_FULL_URL:
            return self.APP_FULL_URL.rstrip("/")

        if self.ENVIRONMENT == "local":
            return f"http://localhost:{self.FRONTEND_LOCAL_DEVELOPMENT_PORT}"
        return f"https://app.{self.ENVIRONMENT}-schoolbilling.com"

    @property
    def cors_origins(self) -> list[str]:
        """Additional CORS origins as a list."""
        if not self.ADDITIONAL_CORS_ORIGINS:
            return []
        return [origin for origin in self.ADDITIONAL_CORS_ORIGINS.split(",") if origin]


settings = Settings()
