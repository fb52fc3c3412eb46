"""Centralized configuration using pydantic-settings.

All configuration is loaded from environment variables and .env files.
For nested settings, use double underscore: DASHBOARD__EXPIRING_SOON_DAYS=10
"""

from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ExpiredChartSource(str, Enum):
    """Where the expired-customer chart reads its events from."""

    CUSTOMERS = "customers"
    OVERVIEW = "overview"


DEFAULT_ONLINE_PAYMENT_MODES = [
    "ONLINE",
    "UPI",
    "GPAY",
    "PHONEPE",
    "GOOGLE PAY",
    "BSNL PAYMENT",
]


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ============================================================
    # Core Application Settings
    # ============================================================

    app_name: str = Field("ispadmin-backoffice", description="Application name")
    app_version: str = Field("0.4.0", description="Application version")
    environment: Environment = Field(Environment.DEVELOPMENT, description="Deployment environment")
    debug: bool = Field(False, description="Debug mode")
    testing: bool = Field(False, description="Testing mode")

    # ============================================================
    # Database Configuration
    # ============================================================

    class DatabaseSettings(BaseModel):
        """Database configuration."""

        url: str | None = Field(None, description="Full database URL")
        host: str = Field("localhost", description="Database host")
        port: int = Field(5432, description="Database port")
        database: str = Field("ispadmin", description="Database name")
        username: str = Field("ispadmin", description="Database username")
        password: str = Field("", description="Database password")

        # Connection pool
        pool_size: int = Field(10, description="Connection pool size")
        max_overflow: int = Field(20, description="Max overflow connections")
        pool_timeout: int = Field(30, description="Pool timeout in seconds")
        pool_recycle: int = Field(3600, description="Recycle connections after seconds")
        pool_pre_ping: bool = Field(True, description="Test connections before use")

        echo: bool = Field(False, description="Echo SQL statements")

        @property
        def sqlalchemy_url(self) -> str:
            """Build SQLAlchemy database URL."""
            if self.url:
                return str(self.url)
            return f"postgresql+asyncpg://{self.username}:{self.password}@{self.host}:{self.port}/{self.database}"

    database: DatabaseSettings = DatabaseSettings()  # type: ignore[call-arg]

    # ============================================================
    # Celery & Task Queue
    # ============================================================

    class CelerySettings(BaseModel):
        """Celery configuration."""

        broker_url: str = Field("redis://localhost:6379/0", description="Broker URL")
        result_backend: str = Field("redis://localhost:6379/1", description="Result backend")
        task_serializer: str = Field("json", description="Task serializer")
        result_serializer: str = Field("json", description="Result serializer")
        accept_content: list[str] = Field(
            default_factory=lambda: ["json"], description="Accept content types"
        )
        timezone: str = Field("UTC", description="Timezone")
        enable_utc: bool = Field(True, description="Enable UTC")

    celery: CelerySettings = CelerySettings()  # type: ignore[call-arg]

    # ============================================================
    # Observability
    # ============================================================

    class ObservabilitySettings(BaseModel):
        """Logging configuration."""

        log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
        log_format: str = Field("json", description="Log format (json or text)")
        enable_correlation_ids: bool = Field(True, description="Enable correlation IDs")

    observability: ObservabilitySettings = ObservabilitySettings()  # type: ignore[call-arg]

    # ============================================================
    # Dashboard Aggregation
    # ============================================================

    class DashboardSettings(BaseModel):
        """Dashboard metrics and chart configuration."""

        expiring_soon_days: int = Field(
            7, ge=0, description="Days ahead (inclusive) an active renewal counts as expiring soon"
        )
        renewal_ratio: float = Field(
            0.8, ge=0, description="Scale applied to registrations to derive the renewals series"
        )
        online_payment_modes: list[str] = Field(
            default_factory=lambda: list(DEFAULT_ONLINE_PAYMENT_MODES),
            description="Payment modes classified as online collection",
        )
        refresh_debounce_seconds: float = Field(
            1.0, ge=0, description="Coalescing window for live metrics recomputation"
        )
        overview_batch_size: int = Field(
            500, ge=1, description="Batch size for expired overview cache writes"
        )
        escalation_enabled: bool = Field(
            True, description="Run the complaint escalation sweep"
        )
        expired_chart_source: ExpiredChartSource = Field(
            ExpiredChartSource.CUSTOMERS, description="Source for the expired customer chart"
        )
        sweep_interval_seconds: float = Field(
            900.0, description="Interval for the scheduled escalation sweep"
        )
        reconcile_interval_seconds: float = Field(
            3600.0, description="Interval for the scheduled expired overview reconciliation"
        )

        @field_validator("online_payment_modes")
        @classmethod
        def normalize_payment_modes(cls, v: list[str]) -> list[str]:
            """Store payment modes upper-cased for direct comparison."""
            return [mode.strip().upper() for mode in v if mode and mode.strip()]

    dashboard: DashboardSettings = DashboardSettings()  # type: ignore[call-arg]

    # ============================================================
    # Validation & Helpers
    # ============================================================

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str | Environment) -> Environment:
        """Validate environment."""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.testing or self.environment == Environment.TEST


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore
    return _settings


def reset_settings() -> None:
    """Reset settings (mainly for testing)."""
    global _settings
    _settings = None


# Convenience export
settings = get_settings()
