"""Configuration management for the sequence engine."""

import os
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
from enum import Enum
from dotenv import load_dotenv

ENV_PREFIX = "SEQUENCE_ENGINE_"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application settings
    app_name: str = Field(default="Sequence Engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload in development")

    # Database settings
    database_url: str = Field(
        default="sqlite:///./sequence_engine.db",
        description="Database connection URL"
    )
    database_echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")

    # Runner settings
    max_concurrent_runs: int = Field(default=10, description="Maximum number of runs executing at once")
    delay_scale: float = Field(
        default=1.0,
        description="Factor applied to delay node durations; 0 skips the wait"
    )
    live_api_calls: bool = Field(
        default=False,
        description="Perform real HTTP requests for API-call nodes instead of simulating them"
    )

    # Polling settings
    poll_interval: float = Field(default=2.0, description="Seconds between run status polls")
    poll_max_attempts: int = Field(default=30, description="Polls before a client gives up waiting")

    # Remote service settings
    remote_base_url: Optional[str] = Field(default=None, description="Base URL of a remote sequence engine")
    http_timeout: float = Field(default=10.0, description="Timeout in seconds for remote calls")

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_structured: bool = Field(default=False, description="Emit JSON log lines")

    # Security settings
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        """Validate database URL format."""
        if not v:
            raise ValueError("Database URL cannot be empty")

        supported_schemes = ['sqlite', 'postgresql', 'mysql']
        scheme = v.split('://')[0].split('+')[0].lower()

        if scheme not in supported_schemes:
            raise ValueError(f"Unsupported database scheme: {scheme}. Supported: {supported_schemes}")

        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        """Validate port number."""
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('max_concurrent_runs', 'poll_max_attempts')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator('delay_scale', 'poll_interval')
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Value cannot be negative")
        return v

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.database_url.lower().startswith("sqlite")

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Get Uvicorn server configuration."""
        return {
            "host": self.host,
            "port": self.port,
            "reload": self.reload,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables."""
        def get_env(key: str, default=None, type_func=str):
            """Get environment variable with type conversion."""
            value = os.getenv(f"{ENV_PREFIX}{key}")
            if value is None:
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            elif type_func == list:
                return value.split(',') if value else default
            return type_func(value)

        return cls(
            app_name=get_env("APP_NAME", "Sequence Engine"),
            app_version=get_env("APP_VERSION", "1.0.0"),
            debug=get_env("DEBUG", False, bool),
            host=get_env("HOST", "0.0.0.0"),
            port=get_env("PORT", 8000, int),
            reload=get_env("RELOAD", False, bool),
            database_url=get_env("DATABASE_URL", "sqlite:///./sequence_engine.db"),
            database_echo=get_env("DATABASE_ECHO", False, bool),
            max_concurrent_runs=get_env("MAX_CONCURRENT_RUNS", 10, int),
            delay_scale=get_env("DELAY_SCALE", 1.0, float),
            live_api_calls=get_env("LIVE_API_CALLS", False, bool),
            poll_interval=get_env("POLL_INTERVAL", 2.0, float),
            poll_max_attempts=get_env("POLL_MAX_ATTEMPTS", 30, int),
            remote_base_url=get_env("REMOTE_BASE_URL", None),
            http_timeout=get_env("HTTP_TIMEOUT", 10.0, float),
            log_level=LogLevel(get_env("LOG_LEVEL", "INFO").upper()),
            log_format=get_env("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=get_env("LOG_FILE", None),
            log_structured=get_env("LOG_STRUCTURED", False, bool),
            cors_origins=get_env("CORS_ORIGINS", ["*"], list),
        )


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load configuration from a .env file and environment variables."""
    global _config

    if config_file and os.path.exists(config_file):
        load_dotenv(config_file)
    elif os.path.exists('.env'):
        load_dotenv('.env')

    _config = AppConfig.from_env()

    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def get_testing_config() -> AppConfig:
    """Get testing configuration."""
    return AppConfig(
        debug=True,
        database_url="sqlite:///:memory:",
        log_level=LogLevel.WARNING,
        max_concurrent_runs=2,
        delay_scale=0.0,
        poll_interval=0.01,
        poll_max_attempts=200,
    )
