"""Environment-driven configuration with Pydantic v2."""

from pathlib import Path
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=4000, env="PORT", ge=1024, le=65535)
    debug: bool = Field(default=False, env="DEBUG")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/leadflow.db", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")
    database_pool_size: int = Field(default=20, env="DATABASE_POOL_SIZE", ge=5, le=100)
    database_max_overflow: int = Field(default=30, env="DATABASE_MAX_OVERFLOW", ge=10, le=100)

    # Execution Engine
    handler_timeout_seconds: float = Field(default=60.0, env="HANDLER_TIMEOUT_SECONDS", gt=0)
    default_delay_ms: int = Field(default=3_600_000, env="DEFAULT_DELAY_MS", ge=0)
    max_steps_per_run: int = Field(default=200, env="MAX_STEPS_PER_RUN", ge=1)
    business_hours_start: int = Field(default=9, env="BUSINESS_HOURS_START", ge=0, le=23)
    business_hours_end: int = Field(default=18, env="BUSINESS_HOURS_END", ge=1, le=24)
    default_timezone: str = Field(default="UTC", env="DEFAULT_TIMEZONE")
    default_locale: str = Field(default="en-US", env="DEFAULT_LOCALE")

    # Stale run sweeper (off by default)
    stale_run_sweeper_enabled: bool = Field(default=False, env="STALE_RUN_SWEEPER_ENABLED")
    stale_run_ttl_seconds: int = Field(default=6 * 3600, env="STALE_RUN_TTL_SECONDS", ge=60)
    stale_run_sweep_interval: int = Field(default=300, env="STALE_RUN_SWEEP_INTERVAL", ge=10)

    # AI lead analysis
    openai_api_key: Optional[str] = Field(default=None, env="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4-turbo-preview", env="OPENAI_MODEL")
    ai_timeout: int = Field(default=30, env="AI_TIMEOUT", ge=5, le=300)

    # Messaging providers
    meta_graph_url: str = Field(default="https://graph.facebook.com", env="META_GRAPH_URL")
    meta_graph_version: str = Field(default="v19.0", env="META_GRAPH_VERSION")
    sendgrid_api_url: str = Field(default="https://api.sendgrid.com", env="SENDGRID_API_URL")
    email_from: Optional[str] = Field(default=None, env="EMAIL_FROM")
    twilio_api_url: str = Field(default="https://api.twilio.com", env="TWILIO_API_URL")
    outbound_timeout: float = Field(default=30.0, env="OUTBOUND_TIMEOUT", gt=0)

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("business_hours_end")
    @classmethod
    def validate_business_hours(cls, v, info):
        start = info.data.get("business_hours_start", 9)
        if v <= start:
            raise ValueError("business_hours_end must be after business_hours_start")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
