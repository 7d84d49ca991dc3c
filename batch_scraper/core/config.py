"""Configuration management with YAML and environment variable support"""

import os
from typing import Any, Dict, List, Optional, Tuple, Type

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


class BaseConfigSection(BaseSettings):
    """Base class for all config sections with correct environment variable precedence.

    This class customizes the settings source priority to ensure that:
    1. Environment variables have highest priority
    2. Init kwargs (YAML data) have second priority
    3. Default values have lowest priority
    """

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings source priority: env vars > init kwargs > defaults."""
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


class ServerConfig(BaseConfigSection):
    """Server configuration"""

    host: str = (
        "0.0.0.0"  # nosec B104 - Intentional binding to all interfaces for containerized deployment
    )
    port: int = 8000

    model_config = SettingsConfigDict(env_prefix="APP_SERVER_")


class ScraperConfig(BaseConfigSection):
    """Batch scraping configuration"""

    batch_size: int = 5
    batch_pause_ms: int = 30000
    batch_pause_jitter: float = 0.1  # +/- fraction applied to batch_pause_ms
    item_delay_min_ms: int = 5000
    item_delay_max_ms: int = 8000
    max_attempts_per_item: int = 3
    concurrency_per_batch: int = 2
    fetch_timeout: float = 30.0  # seconds
    max_per_hour: int = 60  # 0 disables the hourly budget
    max_per_day: int = 500  # 0 disables the daily budget
    daily_reset_hour_utc: int = 5
    skip_out_of_stock: bool = True

    model_config = SettingsConfigDict(env_prefix="APP_SCRAPER_")

    @field_validator("batch_size", "max_attempts_per_item", "concurrency_per_batch")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("batch_pause_jitter")
    @classmethod
    def validate_jitter(cls, v: float) -> float:
        if not 0 <= v < 0.5:
            raise ValueError("batch_pause_jitter must be in [0, 0.5)")
        return v

    @model_validator(mode="after")
    def validate_ranges(self) -> "ScraperConfig":
        if self.concurrency_per_batch > self.batch_size:
            raise ValueError("concurrency_per_batch must not exceed batch_size")
        if self.item_delay_min_ms > self.item_delay_max_ms:
            raise ValueError("item_delay_min_ms must not exceed item_delay_max_ms")
        if self.batch_pause_ms < 0 or self.item_delay_min_ms < 0:
            raise ValueError("delays must not be negative")
        if self.max_per_hour < 0 or self.max_per_day < 0:
            raise ValueError("budgets must not be negative")
        if not 0 <= self.daily_reset_hour_utc <= 23:
            raise ValueError("daily_reset_hour_utc must be in [0, 23]")
        return self


class HealthConfig(BaseConfigSection):
    """Scraper health thresholds and backoff factors"""

    window_size: int = 20
    degraded_threshold: float = 0.2  # window failure rate
    unhealthy_threshold: float = 0.5
    max_consecutive_failures: int = 5
    degraded_backoff_factor: float = 2.0
    unhealthy_backoff_factor: float = 4.0

    model_config = SettingsConfigDict(env_prefix="APP_HEALTH_")

    @model_validator(mode="after")
    def validate_thresholds(self) -> "HealthConfig":
        if self.window_size < 1:
            raise ValueError("window_size must be at least 1")
        if not 0 < self.degraded_threshold <= self.unhealthy_threshold <= 1:
            raise ValueError(
                "thresholds must satisfy 0 < degraded_threshold <= unhealthy_threshold <= 1"
            )
        if not 1 < self.degraded_backoff_factor <= self.unhealthy_backoff_factor:
            raise ValueError(
                "backoff factors must satisfy 1 < degraded <= unhealthy"
            )
        return self


class StoreConfig(BaseConfigSection):
    """Job checkpoint storage configuration"""

    backend: str = "file"
    data_dir: str = "/app/data"
    checkpoint_retries: int = 3
    checkpoint_backoff: List[float] = Field(default_factory=lambda: [1.0, 2.0, 4.0])

    model_config = SettingsConfigDict(env_prefix="APP_STORE_")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ("file", "memory"):
            raise ValueError("backend must be 'file' or 'memory'")
        return v_lower


class FetcherConfig(BaseConfigSection):
    """Product page fetcher configuration"""

    base_url: str = "https://www.amazon.com/dp/"
    user_agents: List[str] = Field(default_factory=list)
    mock: bool = False

    model_config = SettingsConfigDict(env_prefix="APP_FETCHER_")


class LoggingConfig(BaseConfigSection):
    """Logging configuration"""

    level: str = "INFO"
    format: str = "json"

    model_config = SettingsConfigDict(env_prefix="APP_LOGGING_")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return v_upper


class MonitoringConfig(BaseConfigSection):
    """Monitoring configuration"""

    metrics_enabled: bool = True

    model_config = SettingsConfigDict(env_prefix="APP_MONITORING_")


class Config(BaseSettings):
    """Main application configuration"""

    server: ServerConfig = Field(default_factory=ServerConfig)
    scraper: ScraperConfig = Field(default_factory=ScraperConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="APP_")

    @model_validator(mode="after")
    def validate_backoff_spread(self) -> "Config":
        # A stretched pause must stay above the unjittered base pause
        jitter = self.scraper.batch_pause_jitter
        shortest = self.health.degraded_backoff_factor * (1 - jitter)
        if shortest <= 1:
            raise ValueError(
                "degraded_backoff_factor is too small for batch_pause_jitter: "
                "a degraded pause could fall to the base pause"
            )
        return self


class ConfigService:
    """Service for loading and managing configuration"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.environ.get("APP_CONFIG_PATH", "config.yaml")
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """Load configuration from YAML file with environment variable overrides.

        Environment variables take precedence over YAML values, which in turn
        take precedence over defaults (see BaseConfigSection).
        """
        config_data: Dict[str, Any] = {}

        if os.path.exists(self.config_path):
            with open(self.config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f)
                if yaml_data:
                    config_data = yaml_data

        self._config = Config(
            server=ServerConfig(**config_data.get("server", {})),
            scraper=ScraperConfig(**config_data.get("scraper", {})),
            health=HealthConfig(**config_data.get("health", {})),
            store=StoreConfig(**config_data.get("store", {})),
            fetcher=FetcherConfig(**config_data.get("fetcher", {})),
            logging=LoggingConfig(**config_data.get("logging", {})),
            monitoring=MonitoringConfig(**config_data.get("monitoring", {})),
        )

        return self._config

    def validate(self) -> bool:
        """Validate the loaded configuration"""
        if self._config is None:
            raise ValueError("Configuration not loaded. Call load() first.")

        if self._config.store.checkpoint_retries < 0:
            raise ValueError("store.checkpoint_retries must not be negative")

        return True

    @property
    def config(self) -> Config:
        """Get the loaded configuration"""
        if self._config is None:
            raise ValueError("Configuration not loaded. Call load() first.")
        return self._config
