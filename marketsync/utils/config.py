"""Configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class APIConfig(BaseModel):
    """HTTP transport settings shared by every platform client."""
    timeout: int = 30
    transport_retries: int = 3
    transport_retry_delay: float = 0.5


class FetchConfig(BaseModel):
    """Resilient catalog fetch settings."""
    max_attempts: int = 10
    backoff_base: float = 0.1  # seconds, doubled per attempt
    backoff_ceiling: float = 30.0


class Cafe24Config(BaseModel):
    """Cafe24-specific configuration."""
    api_base_url: str = "https://{mall_id}.cafe24api.com/api/v2/admin"
    oauth_url: str = "https://{mall_id}.cafe24api.com/api/v2/oauth/token"
    api_version: str = "2024-06-01"
    products_key: str = "products"
    page_limit: int = 100
    max_pages: int = 50  # listing offsets stop here even if pages stay full


class RefreshConfig(BaseModel):
    """How adapters ask for a new access token after a 401."""
    mode: str = "direct"  # "direct" or "remote"
    path: str = "/integrations/{platform}/refresh"


class SyncConfig(BaseModel):
    """Synchronization configuration settings."""
    dry_run_default: bool = False


class LoggingFilesConfig(BaseModel):
    """Log file paths."""
    sync: str = "logs/sync.log"
    integration: str = "logs/integration.log"
    error: str = "logs/error.log"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 5
    sink_max_entries: int = 10000  # oldest integration log entries are evicted past this
    files: LoggingFilesConfig = LoggingFilesConfig()


class SchedulerConfig(BaseModel):
    """Scheduler configuration."""
    timezone: str = "Asia/Seoul"
    max_instances: int = 1
    coalesce: bool = True
    misfire_grace_time: int = 300
    initial_delay_seconds: int = 15


class YAMLConfig(BaseModel):
    """Configuration loaded from YAML file."""
    api: APIConfig = APIConfig()
    fetch: FetchConfig = FetchConfig()
    cafe24: Cafe24Config = Cafe24Config()
    refresh: RefreshConfig = RefreshConfig()
    sync: SyncConfig = SyncConfig()
    logging: LoggingConfig = LoggingConfig()
    scheduler: SchedulerConfig = SchedulerConfig()


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Cafe24 OAuth app (per-shop credentials may override these)
    cafe24_client_id: Optional[str] = Field(default=None, description="Cafe24 OAuth client id")
    cafe24_client_secret: Optional[str] = Field(default=None, description="Cafe24 OAuth client secret")
    cafe24_redirect_uri: Optional[str] = Field(default=None, description="Cafe24 OAuth redirect URI")

    # Application settings
    environment: str = Field(default="development", description="Environment (development/production)")
    log_level: Optional[str] = Field(default=None, description="Override log level")
    base_url: str = Field(default="http://localhost:8000", description="Public URL of this service")
    shops_file: str = Field(default="config/shops.yml", description="YAML file seeding the shop store")
    dev_catalog: bool = Field(default=False, description="Serve a fixed catalog instead of calling platforms")
    sync_interval_minutes: int = Field(default=60, description="Sync interval in minutes")
    port: int = Field(default=8000, description="Server port")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


class AppConfig:
    """Combined application configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        self.env = Settings()

        config_path = config_path or Path(__file__).parent.parent.parent / "config" / "config.yml"
        if config_path.exists():
            with open(config_path, "r") as f:
                yaml_data = yaml.safe_load(f) or {}
                self.yaml = YAMLConfig(**yaml_data)
        else:
            self.yaml = YAMLConfig()

        # Override log level if specified in env
        if self.env.log_level:
            self.yaml.logging.level = self.env.log_level

    @property
    def api(self) -> APIConfig:
        return self.yaml.api

    @property
    def fetch(self) -> FetchConfig:
        return self.yaml.fetch

    @property
    def cafe24(self) -> Cafe24Config:
        return self.yaml.cafe24

    @property
    def refresh(self) -> RefreshConfig:
        return self.yaml.refresh

    @property
    def sync(self) -> SyncConfig:
        return self.yaml.sync

    @property
    def logging(self) -> LoggingConfig:
        return self.yaml.logging

    @property
    def scheduler(self) -> SchedulerConfig:
        return self.yaml.scheduler

    @property
    def is_production(self) -> bool:
        return self.env.environment.lower() == "production"

    @property
    def dev_catalog_enabled(self) -> bool:
        """The fixed development catalog is never served in production."""
        return self.env.dev_catalog and not self.is_production


@lru_cache()
def get_config() -> AppConfig:
    """Get cached configuration instance."""
    return AppConfig()
