"""SmartLock — Configuration via environment variables."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Lock settings loaded from environment."""

    # App
    app_name: str = "SmartLock"
    app_env: str = "development"
    log_level: str = "INFO"

    # Lock identity
    lock_id: str = "1"
    lock_ip: str = "192.168.100.2"

    # Directory server
    server_ip: str = "192.168.100.1"
    server_port: int = 8000
    service_path: str = "SmartLockRESTService"
    request_timeout_seconds: float = 5.0

    # Sync routine
    routine_period_seconds: float = 300.0
    retry_period_seconds: float = 30.0
    time_tolerance_seconds: float = 5.0
    network_up_on_start: bool = True

    # Cache
    cache_database_url: str = "sqlite:///smartlock-cache.db"

    # Local control surface
    api_host: str = "0.0.0.0"
    api_port: int = 8001

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
