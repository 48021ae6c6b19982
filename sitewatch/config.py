from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "SITEWATCH_",
        "extra": "ignore",
    }

    # Storage
    db_path: str = "data/sitewatch.db"

    # Scheduling (seconds)
    tick_interval: float = 5.0  # how often due endpoints are selected
    prune_interval: float = 3600.0  # retention pruning period
    max_concurrency: int = 0  # 0 = one task per due endpoint, unbounded

    # Optional YAML file imported at startup (existing endpoints are kept)
    endpoints_file: str = ""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Logging
    log_level: str = "INFO"

    # Alerts (optional generic JSON webhook)
    alert_webhook_url: str = ""
    alert_webhook_timeout: float = 10.0


settings = Settings()
