"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Nutrition plan server and client configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback so the plan API is not exposed to your LAN/WAN
    # by accident. Opt into `0.0.0.0` explicitly when you intend remote access.
    nutriplan_host: str = "127.0.0.1"
    nutriplan_port: int = 8001
    nutriplan_log_level: str = "info"
    nutriplan_allow_insecure_bind: bool = False

    # Storage
    db_path: str = "~/.nutriplan/plans.db"
    encryption_key: str = ""

    # Auth (HMAC-signed bearer tokens)
    auth_secret: str = ""
    auth_token_ttl_seconds: int = 3600

    # Planning
    recent_plan_window_days: int = 7
    significant_calorie_delta: int = 50
    significant_protein_delta: int = 10

    # Daily metrics job; 0 disables the in-process loop (use an outside scheduler)
    metrics_job_interval_seconds: float = 3600.0

    # Client
    api_base_url: str = "http://127.0.0.1:8001"
    request_timeout_seconds: float = 10.0
    plan_cache_ttl_minutes: int = 60
    plan_cache_path: str = ""
    background_refresh_seconds: float = 0.0


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
