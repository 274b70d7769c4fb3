from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "scoring-api-gateway"
    environment: str = "dev"
    storage_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    run_migrations_on_startup: bool = True
    migrations_dir: str | None = None
    message_bus: Literal["nats", "memory"] = "nats"
    nats_url: str = "nats://localhost:4222"
    nats_connect_timeout_seconds: float = 5.0
    bus_publish_timeout_seconds: float = 5.0
    verification_create_topic: str = "verification.create"
    verification_completed_topic: str = "verification.completed"
    verification_data_topic: str = "verification.data"
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    log_level: str = "INFO"
    log_json: bool = False
    otel_enabled: bool = True
    otel_service_name: str = "scoring-api-gateway"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="SG_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
