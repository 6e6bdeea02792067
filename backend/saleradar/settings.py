"""Settings for the SaleRadar backend with observability configuration."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("saleradar-api", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")
    obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN")
    obs_tracing_enabled: bool = _env_field(False, "OBS_TRACING_ENABLED")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(0.1, "LOG_SAMPLING_RATE_INFO")
    otel_exporter_otlp_endpoint: Optional[str] = _env_field(None, "OTEL_EXPORTER_OTLP_ENDPOINT")

    # Radius preference applied to new registrations and viewers, in miles
    default_radius_miles: float = _env_field(10.0, "DEFAULT_RADIUS_MILES")
    # Location updates closer than this (miles) to the last propagated fix are dropped
    significant_change_miles: float = _env_field(0.1, "SIGNIFICANT_CHANGE_MILES")

    fanout_worker_enabled: bool = _env_field(True, "FANOUT_WORKER_ENABLED")
    fanout_max_concurrency: int = _env_field(32, "FANOUT_MAX_CONCURRENCY")
    fanout_batch_size: int = _env_field(50, "FANOUT_BATCH_SIZE")
    fanout_poll_interval: float = _env_field(1.0, "FANOUT_POLL_INTERVAL")
    change_feed_enabled: bool = _env_field(True, "CHANGE_FEED_ENABLED")

    push_provider: Literal["fcm", "log"] = _env_field("log", "PUSH_PROVIDER")
    fcm_project_id: Optional[str] = _env_field(None, "FCM_PROJECT_ID", "FIREBASE_PROJECT_ID")
    fcm_access_token: Optional[str] = _env_field(None, "FCM_ACCESS_TOKEN")
    push_timeout_seconds: float = _env_field(15.0, "PUSH_TIMEOUT_SECONDS")
    notification_title: str = _env_field("New Sale Event Nearby!", "NOTIFICATION_TITLE")
    deep_link_base: str = _env_field("/event", "DEEP_LINK_BASE")

    geocoder_enabled: bool = _env_field(True, "GEOCODER_ENABLED")
    geocoder_base_url: str = _env_field("https://nominatim.openstreetmap.org", "GEOCODER_BASE_URL")
    geocoder_user_agent: str = _env_field("saleradar/0.1", "GEOCODER_USER_AGENT")
    geocoder_timeout_seconds: float = _env_field(5.0, "GEOCODER_TIMEOUT_SECONDS")
    # A typed listing address must resolve within this many miles of the seller
    listing_address_max_distance_miles: float = _env_field(0.5, "LISTING_ADDRESS_MAX_DISTANCE_MILES")

    location_timeout_seconds: float = _env_field(15.0, "LOCATION_TIMEOUT_SECONDS")
    location_max_age_seconds: float = _env_field(60.0, "LOCATION_MAX_AGE_SECONDS")
    location_retry_timeout_seconds: float = _env_field(10.0, "LOCATION_RETRY_TIMEOUT_SECONDS")
    location_max_retries: int = _env_field(2, "LOCATION_MAX_RETRIES")

    cors_allow_origins: Any = _env_field((), "CORS_ALLOW_ORIGINS")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
        populate_by_name=True,
    )

    # Environment helpers
    def is_prod(self) -> bool:
        return self.environment.lower() in ("prod", "production", "live")

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development")

    @field_validator("cors_allow_origins", mode="before")
    def _split_cors(cls, value):  # type: ignore[override]
        if value in (None, ""):
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if isinstance(value, (list, tuple, set)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        return ()

    @field_validator("obs_log_level", mode="after")
    def _normalise_level(cls, value: str) -> str:  # type: ignore[override]
        return value.upper()


settings = Settings()
