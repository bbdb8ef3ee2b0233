"""
Application configuration settings using Pydantic Settings.
Supports environment variables and .env files for flexible deployment.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConversationSettings(BaseSettings):
    """Dialogue policy and session lifecycle configuration."""

    model_config = SettingsConfigDict(env_prefix="CONVERSATION_")

    session_ttl_seconds: int = Field(
        default=1800,
        ge=1,
        description="Inactivity window after which a session is treated as expired"
    )
    history_window: int = Field(
        default=10,
        ge=1,
        description="Number of turns kept in session history"
    )
    sweep_interval_seconds: int = Field(
        default=300,
        ge=1,
        description="Interval between background expiry sweeps"
    )

    # Confidence thresholds
    low_confidence_threshold: float = Field(
        default=0.5,
        ge=0.0, le=1.0,
        description="Below this, an idle-state classification is treated as unclear"
    )
    mid_flow_override_threshold: float = Field(
        default=0.75,
        ge=0.0, le=1.0,
        description="Minimum confidence for an escalation to interrupt an in-progress flow"
    )

    request_number_pattern: str = Field(
        default=r"^\d{2}-\d{8}$",
        description="Shape of a well-formed service request number"
    )

    # Collaborator call policy
    classifier_timeout_seconds: float = Field(default=5.0, gt=0, description="Classifier call deadline")
    lookup_timeout_seconds: float = Field(default=5.0, gt=0, description="Data service call deadline")
    collaborator_retries: int = Field(
        default=1,
        ge=0, le=1,
        description="Bounded retries for a failed collaborator call"
    )


class RedisSettings(BaseSettings):
    """Redis configuration for the shared session store."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    enabled: bool = Field(default=False, description="Use Redis instead of the in-process store")
    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: str | None = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    key_prefix: str = Field(default="civic:session", description="Prefix for session keys")
    key_expiry_grace_seconds: int = Field(
        default=600,
        ge=0,
        description="Extra lifetime of a Redis key beyond the logical session TTL"
    )

    @property
    def url(self) -> str:
        """Build Redis URL."""
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class ClassifierSettings(BaseSettings):
    """Intent classifier service settings."""

    model_config = SettingsConfigDict(env_prefix="CLASSIFIER_")

    provider: Literal["remote", "pattern"] = Field(
        default="pattern",
        description="Classifier implementation: remote or pattern"
    )
    url: str = Field(
        default="http://localhost:8081/classify",
        description="Remote classifier endpoint"
    )
    api_key: str | None = Field(default=None, description="Remote classifier API key")


class OpenDataSettings(BaseSettings):
    """Open-data portal settings for service request lookups."""

    model_config = SettingsConfigDict(env_prefix="OPEN_DATA_")

    base_url: str = Field(
        default="https://data.cityofnewyork.us",
        description="Open-data portal base URL"
    )
    dataset_id: str = Field(default="erm2-nwe9", description="Service request dataset identifier")
    app_token: str | None = Field(default=None, description="Portal application token")
    request_number_field: str = Field(
        default="unique_key",
        description="Dataset column holding the request number"
    )
    search_limit: int = Field(default=5, ge=1, description="Maximum records returned by a search")
    details_url_template: str | None = Field(
        default=None,
        description="Citizen-facing status page, e.g. https://portal.example.gov/status/{request_number}; "
        "unset links to the dataset row"
    )


class DeliverySettings(BaseSettings):
    """Outbound delivery channel settings."""

    model_config = SettingsConfigDict(env_prefix="DELIVERY_")

    webhook_url: str | None = Field(
        default=None,
        description="Endpoint that renders and delivers replies; unset disables forwarding"
    )
    timeout_seconds: float = Field(default=5.0, gt=0, description="Delivery call timeout")


class EscalationSettings(BaseSettings):
    """Human escalation contact details shown to citizens."""

    model_config = SettingsConfigDict(env_prefix="ESCALATION_")

    phone: str = Field(default="311", description="Phone line for human agents")
    email: str = Field(default="help@city.example.gov", description="Support email address")
    hours: str = Field(default="Mon-Fri 8am-6pm", description="Staffed hours")
    portal_url: str = Field(
        default="https://portal.city.example.gov/311",
        description="Self-service portal"
    )


class APISettings(BaseSettings):
    """API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field(default="0.0.0.0", description="API host")
    port: int = Field(default=8000, description="API port")
    workers: int = Field(default=1, description="Number of workers")
    debug: bool = Field(default=False, description="Debug mode")
    cors_origins: list[str] = Field(
        default=["*"],
        description="CORS allowed origins"
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )
    log_level: str = Field(default="INFO", description="Logging level")

    # Sub-settings
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    open_data: OpenDataSettings = Field(default_factory=OpenDataSettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    escalation: EscalationSettings = Field(default_factory=EscalationSettings)
    api: APISettings = Field(default_factory=APISettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
