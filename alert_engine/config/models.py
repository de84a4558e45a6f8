"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class OverflowPolicy(str, Enum):
    """What the event queue does when it is full."""

    BLOCK = "block"
    DROP_OLDEST = "drop_oldest"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _duration_seconds(value: str, min_seconds: int, max_seconds: int, label: str) -> int:
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds, max_seconds, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return seconds


class ListingFeedConfig(BaseModel):
    """Polling settings for the HTTP listing change feed."""

    name: str = Field("listings", min_length=1, description="Feed name used for cursor storage")
    url: Optional[str] = Field(None, description="Change feed endpoint")
    enabled: bool = Field(True, description="Whether to poll the feed")
    poll_interval: str = Field("30s", description="Polling interval")
    page_size: int = Field(100, ge=1, le=1000, description="Events requested per poll")
    timeout: int = Field(30, ge=5, le=300, description="HTTP request timeout (seconds)")
    user_agent: str = Field(
        "ListingAlertEngine/1.0", min_length=1, description="User-Agent for feed requests"
    )

    poll_interval_seconds: Optional[int] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        stripped = v.strip()
        if not stripped.startswith(("http://", "https://")):
            raise ValueError(f"Feed url must start with http:// or https://, got '{v}'")
        return stripped

    @field_validator("user_agent")
    @classmethod
    def strip_user_agent(cls, v: str) -> str:
        """Strip whitespace from user agent."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_agent cannot be empty")
        return stripped

    @model_validator(mode="after")
    def compute_poll_interval(self):
        self.poll_interval_seconds = _duration_seconds(
            self.poll_interval, 5, 3600, "poll_interval"
        )
        if self.enabled and not self.url:
            raise ValueError("listing_feed.url is required when the feed is enabled")
        return self


class StorageRetryConfig(BaseModel):
    """Backoff for events that hit transient storage errors."""

    max_attempts: int = Field(5, ge=1, le=20, description="Attempts before dead-lettering")
    initial_delay: float = Field(1.0, gt=0, le=60, description="First requeue delay (seconds)")
    backoff_multiplier: float = Field(2.0, ge=1.0, le=5.0, description="Backoff multiplier")
    max_delay: float = Field(60.0, gt=0, le=3600, description="Upper bound for any delay")


class EngineConfig(BaseModel):
    """Worker pool, queue and ledger settings."""

    workers: int = Field(4, ge=1, le=64, description="Number of worker threads")
    queue_capacity: int = Field(1000, ge=1, description="Bounded event queue capacity")
    overflow_policy: OverflowPolicy = Field(
        OverflowPolicy.BLOCK, description="Queue overflow policy (block or drop_oldest)"
    )
    enqueue_timeout_seconds: float = Field(
        5.0, gt=0, le=300, description="Max time a producer blocks on a full queue"
    )
    claim_timeout_seconds: float = Field(
        5.0, gt=0, le=120, description="Bounded wait for a ledger claim (datastore busy timeout)"
    )
    storage_retry: StorageRetryConfig = Field(default_factory=StorageRetryConfig)

    model_config = {"use_enum_values": True}


class RescanConfig(BaseModel):
    """Periodic listing x criteria re-scan."""

    enabled: bool = Field(True, description="Run the periodic re-scan")
    interval: str = Field("1h", description="Re-scan interval")
    window: str = Field("7d", description="Only listings created within this window")

    interval_seconds: Optional[int] = None
    window_seconds: Optional[int] = None

    @model_validator(mode="after")
    def compute_durations(self):
        self.interval_seconds = _duration_seconds(self.interval, 300, 86400, "rescan.interval")
        self.window_seconds = _duration_seconds(self.window, 60, 90 * 86400, "rescan.window")
        return self


class EmailChannelConfig(BaseModel):
    """Email delivery channel settings."""

    enabled: bool = Field(False, description="Send notifications by email")
    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    recipients: Dict[str, str] = Field(
        default_factory=dict, description="owner_id -> email address"
    )

    @field_validator("recipients")
    @classmethod
    def strip_recipients(cls, v: Dict[str, str]) -> Dict[str, str]:
        return {owner.strip(): address.strip() for owner, address in v.items()}


class WebhookChannelConfig(BaseModel):
    """Webhook (push relay) delivery channel settings."""

    enabled: bool = Field(False, description="POST notifications to a webhook")
    url: Optional[str] = Field(None, description="Webhook endpoint")
    timeout: int = Field(10, ge=1, le=120, description="Request timeout (seconds)")

    @model_validator(mode="after")
    def require_url(self):
        if self.enabled and not self.url:
            raise ValueError("delivery.webhook.url is required when the webhook is enabled")
        return self


class DeliveryConfig(BaseModel):
    """Delivery retry policy and channel settings."""

    max_retries: int = Field(
        3, ge=0, le=10, description="Retry attempts for retryable channel failures"
    )
    retry_initial_delay: float = Field(5.0, gt=0, le=600, description="Initial retry delay")
    retry_backoff_multiplier: float = Field(
        2.0, ge=1.0, le=5.0, description="Exponential backoff multiplier for retries"
    )
    retry_max_delay: float = Field(300.0, gt=0, le=86400, description="Delay cap (seconds)")
    email: EmailChannelConfig = Field(default_factory=EmailChannelConfig)
    webhook: WebhookChannelConfig = Field(default_factory=WebhookChannelConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the listing alert engine."""

    listing_feed: ListingFeedConfig = Field(default_factory=lambda: ListingFeedConfig(enabled=False))
    engine: EngineConfig = Field(default_factory=EngineConfig)
    rescan: RescanConfig = Field(default_factory=RescanConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
