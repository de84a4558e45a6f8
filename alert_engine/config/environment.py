"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/alert_engine.db"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
        listing_feed_token: Optional[str] = None,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_sender: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
    ):
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.log_level = log_level
        self.environment = environment or "local"
        self.listing_feed_token = listing_feed_token
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_sender = smtp_sender
        self.smtp_sender_name = smtp_sender_name or "Listing Alerts"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_port and self.smtp_sender)


def load_environment_config(require_smtp: bool = False) -> EnvironmentConfig:
    """Load and validate environment variables.

    Always optional:
    - DATABASE_URL: SQLAlchemy URL (default: sqlite:///./data/alert_engine.db)
    - LOG_LEVEL: Override log level
    - ENVIRONMENT: Label added to every log record (default: local)
    - LISTING_FEED_TOKEN: Bearer token for the listing change feed

    Required only when require_smtp is True (email channel enabled):
    - SMTP_HOST, SMTP_PORT, SMTP_SENDER
    - SMTP_USER / SMTP_PASS (both or neither)
    - SMTP_SENDER_NAME (optional display name)

    Raises:
        ConfigurationError: If variables are missing or invalid
    """
    errors = []

    log_level = os.getenv("LOG_LEVEL")
    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    smtp_sender = os.getenv("SMTP_SENDER")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    smtp_port = None
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if not 1 <= smtp_port <= 65535:
                errors.append(f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535.")
        except ValueError:
            errors.append(f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer.")

    if require_smtp:
        if not smtp_host:
            errors.append("Missing required environment variable: SMTP_HOST")
        if not smtp_port_str:
            errors.append("Missing required environment variable: SMTP_PORT")
        if not smtp_sender:
            errors.append("Missing required environment variable: SMTP_SENDER")

    if smtp_sender:
        try:
            validate_email(smtp_sender, check_deliverability=False)
        except EmailNotValidError as e:
            errors.append(f"Invalid SMTP_SENDER address '{smtp_sender}': {e}")

    if smtp_user and not smtp_pass:
        errors.append("SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication.")
    elif smtp_pass and not smtp_user:
        errors.append("SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication.")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your values",
                "SMTP settings are only required when delivery.email.enabled is true",
            ],
        )

    return EnvironmentConfig(
        database_url=os.getenv("DATABASE_URL"),
        log_level=log_level.upper() if log_level else None,
        environment=os.getenv("ENVIRONMENT"),
        listing_feed_token=os.getenv("LISTING_FEED_TOKEN"),
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_sender=smtp_sender,
        smtp_sender_name=os.getenv("SMTP_SENDER_NAME"),
    )
