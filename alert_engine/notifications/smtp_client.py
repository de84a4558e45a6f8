"""SMTP client wrapper for email delivery.

Thin wrapper around smtplib with TLS/SSL, authentication and connection
cleanup. Failures are classified: 5xx replies and refused recipients are
permanent, everything else (4xx replies, dropped or refused connections) is
retryable.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from alert_engine.config.environment import EnvironmentConfig

from .models import SMTPDeliveryError

logger = logging.getLogger(__name__)


class SMTPClient:
    """Wrapper around smtplib for sending email messages.

    Factories are injectable so tests can replace smtplib entirely.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
        timeout: float = 30.0,
    ):
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL
        self.timeout = timeout

    def send(
        self,
        message: EmailMessage,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
    ) -> None:
        """Send an email message via SMTP.

        Args:
            message: Fully constructed EmailMessage to send
            env_config: Environment configuration with SMTP settings
            use_tls: Whether to use STARTTLS (port 465 always uses implicit TLS)

        Raises:
            SMTPDeliveryError: If delivery fails; .retryable says whether a
                later attempt can succeed
        """
        smtp = None
        try:
            if env_config.smtp_port == 465:
                logger.debug(
                    f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS"
                )
                context = ssl.create_default_context()
                smtp = self.smtp_ssl_factory(
                    env_config.smtp_host,
                    env_config.smtp_port,
                    context=context,
                    timeout=self.timeout,
                )
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(
                    env_config.smtp_host, env_config.smtp_port, timeout=self.timeout
                )
                if use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if env_config.smtp_user and env_config.smtp_pass:
                smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message sent successfully to {message['To']}")

        except smtplib.SMTPRecipientsRefused as e:
            raise SMTPDeliveryError(f"Recipient refused: {e}", retryable=False) from e
        except smtplib.SMTPResponseException as e:
            permanent = 500 <= e.smtp_code < 600
            raise SMTPDeliveryError(
                f"SMTP error {e.smtp_code} during message delivery: {e.smtp_error!r}",
                retryable=not permanent,
            ) from e
        except smtplib.SMTPException as e:
            raise SMTPDeliveryError(f"SMTP error during message delivery: {e}") from e
        except OSError as e:
            raise SMTPDeliveryError(f"Network error during SMTP connection: {e}") from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def normalize_recipient(address: str) -> str:
    """Validate one address and return its normalized form.

    Raises:
        ValueError: If the address is invalid
    """
    try:
        return validate_email(address.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValueError(f"Invalid email address '{address}': {e}") from e


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' header, e.g. "Listing Alerts <alerts@example.com>"."""
    sender_email = env_config.smtp_sender or env_config.smtp_user or f"noreply@{env_config.smtp_host}"
    return f"{env_config.smtp_sender_name} <{sender_email}>"
