"""Outbound mail transport used by the delivery worker.

``Mailer.send`` either returns (accepted) or raises ``DeliveryError``.
Adapters:
- HttpMailer: JSON mail API over httpx, bounded by a per-message timeout
- LoggingMailer: logs instead of sending (development and dry runs)
"""

import logging
from typing import Protocol

import httpx

from notification_engine.config import Settings, get_settings
from notification_engine.errors import DeliveryError

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send(
        self,
        recipient_email: str,
        subject: str,
        content: str,
        cc: list[str] | None = None,
    ) -> None: ...


class HttpMailer:
    """Sends mail through an HTTP mail API (Resend/Mailgun style JSON body)."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        from_address: str,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.from_address = from_address
        self._client = client or httpx.Client(timeout=timeout)

    def send(
        self,
        recipient_email: str,
        subject: str,
        content: str,
        cc: list[str] | None = None,
    ) -> None:
        payload = {
            "from": self.from_address,
            "to": [recipient_email],
            "subject": subject,
            "text": content,
        }
        if cc:
            payload["cc"] = cc

        try:
            response = self._client.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise DeliveryError(f"Mail API timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            # 4xx other than throttling will not succeed on retry
            retryable = status >= 500 or status == 429
            raise DeliveryError(
                f"Mail API returned {status}: {e.response.text[:200]}",
                retryable=retryable,
            ) from e
        except httpx.HTTPError as e:
            raise DeliveryError(f"Mail API request failed: {e}") from e

        logger.info(
            "Email sent",
            extra={"recipient": recipient_email, "subject": subject, "cc": cc or []},
        )

    def close(self) -> None:
        self._client.close()


class LoggingMailer:
    """Mailer that only logs. Records the messages it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[dict] = []

    def send(
        self,
        recipient_email: str,
        subject: str,
        content: str,
        cc: list[str] | None = None,
    ) -> None:
        self.sent.append({
            "recipient_email": recipient_email,
            "subject": subject,
            "content": content,
            "cc": cc,
        })
        logger.info(
            "[SIMULATED] Delivering email",
            extra={"recipient": recipient_email, "subject": subject, "cc": cc or []},
        )


def build_mailer(settings: Settings | None = None) -> Mailer:
    """HttpMailer when a mail API is configured, LoggingMailer otherwise."""
    settings = settings or get_settings()
    if not settings.MAILER_API_URL:
        logger.warning("MAILER_API_URL not set, emails will only be logged")
        return LoggingMailer()
    return HttpMailer(
        api_url=settings.MAILER_API_URL,
        api_key=settings.MAILER_API_KEY,
        from_address=settings.MAILER_FROM_ADDRESS,
        timeout=settings.MAILER_TIMEOUT_SECONDS,
    )
