# src/bookingdesk/engine/notifications.py
"""Email delivery.

Notifier implementations:
- ResendNotifier: Resend HTTP API (POST /emails, returns {"id": ...})
- DryRunNotifier: logs the message and returns a receipt without sending

The owner alert on a new booking is part of the primary intake flow and
its failure is reported to the webhook source. Customer decision emails
are secondary: send_best_effort() logs failures and never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog

from bookingdesk.contracts import NotificationError, NotificationReceipt

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str
    reply_to: str | None = None


class Notifier(Protocol):
    """Sends one email message."""

    @property
    def dry_run(self) -> bool: ...

    def send(self, message: EmailMessage) -> NotificationReceipt:
        """Send a message.

        Raises:
            NotificationError: Provider rejected the message or was unreachable
        """
        ...


class DryRunNotifier:
    """Records messages instead of sending them."""

    dry_run = True

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> NotificationReceipt:
        self.sent.append(message)
        logger.info("notification.dry_run", to=message.to, subject=message.subject)
        return NotificationReceipt(id=None, dry_run=True)


class ResendNotifier:
    """Resend API client."""

    dry_run = False

    def __init__(
        self,
        http_client: httpx.Client,
        *,
        api_key: str,
        from_email: str,
        api_url: str = "https://api.resend.com/emails",
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._from_email = from_email
        self._api_url = api_url

    def send(self, message: EmailMessage) -> NotificationReceipt:
        body: dict[str, object] = {
            "from": self._from_email,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        if message.reply_to:
            body["reply_to"] = message.reply_to

        try:
            response = self._http.post(
                self._api_url,
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"Email provider unreachable: {type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise NotificationError(
                f"Email provider returned HTTP {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )

        # 2xx means the message was accepted; a body we cannot read only costs the id
        try:
            payload = response.json()
        except ValueError:
            logger.warning("notification.unreadable_response", status_code=response.status_code)
            return NotificationReceipt(id=None)
        message_id = payload.get("id") if isinstance(payload, dict) else None
        return NotificationReceipt(id=message_id if isinstance(message_id, str) else None)


def send_best_effort(notifier: Notifier, message: EmailMessage, **log_context: object) -> NotificationReceipt | None:
    """Send a secondary message; failures are logged, never raised."""
    try:
        return notifier.send(message)
    except NotificationError as e:
        logger.warning(
            "notification.failed",
            subject=message.subject,
            status_code=e.status_code,
            error=e.message,
            **log_context,
        )
        return None
