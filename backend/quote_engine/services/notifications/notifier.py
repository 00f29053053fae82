"""
Notification Delivery

Fire-and-forget "party should be told X" messages. Delivery itself is an
external service; failures are raised to the caller, which logs them and
carries on.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from ... import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    recipient_email: str
    recipient_name: str
    sender_name: str
    text: str
    action_link: str

    def to_payload(self) -> dict:
        """Wire format expected by the email function."""
        return {
            "recipientEmail": self.recipient_email,
            "recipientName": self.recipient_name,
            "senderName": self.sender_name,
            "messageText": self.text,
            "replyLink": self.action_link,
        }


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class LoggingNotifier:
    """Default when no webhook is configured."""

    def notify(self, notification: Notification) -> None:
        logger.info(
            f"Notification to {notification.recipient_email} from {notification.sender_name}: "
            f"{notification.text} ({notification.action_link})"
        )


class WebhookNotifier:
    """POSTs each notification as JSON to an email-sending endpoint."""

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.timeout = timeout or config.NOTIFICATION_TIMEOUT_SECONDS
        self.client = client

    def notify(self, notification: Notification) -> None:
        payload = notification.to_payload()
        if self.client is not None:
            response = self.client.post(self.url, json=payload, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=payload)
        response.raise_for_status()
        logger.debug(f"Notification delivered to {notification.recipient_email} ({response.status_code})")


def build_notifier() -> Notifier:
    if config.NOTIFICATION_WEBHOOK_URL:
        logger.info(f"Notifications will be posted to {config.NOTIFICATION_WEBHOOK_URL}")
        return WebhookNotifier(config.NOTIFICATION_WEBHOOK_URL)
    return LoggingNotifier()
