"""Welcome and upload-report notifications.

Notifications are fire-and-forget from the pipeline's point of view: a slow
or failing channel is bounded by a short timeout and never fails a row.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from app.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised when a notification could not be delivered."""


class NotificationService:
    """
    Deliver notifications to the configured webhook.

    When no webhook URL is configured the message is written to the log,
    which is how local and development setups receive credentials.
    """

    def __init__(self, webhook_url: Optional[str] = None, timeout: Optional[float] = None):
        self.webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self.timeout = timeout if timeout is not None else settings.notification_timeout_seconds

    def send_welcome(
        self, email: str, full_name: str, temporary_password: str, role: str
    ) -> None:
        """
        Send the first-login credentials to a newly created account.

        Raises:
            NotificationError: If the webhook rejects or cannot be reached
        """
        payload = {
            "event": "account.welcome",
            "data": {
                "email": email,
                "full_name": full_name,
                "role": role,
                "temporary_password": temporary_password,
                "must_change_password": True,
            },
        }
        if not self.webhook_url:
            logger.info(
                f"✉️ Welcome message for {email} ({role}): "
                "account created, password change required on first login"
            )
            return
        self._post(payload)

    def send_upload_report(self, admin_user_id: int, summary: Dict[str, Any]) -> None:
        """Send the finished job summary to the administrator who uploaded it."""
        payload = {
            "event": "upload.report",
            "data": {"admin_user_id": admin_user_id, **summary},
        }
        if not self.webhook_url:
            logger.info(f"📨 Upload report for admin {admin_user_id}: {summary}")
            return
        self._post(payload)

    def _post(self, payload: Dict[str, Any]) -> None:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise NotificationError(
                f"Notification timed out after {self.timeout} seconds"
            ) from e
        except httpx.HTTPError as e:
            raise NotificationError(f"Notification delivery failed: {e}") from e


def get_notifier() -> NotificationService:
    """Dependency for getting the notification service."""
    return NotificationService()
