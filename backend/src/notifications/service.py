"""Notification dispatcher for duplicate alerts.

Sends an e-mail (SMTP) and/or a Slack message per flagged duplicate. Channel
failures are logged and never propagate: a failed alert must not undo the
flag that triggered it.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

import requests

from config import Settings, get_settings
from domain.duplicate_detection.ports import DuplicateNotice, NotifierPort
from observability.metrics import notifications_sent_total

from .formatting import email_body, email_subject, slack_message

logger = logging.getLogger(__name__)

CHANNEL_EMAIL = "email"
CHANNEL_SLACK = "slack"


class NotificationDispatcher(NotifierPort):
    """Concrete NotifierPort sending e-mail and Slack alerts."""

    def __init__(self, app_settings: Optional[Settings] = None, http: Optional[requests.Session] = None):
        self.app_settings = app_settings or get_settings()
        self.http = http or requests.Session()

    def dispatch_notification(self, shop_domain: str, notice: DuplicateNotice) -> list[str]:
        """Send the alert on every configured channel.

        Args:
            shop_domain: Shop the duplicate belongs to
            notice: Flagged order, winning match and shop settings

        Returns:
            Channels that delivered successfully
        """
        settings = notice.settings
        if not settings.enable_notifications:
            logger.debug(f"Notifications disabled for {shop_domain}, skipping")
            return []

        if not settings.notification_email and not settings.slack_webhook_url:
            logger.debug(f"No notification channel configured for {shop_domain}")
            return []

        delivered = []

        if settings.notification_email:
            if self._send_email(shop_domain, settings.notification_email, notice):
                delivered.append(CHANNEL_EMAIL)

        if settings.slack_webhook_url:
            if self._send_slack(shop_domain, settings.slack_webhook_url, notice):
                delivered.append(CHANNEL_SLACK)

        return delivered

    def _send_email(self, shop_domain: str, recipient: str, notice: DuplicateNotice) -> bool:
        cfg = self.app_settings
        if not cfg.SMTP_USER or not cfg.SMTP_PASS:
            logger.warning("SMTP credentials not configured, skipping email notification")
            notifications_sent_total.labels(channel=CHANNEL_EMAIL, status="skipped").inc()
            return False

        message = EmailMessage()
        message["Subject"] = email_subject(notice)
        message["From"] = cfg.SMTP_FROM or cfg.SMTP_USER
        message["To"] = recipient
        message.set_content(email_body(shop_domain, notice))

        try:
            if cfg.SMTP_PORT == 465:
                smtp = smtplib.SMTP_SSL(cfg.SMTP_HOST, cfg.SMTP_PORT)
            else:
                smtp = smtplib.SMTP(cfg.SMTP_HOST, cfg.SMTP_PORT)
            with smtp as server:
                if cfg.SMTP_PORT != 465:
                    server.starttls()
                server.login(cfg.SMTP_USER, cfg.SMTP_PASS)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email notification to {recipient}: {e}", exc_info=True)
            notifications_sent_total.labels(channel=CHANNEL_EMAIL, status="error").inc()
            return False

        logger.info(f"Sent duplicate email for order {notice.order.order_id} to {recipient}")
        notifications_sent_total.labels(channel=CHANNEL_EMAIL, status="success").inc()
        return True

    def _send_slack(self, shop_domain: str, webhook_url: str, notice: DuplicateNotice) -> bool:
        try:
            response = self.http.post(
                webhook_url,
                json=slack_message(shop_domain, notice),
                timeout=self.app_settings.SLACK_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to send Slack notification: {e}", exc_info=True)
            notifications_sent_total.labels(channel=CHANNEL_SLACK, status="error").inc()
            return False

        logger.info(f"Sent duplicate Slack alert for order {notice.order.order_id}")
        notifications_sent_total.labels(channel=CHANNEL_SLACK, status="success").inc()
        return True
