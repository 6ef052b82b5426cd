"""Email notification helpers for marketplace order events."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import formataddr
from typing import Iterable, List, Optional, Sequence

from offersync.core.config import Settings

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Fire-and-forget human notification. Implementations never raise."""

    @abstractmethod
    async def send_order_notification(self, order, recipients: Optional[Sequence[str]] = None) -> bool:
        pass


class EmailNotificationService(NotificationSink):
    """Lightweight SMTP helper for order notifications."""

    def __init__(self, settings: Settings):
        self._settings = settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def send_order_notification(self, order, recipients: Optional[Sequence[str]] = None) -> bool:
        """Send a new-order email.

        Args:
            order: MarketplaceOrder with its ``lines`` loaded.
            recipients: Override the default notification list.
        """

        if not self._ready():
            logger.warning("SMTP configuration incomplete; order notification skipped for %s",
                           getattr(order, "external_order_id", "<unknown>"))
            return False

        to_addresses = self._resolve_recipients(recipients)
        if not to_addresses:
            logger.warning("No recipients configured for order notification; skipping email")
            return False

        subject = f"New marketplace order {order.external_order_id}"
        lines: List[str] = [
            f"Order: {order.external_order_id}",
            f"Status: {order.status}",
        ]
        if order.buyer_login or order.buyer_email:
            lines.append(f"Buyer: {order.buyer_login or ''} {order.buyer_email or ''}".strip())
        if order.total_amount is not None:
            lines.append(f"Total: {order.total_amount:,.2f} {order.currency or ''}".strip())

        for line in order.lines or []:
            lines.append(f"  - offer {line.external_offer_id} x {line.quantity}")

        lines.append("\nSent automatically by offersync")
        body_text = "\n".join(lines)

        message = self._build_message(subject, to_addresses, body_text)
        return await self._dispatch(message)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ready(self) -> bool:
        settings = self._settings
        return bool(settings.SMTP_HOST and settings.SMTP_USERNAME and settings.SMTP_PASSWORD)

    def _resolve_recipients(self, override: Optional[Sequence[str]]) -> List[str]:
        recipients: Iterable[str] = override if override else self._settings.NOTIFICATION_EMAILS
        return [email.strip() for email in recipients if email]

    def _build_message(self, subject: str, to_addresses: Sequence[str], body_text: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._formatted_from_address
        message["To"] = ", ".join(sorted(set(to_addresses)))
        message.set_content(body_text)
        return message

    @property
    def _formatted_from_address(self) -> str:
        from_email = self._settings.SMTP_FROM_EMAIL or self._settings.SMTP_USERNAME
        from_name = self._settings.SMTP_FROM_NAME or "Marketplace Orders"
        return formataddr((from_name, from_email))

    async def _dispatch(self, message: EmailMessage) -> bool:
        try:
            await asyncio.to_thread(self._send_sync, message)
            logger.info("Order notification sent to %s", message["To"])
            return True
        except Exception as exc:
            logger.warning("Failed to send order notification: %s", exc, exc_info=True)
            return False

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self._settings
        host = settings.SMTP_HOST
        port = settings.SMTP_PORT or (465 if settings.SMTP_USE_SSL else 587)
        timeout = settings.SMTP_TIMEOUT

        if settings.SMTP_USE_SSL:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=timeout)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=timeout)
        try:
            if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
                smtp.starttls()

            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            smtp.send_message(message)
        finally:
            try:
                smtp.quit()
            except smtplib.SMTPException:
                smtp.close()
