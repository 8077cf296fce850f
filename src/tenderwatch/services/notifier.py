"""Notification dispatch with sent-log bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Protocol, Sequence

from sqlalchemy.orm import Session

from tenderwatch.clients.mailer import EmailTransport
from tenderwatch.clients.telegram import TelegramTransport
from tenderwatch.config.settings import Settings
from tenderwatch.db.schema import Alert, Record
from tenderwatch.errors import ChannelDeliveryError
from tenderwatch.repos.notification_repo import SentLogRepository
from tenderwatch.services import templates
from tenderwatch.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Transport(Protocol):
    channel: str

    def send(self, subject: str, body: str, rich: bool = True) -> None:
        """Deliver one message; raise ChannelDeliveryError on failure."""
        raise NotImplementedError


RICH_FORMATTERS: dict[str, Callable[[str, Sequence[Record]], str]] = {
    "telegram": templates.format_telegram_batch,
    "email": templates.format_email_html,
}


@dataclass
class DispatchResult:
    sent: int = 0
    errors: int = 0


def build_transports(settings: Settings) -> dict[str, Transport]:
    """Transports for every channel that has credentials configured."""
    transports: dict[str, Transport] = {}
    if settings.telegram_enabled:
        transports["telegram"] = TelegramTransport(
            bot_token=settings.telegram_bot_token or "",
            chat_id=settings.telegram_chat_id or "",
            api_url=settings.telegram_api_url,
        )
    if settings.email_enabled:
        transports["email"] = EmailTransport(
            host=settings.smtp_host or "",
            port=settings.smtp_port,
            sender=settings.email_from or "",
            recipients=settings.email_to,
            user=settings.smtp_user,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
        )
    return transports


class NotificationDispatcher:
    """
    Sends alert batches per channel.

    A (alert, record, channel) triple goes to the sent-log only after the
    transport accepted the batch, so a crash in between means a resend on the
    next cycle rather than a lost notification.
    """

    def __init__(self, session: Session, transports: Mapping[str, Transport]) -> None:
        self.session = session
        self.transports = dict(transports)
        self.sent_log = SentLogRepository(session)

    def find_new(self, alert: Alert, candidates: Iterable[Record], channel: str) -> list[Record]:
        already = self.sent_log.sent_record_ids(alert.id, channel)
        return [r for r in candidates if r.id not in already]

    def _send(self, channel: str, subject: str, rich_body: str, plain_body: str) -> bool:
        transport = self.transports[channel]
        try:
            transport.send(subject, rich_body, rich=True)
            return True
        except ChannelDeliveryError as e:
            LOGGER.warning("rich send failed, retrying as plain text", extra={"channel": channel, "error": str(e)})

        try:
            transport.send(subject, plain_body, rich=False)
            return True
        except ChannelDeliveryError as e:
            LOGGER.error("plain-text send failed", extra={"channel": channel, "error": str(e)})
            return False

    def send_batch(self, channel: str, alert_name: str, items: Sequence[Record]) -> bool:
        """Format up to ten items (plus an overflow line) and send. False on delivery failure."""
        if not items:
            return True
        subject = f"tenderwatch: {alert_name} ({len(items)} new)"
        rich = RICH_FORMATTERS[channel](alert_name, items)
        plain = templates.format_plain_batch(alert_name, items)
        return self._send(channel, subject, rich, plain)

    def dispatch(self, alert: Alert, items: Sequence[Record]) -> DispatchResult:
        result = DispatchResult()
        for channel in alert.channels:
            if channel not in self.transports:
                LOGGER.debug("channel not configured", extra={"alert_id": alert.id, "channel": channel})
                continue

            new = self.find_new(alert, items, channel)
            if not new:
                continue

            if self.send_batch(channel, alert.name, new):
                self.sent_log.record_sent(alert.id, (r.id for r in new), channel)
                result.sent += len(new)
                LOGGER.info(
                    "alert notified",
                    extra={"alert_id": alert.id, "channel": channel, "records": len(new)},
                )
            else:
                result.errors += 1
                LOGGER.error(
                    "alert delivery failed",
                    extra={"alert_id": alert.id, "channel": channel, "record_ids": [r.id for r in new]},
                )
        return result
