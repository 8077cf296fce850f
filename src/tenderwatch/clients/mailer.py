"""SMTP e-mail transport."""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Callable, Sequence

from tenderwatch.errors import ChannelDeliveryError


class EmailTransport:
    """
    rich=True sends the body as HTML, rich=False as text/plain.
    `smtp_factory` exists so tests can swap smtplib.SMTP for a fake.
    """

    channel = "email"

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        recipients: Sequence[str],
        user: str | None = None,
        password: str | None = None,
        starttls: bool = True,
        timeout_s: float = 30.0,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.recipients = list(recipients)
        self.user = user
        self.password = password
        self.starttls = starttls
        self.timeout_s = timeout_s
        self._smtp_factory = smtp_factory

    def _message(self, subject: str, body: str, rich: bool) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.recipients)
        if rich:
            msg.set_content("This message requires an HTML-capable mail client.")
            msg.add_alternative(body, subtype="html")
        else:
            msg.set_content(body)
        return msg

    def send(self, subject: str, body: str, rich: bool = True) -> None:
        msg = self._message(subject, body, rich)
        try:
            with self._smtp_factory(self.host, self.port, timeout=self.timeout_s) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.user and self.password:
                    smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelDeliveryError(self.channel, f"{type(e).__name__}: {e}") from e
