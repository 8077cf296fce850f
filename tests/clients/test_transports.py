from __future__ import annotations

import json
import smtplib

import httpx
import pytest

from tenderwatch.clients.mailer import EmailTransport
from tenderwatch.clients.telegram import TelegramTransport
from tenderwatch.errors import ChannelDeliveryError


def _telegram(handler) -> TelegramTransport:
    return TelegramTransport(
        bot_token="123:abc",
        chat_id="42",
        api_url="https://tg.test",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_telegram_rich_send_uses_markdown():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"ok": True, "result": {}})

    _telegram(handler).send("s", "*hi*")

    path, payload = seen[0]
    assert path == "/bot123:abc/sendMessage"
    assert payload["parse_mode"] == "MarkdownV2"
    assert payload["chat_id"] == "42"


def test_telegram_plain_send_has_no_parse_mode():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    _telegram(handler).send("s", "hi", rich=False)
    assert "parse_mode" not in seen[0]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(400, json={"ok": False, "description": "Bad Request: can't parse entities"}),
        httpx.Response(200, json={"ok": False}),
        httpx.Response(502, text="bad gateway"),
    ],
)
def test_telegram_failures_raise(response):
    with pytest.raises(ChannelDeliveryError) as excinfo:
        _telegram(lambda request: response).send("s", "hi")
    assert excinfo.value.channel == "telegram"


def test_telegram_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ChannelDeliveryError):
        _telegram(handler).send("s", "hi")


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host, port, timeout=None, fail=False):
        self.host, self.port = host, port
        self.calls: list[str] = []
        self.messages = []
        self.fail = fail
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(f"login:{user}")

    def send_message(self, msg):
        if self.fail:
            raise smtplib.SMTPRecipientsRefused({})
        self.messages.append(msg)


@pytest.fixture(autouse=True)
def _reset_smtp():
    FakeSMTP.instances.clear()
    yield


def _mailer(factory=FakeSMTP, **kwargs) -> EmailTransport:
    return EmailTransport(
        host="smtp.test",
        port=587,
        sender="bot@example.com",
        recipients=["a@example.com", "b@example.com"],
        user="bot",
        password="secret",
        smtp_factory=factory,
        **kwargs,
    )


def test_email_rich_send_is_html():
    _mailer().send("Subject", "<p>hi</p>")

    smtp = FakeSMTP.instances[0]
    assert smtp.calls == ["starttls", "login:bot"]
    msg = smtp.messages[0]
    assert msg["To"] == "a@example.com, b@example.com"
    assert msg.get_body(preferencelist=("html",)).get_content().strip() == "<p>hi</p>"


def test_email_plain_send():
    _mailer(starttls=False).send("Subject", "hi", rich=False)

    smtp = FakeSMTP.instances[0]
    assert smtp.calls == ["login:bot"]
    assert smtp.messages[0].get_content_type() == "text/plain"


def test_email_failure_raises_channel_error():
    def failing(host, port, timeout=None):
        return FakeSMTP(host, port, timeout, fail=True)

    with pytest.raises(ChannelDeliveryError) as excinfo:
        _mailer(factory=failing).send("Subject", "hi")
    assert excinfo.value.channel == "email"


def test_email_connection_refused_raises():
    def refused(host, port, timeout=None):
        raise ConnectionRefusedError("no server")

    with pytest.raises(ChannelDeliveryError):
        _mailer(factory=refused).send("Subject", "hi")
