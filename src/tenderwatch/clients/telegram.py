"""Telegram Bot API transport (sendMessage over httpx)."""

from __future__ import annotations

import httpx

from tenderwatch.errors import ChannelDeliveryError


class TelegramTransport:
    """
    Sends to one chat. rich=True uses MarkdownV2, rich=False sends the text as-is.
    Any HTTP failure or `"ok": false` answer raises ChannelDeliveryError.
    """

    channel = "telegram"

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_url: str = "https://api.telegram.org",
        timeout_s: float = 15.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.chat_id = chat_id
        self._url = f"{api_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_s)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def send(self, subject: str, body: str, rich: bool = True) -> None:
        payload: dict = {"chat_id": self.chat_id, "text": body, "disable_web_page_preview": True}
        if rich:
            payload["parse_mode"] = "MarkdownV2"
        try:
            resp = self._client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            raise ChannelDeliveryError(self.channel, f"{type(e).__name__}: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400 or not data.get("ok", False):
            detail = data.get("description") or resp.text[:200]
            raise ChannelDeliveryError(self.channel, f"HTTP {resp.status_code}: {detail}")
