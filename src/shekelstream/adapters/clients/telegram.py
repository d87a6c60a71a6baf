from __future__ import annotations

import json
from typing import Any, cast
import urllib.error
import urllib.request

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramClientError(Exception):
    """Base error for Telegram Bot API failures."""


class TelegramClient:
    def __init__(self, token: str, *, base_url: str = TELEGRAM_API_URL) -> None:
        self._token = token
        self._base_url = base_url

    def _parse_json_response(self, body: str) -> dict[str, Any]:
        try:
            return cast(dict[str, Any], json.loads(body))
        except json.JSONDecodeError as e:
            raise TelegramClientError(
                f"Failed to parse Telegram response as JSON: {e}: {body}"
            ) from e

    def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url.rstrip('/')}/bot{self._token}/{method}"
        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(  # noqa: S310
            url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(req) as resp:  # noqa: S310 - external HTTPS
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            err_body = e.read().decode("utf-8", "ignore")
            raise TelegramClientError(
                f"Telegram API error ({e.code}): {err_body}"
            ) from e
        except urllib.error.URLError as e:
            raise TelegramClientError(f"Network error calling Telegram API: {e}") from e

        response = self._parse_json_response(body)
        if not response.get("ok"):
            raise TelegramClientError(
                f"Telegram API rejected {method}: {response.get('description')}"
            )
        return response

    def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        parse_mode: str | None = "Markdown",
    ) -> dict[str, Any]:
        """Send a text message to a chat and return the sent message."""
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return cast(dict[str, Any], self._post("sendMessage", payload).get("result", {}))
