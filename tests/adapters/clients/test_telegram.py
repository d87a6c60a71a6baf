from __future__ import annotations

import io
import json
from typing import Any
from unittest.mock import MagicMock, patch
import urllib.error

import pytest

from shekelstream.adapters.clients.telegram import TelegramClient, TelegramClientError


def create_response(payload: dict[str, Any]) -> MagicMock:
    response = MagicMock()
    response.read.return_value = json.dumps(payload).encode("utf-8")
    response.__enter__.return_value = response
    return response


def test_send_message_posts_markdown_message() -> None:
    # input
    client = TelegramClient("123:abc", base_url="https://telegram.test")
    response = create_response({"ok": True, "result": {"message_id": 7}})

    # act
    with patch(
        "shekelstream.adapters.clients.telegram.urllib.request.urlopen",
        return_value=response,
    ) as urlopen:
        output = client.send_message("-1001", "*hi*")

    # assert
    assert output == {"message_id": 7}
    request = urlopen.call_args.args[0]
    assert request.full_url == "https://telegram.test/bot123:abc/sendMessage"
    assert json.loads(request.data) == {
        "chat_id": "-1001",
        "text": "*hi*",
        "parse_mode": "Markdown",
    }


def test_send_message_rejected_response_raises() -> None:
    client = TelegramClient("123:abc")
    response = create_response({"ok": False, "description": "chat not found"})
    with patch(
        "shekelstream.adapters.clients.telegram.urllib.request.urlopen",
        return_value=response,
    ):
        with pytest.raises(TelegramClientError, match="chat not found"):
            client.send_message("-1001", "hi")


def test_send_message_http_error_raises() -> None:
    client = TelegramClient("123:abc")
    error = urllib.error.HTTPError(
        "https://api.telegram.org",
        429,
        "Too Many Requests",
        hdrs=None,  # type: ignore[arg-type]
        fp=io.BytesIO(b'{"ok":false,"error_code":429}'),
    )
    with patch(
        "shekelstream.adapters.clients.telegram.urllib.request.urlopen",
        side_effect=error,
    ):
        with pytest.raises(TelegramClientError, match="429"):
            client.send_message("-1001", "hi")
