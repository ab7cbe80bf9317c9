from unittest.mock import MagicMock, patch

import httpx
import pytest

from forms_approval.errors import RemoteApiError
from forms_approval.services.telegram_service import TelegramService, ensure_ok, is_not_modified


@pytest.fixture
def http_client():
    with patch("forms_approval.services.telegram_service.httpx.Client") as client_cls:
        client = MagicMock()
        client_cls.return_value.__enter__.return_value = client
        yield client


class TestRequests:
    def test_send_message_payload(self, http_client):
        http_client.post.return_value.json.return_value = {"ok": True, "result": {"message_id": 5}}
        service = TelegramService("token")

        result = service.send_message("-1001", "<b>hi</b>", reply_markup={"inline_keyboard": []})

        assert result["result"]["message_id"] == 5
        url = http_client.post.call_args.args[0]
        payload = http_client.post.call_args.kwargs["json"]
        assert url == "https://api.telegram.org/bottoken/sendMessage"
        assert payload == {
            "chat_id": "-1001",
            "text": "<b>hi</b>",
            "parse_mode": "HTML",
            "reply_markup": {"inline_keyboard": []},
        }

    def test_edit_message_payload(self, http_client):
        http_client.post.return_value.json.return_value = {"ok": True}
        TelegramService("token").edit_message("-1001", 7, "text")

        payload = http_client.post.call_args.kwargs["json"]
        assert http_client.post.call_args.args[0].endswith("/editMessageText")
        assert payload["message_id"] == 7
        assert "reply_markup" not in payload

    def test_answer_callback_query(self, http_client):
        http_client.post.return_value.json.return_value = {"ok": True}
        TelegramService("token").answer_callback_query("cb-1")

        assert http_client.post.call_args.args[0].endswith("/answerCallbackQuery")
        assert http_client.post.call_args.kwargs["json"] == {"callback_query_id": "cb-1"}

    def test_timeout_becomes_not_ok(self, http_client):
        http_client.post.side_effect = httpx.TimeoutException("timed out")

        result = TelegramService("token", timeout=0.1).get_chat("-1001")

        assert result["ok"] is False
        assert "timed out" in result["description"]

    def test_invalid_json_becomes_not_ok(self, http_client):
        http_client.post.return_value.json.side_effect = ValueError("Expecting value")

        result = TelegramService("token").delete_message("-1001", 7)

        assert result["ok"] is False


class TestResponseHelpers:
    def test_ensure_ok_passes_through(self):
        response = {"ok": True, "result": {}}
        assert ensure_ok("sendMessage", response) is response

    def test_ensure_ok_raises(self):
        with pytest.raises(RemoteApiError) as exc_info:
            ensure_ok("sendMessage", {"ok": False, "description": "Forbidden"})
        assert exc_info.value.method == "sendMessage"
        assert exc_info.value.message == "sendMessage failed: Forbidden"

    def test_is_not_modified(self):
        assert is_not_modified({"ok": False, "description": "Bad Request: message is not modified"})
        assert not is_not_modified({"ok": False, "description": "Bad Request: message to edit not found"})
        assert not is_not_modified({"ok": True})
