from typing import Optional

import httpx

from forms_approval.errors import RemoteApiError
from forms_approval.logging_config import get_logger

logger = get_logger("telegram_service")

DEFAULT_TIMEOUT_SECONDS = 5.0
NOT_MODIFIED_MARKER = "message is not modified"


class TelegramService:
    """Thin client for the Telegram Bot API methods the approval flow needs."""

    BASE_URL = "https://api.telegram.org/bot{token}"

    def __init__(self, bot_token: str, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.bot_token = bot_token
        self.timeout = timeout
        self.base_url = self.BASE_URL.format(token=bot_token)

    def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        """Make request to Telegram API. Transport failures come back as ok=false."""
        url = f"{self.base_url}/{method}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, json=data or {})
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Telegram API error: {e}", extra={"context": {"method": method}})
            return {"ok": False, "description": str(e)}

    def send_message(
        self,
        chat_id: str,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: str = "HTML",
    ) -> dict:
        """Send message to Telegram chat."""
        data = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": parse_mode,
        }
        if reply_markup:
            data["reply_markup"] = reply_markup

        return self._make_request("sendMessage", data)

    def edit_message(
        self,
        chat_id: str,
        message_id: int,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: str = "HTML",
    ) -> dict:
        """Edit existing message."""
        data = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": parse_mode,
        }
        if reply_markup:
            data["reply_markup"] = reply_markup

        return self._make_request("editMessageText", data)

    def delete_message(self, chat_id: str, message_id: int) -> dict:
        return self._make_request("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    def get_chat(self, chat_id: str) -> dict:
        """Lightweight existence check used before editing a remembered message."""
        return self._make_request("getChat", {"chat_id": chat_id})

    def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> dict:
        data = {"callback_query_id": callback_query_id}
        if text:
            data["text"] = text
        return self._make_request("answerCallbackQuery", data)

    def set_webhook(self, url: str) -> dict:
        return self._make_request("setWebhook", {"url": url})

    def delete_webhook(self) -> dict:
        return self._make_request("deleteWebhook", {})


def is_not_modified(response: dict) -> bool:
    """Telegram refuses edits that would leave the text unchanged."""
    return NOT_MODIFIED_MARKER in str(response.get("description", "")).lower()


def ensure_ok(method: str, response: dict) -> dict:
    if not response.get("ok"):
        raise RemoteApiError(method, str(response.get("description") or response.get("error") or "Unknown error"))
    return response
