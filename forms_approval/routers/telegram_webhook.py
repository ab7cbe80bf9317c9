import json
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from forms_approval.config import Settings
from forms_approval.database import get_db
from forms_approval.dependencies import get_settings, get_store, get_telegram
from forms_approval.errors import StoreError
from forms_approval.logging_config import get_logger
from forms_approval.schemas.telegram import TelegramUpdate
from forms_approval.services.decision_service import ACK_PROCESSED, DecisionError, process_callback
from forms_approval.services.keyed_store import KeyedStore
from forms_approval.services.telegram_service import TelegramService

logger = get_logger("telegram_webhook")

router = APIRouter()

ACK_INVALID_CALLBACK = "Invalid callback"
ACK_STORE_FAILED = "Storage unavailable"


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """
    Parse Telegram update with tolerant decoding to avoid utf-8 crashes.
    Returns dict or None.
    """
    try:
        return await request.json()
    except ValueError as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            return json.loads(raw.decode(enc, errors="replace"))
        except ValueError:
            continue

    logger.error("Failed to decode Telegram webhook payload after fallbacks")
    return None


def acknowledge(telegram: Optional[TelegramService], callback_query_id: str) -> None:
    """Telegram keeps redelivering a callback until it is answered."""
    if telegram is None:
        logger.error("Cannot answer callback: Telegram not configured")
        return
    response = telegram.answer_callback_query(callback_query_id)
    if not response.get("ok"):
        logger.warning(f"Answer callback failed: {response.get('description')}")


@router.post("/telegram-webhook")
async def handle_telegram_webhook(
    request: Request,
    db: Session = Depends(get_db),
    store: KeyedStore = Depends(get_store),
    telegram: Optional[TelegramService] = Depends(get_telegram),
    app_settings: Settings = Depends(get_settings),
):
    """Apply an operator decision (button press) and answer the callback."""
    body = await parse_telegram_update(request)
    if not isinstance(body, dict) or not isinstance(body.get("callback_query"), dict):
        logger.warning("Invalid Telegram callback", extra={"context": {"body": body}})
        return PlainTextResponse(ACK_INVALID_CALLBACK, status_code=400)

    try:
        update = TelegramUpdate(**body)
    except PydanticValidationError as e:
        logger.warning(f"Invalid Telegram callback: {e}")
        return PlainTextResponse(ACK_INVALID_CALLBACK, status_code=400)

    callback = update.callback_query
    logger.info("Callback received", extra={"context": {"callback_id": callback.id, "data": callback.data}})

    ack, status_code = ACK_PROCESSED, 200
    try:
        process_callback(db, store, telegram, app_settings, callback.data)
    except DecisionError as e:
        logger.warning(e.message, extra={"context": {"callback_id": callback.id}})
        ack = e.ack
    except StoreError as e:
        logger.error(e.message, extra={"context": {"callback_id": callback.id, "data": callback.data}})
        ack, status_code = ACK_STORE_FAILED, 500
    finally:
        acknowledge(telegram, callback.id)

    return PlainTextResponse(ack, status_code=status_code)
