"""Keeps one Telegram message per visitor in sync with the pending batch.

The bound message id lives in two places, the batch and the submissions
table; every bind and reset below writes both.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from forms_approval.config import Settings
from forms_approval.errors import RemoteApiError
from forms_approval.logging_config import get_logger, visitor_logger
from forms_approval.services import session_tracker, submission_store
from forms_approval.services.keyed_store import KeyedStore, status_key
from forms_approval.services.notification_service import (
    FormattedMessage,
    PendingBatch,
    build_keyboard,
    clear_batch,
    load_batch,
    render,
    save_batch,
    status_line,
)
from forms_approval.services.state_machine import (
    MessageState,
    edit_failed,
    message_sent,
    state_for,
    verify_failed,
)
from forms_approval.services.telegram_service import TelegramService, ensure_ok, is_not_modified

logger = get_logger("reconciler_service")

ACTION_SENT = "sent"
ACTION_EDITED = "edited"


@dataclass
class DeliveryOutcome:
    delivered: bool
    action: Optional[str] = None
    message_id: Optional[int] = None
    error: Optional[str] = None


def _bind(
    db: Session, store: KeyedStore, settings: Settings, visitor_identity: str, batch: PendingBatch, message_id
) -> None:
    batch.message_id = message_id
    save_batch(store, visitor_identity, batch, settings.batch_ttl_seconds)
    submission_store.bind_message(db, visitor_identity, message_id)


def _send(telegram: TelegramService, chat_id: str, message: FormattedMessage) -> int:
    response = ensure_ok(
        "sendMessage", telegram.send_message(chat_id, message.text, reply_markup=message.reply_markup)
    )
    return response["result"]["message_id"]


def _edit(telegram: TelegramService, chat_id: str, message_id: int, message: FormattedMessage) -> None:
    response = telegram.edit_message(chat_id, message_id, message.text, reply_markup=message.reply_markup)
    if is_not_modified(response):
        return
    ensure_ok("editMessageText", response)


def _mirror(telegram: TelegramService, batch: PendingBatch, chat_ids: list[str], action: str, message, log) -> None:
    """Best-effort copy to secondary destinations; never changes the primary's bound state.

    Each secondary chat keeps its own message id in ``batch.mirror_message_ids``.
    A chat without a known id, or whose edit fails, gets a fresh message.
    """
    for chat_id in chat_ids:
        message_id = batch.mirror_message_ids.get(chat_id)
        if action == ACTION_EDITED and message_id:
            try:
                _edit(telegram, chat_id, message_id, message)
                continue
            except RemoteApiError as e:
                log.warning(f"Secondary message not updated: {e.message}", context={"chat_id": chat_id})
        try:
            batch.mirror_message_ids[chat_id] = _send(telegram, chat_id, message)
        except RemoteApiError as e:
            batch.mirror_message_ids.pop(chat_id, None)
            log.warning(f"Secondary destination not updated: {e.message}", context={"chat_id": chat_id})


def deliver(
    db: Session,
    store: KeyedStore,
    telegram: TelegramService,
    settings: Settings,
    visitor_identity: str,
    now: Optional[datetime] = None,
) -> DeliveryOutcome:
    """Send or edit the visitor's message. Remote failures end up in the outcome, never raised."""
    log = visitor_logger("reconciler_service", visitor=visitor_identity)

    chat_ids = settings.chat_ids
    if not chat_ids:
        return DeliveryOutcome(delivered=False, error="No Telegram destinations configured")

    batch = load_batch(store, visitor_identity)
    if batch is None:
        log.info("No pending notifications")
        return DeliveryOutcome(delivered=False, error="No pending notifications")

    session_id = submission_store.find_session_for_identity(db, visitor_identity)
    online, current_page = session_tracker.liveness(db, session_id, now, settings.online_threshold_seconds)
    message = render(visitor_identity, batch, online, current_page, build_keyboard(settings.buttons, session_id))

    primary, mirrors = chat_ids[0], chat_ids[1:]
    state = state_for(batch.message_id)
    action = None

    if state is MessageState.MESSAGE_BOUND:
        chat = telegram.get_chat(primary)
        if not chat.get("ok"):
            log.warning("Invalid message_id detected, resetting", context={"message_id": batch.message_id})
            _bind(db, store, settings, visitor_identity, batch, None)
            state = verify_failed(state)

    if state is MessageState.MESSAGE_BOUND:
        try:
            _edit(telegram, primary, batch.message_id, message)
            action = ACTION_EDITED
        except RemoteApiError as e:
            log.warning(f"Failed to update Telegram message: {e.description}", context={"message_id": batch.message_id})
            _bind(db, store, settings, visitor_identity, batch, None)
            state = edit_failed(state)

    if state is MessageState.NO_MESSAGE:
        try:
            message_id = _send(telegram, primary, message)
        except RemoteApiError as e:
            log.error(f"Telegram message failed: {e.description}")
            return DeliveryOutcome(delivered=False, error=e.message)
        _bind(db, store, settings, visitor_identity, batch, message_id)
        state = message_sent(state)
        action = ACTION_SENT
        log.info("Telegram message sent", context={"message_id": message_id})
    else:
        # rows recorded since the last send still carry no id
        submission_store.bind_message(db, visitor_identity, batch.message_id)
        log.info("Telegram message updated", context={"message_id": batch.message_id})

    if mirrors:
        _mirror(telegram, batch, mirrors, action, message, log)
        save_batch(store, visitor_identity, batch, settings.batch_ttl_seconds)
    store.set(status_key(visitor_identity), message.status, settings.batch_ttl_seconds)
    return DeliveryOutcome(delivered=True, action=action, message_id=batch.message_id)


def reconcile_all(
    db: Session,
    store: KeyedStore,
    telegram: TelegramService,
    settings: Settings,
    now: Optional[datetime] = None,
) -> dict:
    """Periodic pass: refresh the online status of every visitor with a bound message."""
    summary = {"checked": 0, "skipped": 0, "delivered": 0, "failed": 0, "cleared": 0}

    for visitor_identity in submission_store.identities_with_messages(db):
        summary["checked"] += 1
        batch = load_batch(store, visitor_identity)
        if batch is None:
            logger.info("No pending notifications, clearing message id", extra={"context": {"visitor": visitor_identity}})
            submission_store.bind_message(db, visitor_identity, None)
            clear_batch(store, visitor_identity)
            summary["cleared"] += 1
            continue

        session_id = submission_store.find_session_for_identity(db, visitor_identity)
        online, current_page = session_tracker.liveness(db, session_id, now, settings.online_threshold_seconds)
        if store.get(status_key(visitor_identity)) == status_line(online, current_page):
            logger.debug("No status change, skipping update", extra={"context": {"visitor": visitor_identity}})
            summary["skipped"] += 1
            continue

        outcome = deliver(db, store, telegram, settings, visitor_identity, now)
        summary["delivered" if outcome.delivered else "failed"] += 1

    db.commit()
    logger.info("Reconciliation finished", extra={"context": summary})
    return summary
