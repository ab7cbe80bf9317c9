from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from forms_approval.config import Settings
from forms_approval.errors import ValidationError
from forms_approval.logging_config import get_logger
from forms_approval.services import session_tracker, submission_store
from forms_approval.services.action_token import ActionToken
from forms_approval.services.keyed_store import KeyedStore, session_redirect_key, visitor_redirect_key
from forms_approval.services.notification_service import clear_batch, load_batch
from forms_approval.services.telegram_service import TelegramService

logger = get_logger("decision_service")

ACK_PROCESSED = "Callback processed"
ACK_INVALID_DATA = "Invalid callback data"
ACK_INVALID_SESSION = "Invalid session"


class DecisionError(Exception):
    def __init__(self, message: str, ack: str):
        self.message = message
        self.ack = ack
        super().__init__(message)


@dataclass
class DecisionOutcome:
    verb: str
    session_id: str
    visitor_identity: str
    updated: int = 0
    deleted: bool = False
    redirect: Optional[str] = None


def redirect_url(site_url: str, verb: str) -> str:
    return f"{site_url.rstrip('/')}/{verb.lower()}"


def publish_redirect(store: KeyedStore, session_id: str, visitor_identity: str, url: str, ttl_seconds: int) -> None:
    store.set(session_redirect_key(session_id), url, ttl_seconds)
    store.set(visitor_redirect_key(visitor_identity), url, ttl_seconds)


def clear_redirects(store: KeyedStore, session_id: str, visitor_identity: str) -> None:
    store.delete(session_redirect_key(session_id), visitor_redirect_key(visitor_identity))


def handle_delete(
    db: Session,
    store: KeyedStore,
    telegram: Optional[TelegramService],
    settings: Settings,
    token: ActionToken,
    visitor_identity: str,
) -> DecisionOutcome:
    """Drop every trace of the session: rows, batch, redirects and the chat message."""
    result = submission_store.delete_session_submissions(db, token.session_id)
    outcome = DecisionOutcome(verb=token.verb, session_id=token.session_id, visitor_identity=visitor_identity)
    if not result.deleted:
        logger.warning("Failed to delete submissions", extra={"context": {"session_id": token.session_id}})
        return outcome

    session_tracker.forget(db, token.session_id)
    db.commit()

    batch = load_batch(store, visitor_identity)
    clear_batch(store, visitor_identity)
    clear_redirects(store, token.session_id, visitor_identity)
    outcome.deleted = True
    logger.info(
        "Deleted submissions for session",
        extra={"context": {"session_id": token.session_id, "visitor": visitor_identity}},
    )

    if telegram is None:
        return outcome
    primary, mirrors = settings.chat_ids[:1], settings.chat_ids[1:]
    targets = [(chat_id, result.last_known_message_id) for chat_id in primary]
    if batch is not None:
        targets.extend((chat_id, batch.mirror_message_ids.get(chat_id)) for chat_id in mirrors)
    for chat_id, message_id in targets:
        if not message_id:
            continue
        response = telegram.delete_message(chat_id, message_id)
        if not response.get("ok"):
            logger.warning(
                f"Delete message failed: {response.get('description')}",
                extra={"context": {"chat_id": chat_id, "message_id": message_id}},
            )
    return outcome


def handle_decision(
    db: Session,
    store: KeyedStore,
    settings: Settings,
    token: ActionToken,
    visitor_identity: str,
) -> DecisionOutcome:
    updated = submission_store.set_decision(db, token.session_id, token.verb)
    db.commit()

    outcome = DecisionOutcome(
        verb=token.verb, session_id=token.session_id, visitor_identity=visitor_identity, updated=updated
    )
    if not updated:
        # recorded decision stays; the visitor is still steered
        logger.info("No pending submissions to update", extra={"context": {"session_id": token.session_id}})

    outcome.redirect = redirect_url(settings.site_url, token.verb)
    publish_redirect(store, token.session_id, visitor_identity, outcome.redirect, settings.redirect_ttl_seconds)
    logger.info(
        "Set redirect",
        extra={
            "context": {"session_id": token.session_id, "visitor": visitor_identity, "redirect": outcome.redirect}
        },
    )
    return outcome


def process_callback(
    db: Session,
    store: KeyedStore,
    telegram: Optional[TelegramService],
    settings: Settings,
    callback_data: Optional[str],
) -> DecisionOutcome:
    """Apply an operator button press. Raises DecisionError when the callback must be refused."""
    try:
        token = ActionToken.decode(callback_data)
    except ValidationError as e:
        raise DecisionError(e.message, ACK_INVALID_DATA) from e

    visitor_identity = submission_store.find_identity_for_session(db, token.session_id)
    if not visitor_identity:
        raise DecisionError(f"No visitor IP found for session {token.session_id}", ACK_INVALID_SESSION)

    if token.is_delete:
        return handle_delete(db, store, telegram, settings, token, visitor_identity)
    return handle_decision(db, store, settings, token, visitor_identity)


def poll(
    db: Session,
    store: KeyedStore,
    session_id: Optional[str],
    visitor_identity: str,
    now: Optional[datetime] = None,
    current_page: Optional[str] = None,
) -> Optional[str]:
    """Consume a pending redirect for the visitor, if any. Touches the session (and page, when given) first."""
    if not session_id:
        redirect = store.take(visitor_redirect_key(visitor_identity))
        if redirect:
            logger.info("Redirect triggered by visitor IP", extra={"context": {"visitor": visitor_identity}})
        return redirect

    session_tracker.touch(db, session_id, current_page, now=now)
    db.commit()

    # The instruction was published under the identity pinned to the session,
    # which can differ from the address of this request.
    sibling_keys = {visitor_redirect_key(visitor_identity)}
    bound_identity = submission_store.find_identity_for_session(db, session_id)
    if bound_identity:
        sibling_keys.add(visitor_redirect_key(bound_identity))

    redirect = store.take(session_redirect_key(session_id))
    if redirect:
        store.delete(*sibling_keys)
        logger.info("Redirect triggered by session", extra={"context": {"session_id": session_id, "redirect": redirect}})
        return redirect

    redirect = store.take(visitor_redirect_key(visitor_identity))
    if redirect:
        store.delete(session_redirect_key(session_id), *sibling_keys)
        logger.info(
            "Redirect triggered by visitor IP",
            extra={"context": {"session_id": session_id, "visitor": visitor_identity, "redirect": redirect}},
        )
        return redirect
    return None
