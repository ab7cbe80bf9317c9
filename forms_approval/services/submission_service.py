from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.orm import Session

from forms_approval.config import Settings
from forms_approval.errors import StoreError
from forms_approval.logging_config import get_logger
from forms_approval.models import FormEntry
from forms_approval.models.submission import VISITOR_IP_LENGTH
from forms_approval.services import session_tracker, submission_store
from forms_approval.services.keyed_store import KeyedStore
from forms_approval.services.notification_service import BatchEntry, enqueue
from forms_approval.services.reconciler_service import DeliveryOutcome, deliver
from forms_approval.services.schema_service import check_tables
from forms_approval.services.telegram_service import TelegramService

logger = get_logger("submission_service")

UNKNOWN = "Unknown"


@dataclass
class SubmissionOutcome:
    submission_id: int
    visitor_identity: str
    delivery: Optional[DeliveryOutcome] = None


def lookup_entry(db: Session, entry_id: Optional[int]) -> tuple[str, str]:
    """Visitor address and user agent as recorded by the form host."""
    if entry_id is None:
        return UNKNOWN, UNKNOWN
    entry = db.query(FormEntry).filter(FormEntry.entry_id == entry_id).first()
    if entry is None:
        return UNKNOWN, UNKNOWN

    visitor_identity = (entry.ip_address or "").strip() or UNKNOWN
    if len(visitor_identity) > VISITOR_IP_LENGTH:
        logger.warning(
            "Visitor address too long, truncating",
            extra={"context": {"entry_id": entry_id, "length": len(visitor_identity)}},
        )
        visitor_identity = visitor_identity[:VISITOR_IP_LENGTH]
    return visitor_identity, (entry.user_agent or "").strip() or UNKNOWN


def process_submission(
    db: Session,
    store: KeyedStore,
    telegram: Optional[TelegramService],
    settings: Settings,
    *,
    session_id: str,
    form_id: int,
    entry_id: Optional[int],
    fields: Iterable[Mapping[str, Any]],
    form_settings: Optional[Mapping[str, Any]] = None,
    current_page: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[SubmissionOutcome]:
    """Record a completed form submission and notify operators.

    Returns None for forms that are not configured for approval. Raises
    ValidationError for an empty field set and StoreError when the tables are
    unusable or a write fails. Notification failures are reported in the
    outcome only.
    """
    if not check_tables(db.connection()):
        logger.error("Invalid table structure, aborting submission processing")
        raise StoreError("Invalid table structure")

    form_map = settings.form_map()
    if form_id not in form_map:
        logger.info(f"Form ID {form_id} not configured", extra={"context": {"session_id": session_id}})
        return None

    now = now or datetime.now(timezone.utc)
    visitor_identity, user_agent = lookup_entry(db, entry_id)

    pinned_identity = submission_store.find_identity_for_session(db, session_id)
    if pinned_identity:
        if pinned_identity != visitor_identity:
            logger.info(
                "Reused visitor IP for session",
                extra={"context": {"session_id": session_id, "visitor": pinned_identity, "request_ip": visitor_identity}},
            )
        visitor_identity = pinned_identity

    form_name = form_map.get(form_id) or (form_settings or {}).get("form_title") or "Unknown Form"
    submission = submission_store.record(db, visitor_identity, session_id, form_id, form_name, fields, now=now)
    session_tracker.touch(db, session_id, current_page, now=now)
    db.commit()

    outcome = SubmissionOutcome(submission_id=submission.id, visitor_identity=visitor_identity)
    if telegram is None or not settings.telegram_configured:
        logger.info("Telegram not configured, notification skipped", extra={"context": {"session_id": session_id}})
        return outcome

    enqueue(
        store,
        visitor_identity,
        BatchEntry.from_submission(submission, user_agent),
        user_agent,
        settings.batch_ttl_seconds,
    )
    outcome.delivery = deliver(db, store, telegram, settings, visitor_identity, now)
    db.commit()
    return outcome
