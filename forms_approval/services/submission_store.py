from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forms_approval.errors import StoreError, ValidationError
from forms_approval.logging_config import get_logger
from forms_approval.models import Submission

logger = get_logger("submission_store")

STATUS_PENDING = "pending"
STATUS_PROCESSED = "processed"


@dataclass
class DeletedSession:
    deleted: bool
    last_known_message_id: Optional[int] = None


def collect_field_values(fields: Iterable[Mapping[str, Any]]) -> list[str]:
    """Drop blank and hidden fields, format the rest as ``name: value``."""
    values = []
    for field in fields:
        value = field.get("value")
        if value is None or not str(value).strip():
            continue
        if field.get("type") == "hidden":
            continue
        values.append(f"{field.get('name', '')}: {value}".strip())
    return values


def record(
    db: Session,
    visitor_identity: str,
    session_id: str,
    form_id: int,
    form_name: str,
    fields: Iterable[Mapping[str, Any]],
    now: Optional[datetime] = None,
) -> Submission:
    """Insert a pending submission. Raises ValidationError when no field survives filtering."""
    values = collect_field_values(fields)
    if not values:
        raise ValidationError(f"No valid fields for form ID {form_id}")

    submission = Submission(
        visitor_ip=visitor_identity,
        session_id=session_id,
        form_id=form_id,
        form_name=form_name,
        fields=values,
        status=STATUS_PENDING,
        created_at=now or datetime.now(timezone.utc),
    )
    try:
        db.add(submission)
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Insert failed: {e}",
            extra={"context": {"form_id": form_id, "session_id": session_id, "visitor": visitor_identity}},
        )
        raise StoreError(f"Insert failed for form ID {form_id}") from e

    logger.info(
        "Submission recorded",
        extra={"context": {"submission_id": submission.id, "form_id": form_id, "session_id": session_id}},
    )
    return submission


def find_identity_for_session(db: Session, session_id: str) -> Optional[str]:
    row = (
        db.query(Submission.visitor_ip)
        .filter(Submission.session_id == session_id)
        .order_by(Submission.id)
        .first()
    )
    return row[0] if row else None


def find_session_for_identity(db: Session, visitor_identity: str) -> Optional[str]:
    row = (
        db.query(Submission.session_id)
        .filter(Submission.visitor_ip == visitor_identity)
        .order_by(Submission.id)
        .first()
    )
    return row[0] if row else None


def set_decision(db: Session, session_id: str, decision: str) -> int:
    """Mark still-pending rows of a session as processed. Returns rows updated."""
    try:
        return (
            db.query(Submission)
            .filter(Submission.session_id == session_id, Submission.status == STATUS_PENDING)
            .update({"status": STATUS_PROCESSED, "decision": decision}, synchronize_session=False)
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Decision update failed: {e}", extra={"context": {"session_id": session_id, "decision": decision}})
        raise StoreError(f"Decision update failed for {session_id}") from e


def delete_session_submissions(db: Session, session_id: str) -> DeletedSession:
    try:
        row = (
            db.query(Submission.telegram_message_id)
            .filter(Submission.session_id == session_id, Submission.telegram_message_id.isnot(None))
            .first()
        )
        deleted = db.query(Submission).filter(Submission.session_id == session_id).delete(synchronize_session=False)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Delete failed: {e}", extra={"context": {"session_id": session_id}})
        raise StoreError(f"Delete failed for {session_id}") from e
    return DeletedSession(deleted=deleted > 0, last_known_message_id=row[0] if row else None)


def bind_message(db: Session, visitor_identity: str, message_id: Optional[int]) -> None:
    try:
        db.query(Submission).filter(Submission.visitor_ip == visitor_identity).update(
            {"telegram_message_id": message_id}, synchronize_session=False
        )
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Message bind failed: {e}", extra={"context": {"visitor": visitor_identity, "message_id": message_id}}
        )
        raise StoreError(f"Message bind failed for {visitor_identity}") from e


def identities_with_messages(db: Session) -> list[str]:
    rows = (
        db.query(Submission.visitor_ip)
        .filter(Submission.telegram_message_id.isnot(None))
        .distinct()
        .all()
    )
    return [row[0] for row in rows]
