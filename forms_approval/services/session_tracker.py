from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from urllib.parse import urlparse

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forms_approval.errors import StoreError
from forms_approval.logging_config import get_logger
from forms_approval.models import VisitorSession

logger = get_logger("session_tracker")

DEFAULT_ONLINE_THRESHOLD_SECONDS = 30
DEFAULT_PAGE = "Homepage"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def page_name(path: Optional[str]) -> str:
    """``/checkout/step-2/`` -> ``Step-2``; empty or root -> ``Homepage``."""
    raw_path = urlparse(path or "").path
    segment = raw_path.rstrip("/").rsplit("/", 1)[-1]
    if not segment:
        return DEFAULT_PAGE
    return segment[:1].upper() + segment[1:]


def touch(db: Session, session_id: str, current_page: Optional[str] = None, now: Optional[datetime] = None) -> None:
    """Upsert last activity (and page, when given) for a session."""
    now = now or datetime.now(timezone.utc)
    try:
        record = db.query(VisitorSession).filter(VisitorSession.session_id == session_id).first()
        if record is None:
            record = VisitorSession(session_id=session_id, last_activity=now, current_page=current_page or "")
            db.add(record)
        else:
            record.last_activity = now
            if current_page is not None:
                record.current_page = current_page
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Session touch failed: {e}", extra={"context": {"session_id": session_id}})
        raise StoreError(f"Session touch failed for {session_id}") from e

    logger.debug("Session touched", extra={"context": {"session_id": session_id, "page": current_page}})


def is_online(
    db: Session,
    session_id: Optional[str],
    now: Optional[datetime] = None,
    threshold_seconds: int = DEFAULT_ONLINE_THRESHOLD_SECONDS,
) -> bool:
    online, _ = liveness(db, session_id, now, threshold_seconds)
    return online


def liveness(
    db: Session,
    session_id: Optional[str],
    now: Optional[datetime] = None,
    threshold_seconds: int = DEFAULT_ONLINE_THRESHOLD_SECONDS,
) -> Tuple[bool, str]:
    """Return (online, current_page) for a session."""
    if not session_id:
        return False, DEFAULT_PAGE

    record = db.query(VisitorSession).filter(VisitorSession.session_id == session_id).first()
    if record is None:
        return False, DEFAULT_PAGE

    now = now or datetime.now(timezone.utc)
    online = _as_utc(now) - _as_utc(record.last_activity) <= timedelta(seconds=threshold_seconds)
    return online, record.current_page or DEFAULT_PAGE


def forget(db: Session, session_id: str) -> int:
    try:
        return (
            db.query(VisitorSession)
            .filter(VisitorSession.session_id == session_id)
            .delete(synchronize_session=False)
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Session delete failed: {e}", extra={"context": {"session_id": session_id}})
        raise StoreError(f"Session delete failed for {session_id}") from e
