"""Table creation, legacy cleanup and integrity checks for the approval tables."""

from typing import Union

from sqlalchemy import inspect, or_, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

from forms_approval.database import Base
from forms_approval.logging_config import get_logger
from forms_approval.models import Submission, VisitorSession

logger = get_logger("schema_service")

LEGACY_COLUMNS = ("user_ip",)
REQUIRED_COLUMNS = {
    Submission.__tablename__: {
        "id",
        "visitor_ip",
        "session_id",
        "form_id",
        "form_name",
        "fields",
        "status",
        "decision",
        "created_at",
        "telegram_message_id",
    },
    VisitorSession.__tablename__: {"session_id", "last_activity", "current_page"},
}


def ensure_schema(engine: Engine) -> None:
    """Create missing tables, drop legacy columns, purge rows without a visitor. Safe to re-run."""
    Base.metadata.create_all(bind=engine)

    columns = {column["name"] for column in inspect(engine).get_columns(Submission.__tablename__)}
    with engine.begin() as connection:
        for legacy in LEGACY_COLUMNS:
            if legacy in columns:
                connection.execute(text(f"ALTER TABLE {Submission.__tablename__} DROP COLUMN {legacy}"))
                logger.info(f"Dropped {legacy} column")

    with Session(bind=engine) as db:
        purged = (
            db.query(Submission)
            .filter(or_(Submission.visitor_ip.is_(None), Submission.visitor_ip == ""))
            .delete(synchronize_session=False)
        )
        db.commit()
    logger.info("Cleaned up invalid visitor_ip rows", extra={"context": {"purged": purged}})


def check_tables(bind: Union[Engine, Connection]) -> bool:
    inspector = inspect(bind)
    existing = set(inspector.get_table_names())
    for table, required in REQUIRED_COLUMNS.items():
        if table not in existing:
            logger.warning(f"Table check failed, missing table: {table}")
            return False
        columns = {column["name"] for column in inspector.get_columns(table)}
        missing = required - columns
        if missing:
            logger.warning(f"Missing columns in {table}: {sorted(missing)}")
            return False
    return True


def drop_schema(engine: Engine) -> None:
    Base.metadata.drop_all(bind=engine)
    logger.info("Dropped approval tables")
