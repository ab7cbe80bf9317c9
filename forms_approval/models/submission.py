from sqlalchemy import JSON, BigInteger, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from forms_approval.database import Base


VISITOR_IP_LENGTH = 45


class Submission(Base):
    __tablename__ = "forms_approvals"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    visitor_ip = Column(String(VISITOR_IP_LENGTH), nullable=False, index=True)  # visitor identity
    session_id = Column(String(255), nullable=False, index=True)
    form_id = Column(BigInteger, nullable=False)
    form_name = Column(String(255), nullable=False)
    fields = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)  # ["name: value", ...]
    status = Column(String(20), nullable=False, default="pending")  # pending, processed
    decision = Column(String(50))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    telegram_message_id = Column(BigInteger)
