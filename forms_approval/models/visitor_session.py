from sqlalchemy import Column, DateTime, String

from forms_approval.database import Base


class VisitorSession(Base):
    __tablename__ = "forms_approval_sessions"

    session_id = Column(String(255), primary_key=True)
    last_activity = Column(DateTime(timezone=True), nullable=False)
    current_page = Column(String(255), default="")
