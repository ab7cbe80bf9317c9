from sqlalchemy import BigInteger, Column, Integer, String, Text

from forms_approval.database import FormHostBase


class FormEntry(FormHostBase):
    """Entry row written by the form host; we only read address and user agent."""

    __tablename__ = "form_entries"

    entry_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    ip_address = Column(String(128))
    user_agent = Column(Text)
