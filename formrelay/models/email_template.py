from sqlalchemy import Column, DateTime, String, Text

from formrelay.db import Base
from formrelay.models._common import new_id, utcnow


class EmailTemplate(Base):
    """Tenant-authored notification email (Jinja2 source, rendered sandboxed)."""

    __tablename__ = "email_templates"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(64), index=True, nullable=True)
    name = Column(String(200), nullable=False)
    subject = Column(String(998), nullable=False)
    html = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
