from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship

from formrelay.db import Base
from formrelay.models._common import new_id, utcnow


class MailLog(Base):
    """Append-only record of a notification attempt, shown on the dashboard."""

    __tablename__ = "mail_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event = Column(
        String(32),
        nullable=False,
        index=True,
        comment="delivered | bounced | blocked | spam | failed",
    )
    status = Column(String(255), nullable=False, default="")
    subject = Column(String(998), nullable=True)
    recipient = Column(String(255), nullable=True)
    meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    project = relationship("Project", back_populates="mail_logs")

    __table_args__ = (
        Index("ix_mail_logs_project_created", "project_id", "created_at"),
    )
