from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from formrelay.db import Base
from formrelay.models._common import new_id, utcnow


class Submission(Base):
    """One accepted or spam-flagged form post. Never updated after insert."""

    __tablename__ = "submissions"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    data = Column(JSON, nullable=False, default=dict)
    ip = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    referrer = Column(Text, nullable=True)
    spam_detected = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    project = relationship("Project", back_populates="submissions")

    __table_args__ = (
        Index("ix_submissions_project_created", "project_id", "created_at"),
    )
