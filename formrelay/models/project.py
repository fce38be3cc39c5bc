import secrets

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from formrelay.db import Base
from formrelay.models._common import new_id, utcnow


def generate_api_key() -> str:
    return f"fr_{secrets.token_urlsafe(24)}"


class Project(Base):
    """A tenant's form endpoint: API key, origin policy, form schema and SMTP target."""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(64), index=True, nullable=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Issued once at creation; never rotated in place.
    api_key = Column(
        String(64), unique=True, index=True, nullable=False, default=generate_api_key
    )

    allowed_origins = Column(JSON, nullable=False, default=list)
    form_schema = Column(JSON, nullable=False, default=list)
    honeypot_field = Column(String(100), nullable=True)

    smtp_host = Column(String(255), nullable=True)
    smtp_port = Column(Integer, nullable=False, default=587)
    smtp_secure = Column(Boolean, nullable=False, default=False)
    smtp_username = Column(String(255), nullable=True)
    smtp_password = Column(String(255), nullable=True)
    smtp_from_email = Column(String(255), nullable=True)
    smtp_to_email = Column(String(255), nullable=True)
    smtp_cc_email = Column(String(255), nullable=True)

    email_template_id = Column(
        String(36), ForeignKey("email_templates.id", ondelete="SET NULL"), nullable=True
    )

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    email_template = relationship("EmailTemplate", lazy="joined")
    submissions = relationship(
        "Submission",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    mail_logs = relationship(
        "MailLog",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
