"""
Persistence collaborators of the intake pipeline.

The pipeline only depends on the small protocols below; the SQLAlchemy
classes are the production implementations. Every insert runs in its own
session and commits on its own, so a submission and its mail log are two
independent writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from formrelay.db import session_scope
from formrelay.models import EmailTemplate, MailLog, Project, Submission
from formrelay.schemas.project import (
    EmailTemplateSnapshot,
    FieldDefinition,
    ProjectSnapshot,
    SmtpConfig,
)

logger = logging.getLogger("formrelay.intake.stores")


@dataclass
class SubmissionRecord:
    project_id: str
    data: Dict[str, Any]
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    spam_detected: bool = False


@dataclass
class MailLogRecord:
    project_id: str
    event: str
    status: str
    subject: Optional[str] = None
    recipient: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


class ProjectStore(Protocol):
    async def find_by_api_key_or_id(self, identifier: str) -> Optional[ProjectSnapshot]:
        ...


class SubmissionStore(Protocol):
    async def insert(self, record: SubmissionRecord) -> str:
        ...


class MailLogStore(Protocol):
    async def insert(self, record: MailLogRecord) -> str:
        ...


def project_to_snapshot(project: Project) -> ProjectSnapshot:
    smtp = None
    if project.smtp_host:
        smtp = SmtpConfig(
            host=project.smtp_host,
            port=project.smtp_port,
            secure=project.smtp_secure,
            username=project.smtp_username or None,
            password=project.smtp_password,
            from_email=project.smtp_from_email,
            to_email=project.smtp_to_email,
            cc_email=project.smtp_cc_email,
        )

    template = None
    if project.email_template is not None:
        template = EmailTemplateSnapshot.model_validate(project.email_template)

    return ProjectSnapshot(
        id=project.id,
        name=project.name,
        api_key=project.api_key,
        allowed_origins=list(project.allowed_origins or []),
        form_schema=[FieldDefinition.model_validate(f) for f in project.form_schema or []],
        honeypot_field=project.honeypot_field or None,
        smtp=smtp,
        email_template=template,
    )


class SqlProjectStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def find_by_api_key_or_id(self, identifier: str) -> Optional[ProjectSnapshot]:
        if not identifier:
            return None
        async with session_scope(self._sessionmaker) as db:
            result = await db.execute(
                select(Project).where(
                    or_(Project.api_key == identifier, Project.id == identifier)
                )
            )
            project = result.scalars().first()
            if project is None:
                return None
            return project_to_snapshot(project)

    async def create(
        self,
        *,
        name: str,
        owner_id: Optional[str] = None,
        description: Optional[str] = None,
        allowed_origins: Optional[List[str]] = None,
        form_schema: Optional[List[FieldDefinition]] = None,
        honeypot_field: Optional[str] = None,
        smtp: Optional[SmtpConfig] = None,
        email_template_id: Optional[str] = None,
    ) -> ProjectSnapshot:
        project = Project(
            name=name.strip(),
            owner_id=owner_id,
            description=description,
            allowed_origins=list(allowed_origins or []),
            form_schema=[f.model_dump(mode="json") for f in form_schema or []],
            honeypot_field=honeypot_field,
            email_template_id=email_template_id,
        )
        if smtp is not None:
            project.smtp_host = smtp.host
            project.smtp_port = smtp.port
            project.smtp_secure = smtp.secure
            project.smtp_username = smtp.username
            project.smtp_password = smtp.password
            project.smtp_from_email = smtp.from_email
            project.smtp_to_email = smtp.to_email
            project.smtp_cc_email = smtp.cc_email

        async with session_scope(self._sessionmaker) as db:
            db.add(project)
            await db.flush()
            project_id = project.id

        logger.info("Created project %s (%s)", project_id, name)
        snapshot = await self.find_by_api_key_or_id(project_id)
        assert snapshot is not None
        return snapshot

    async def delete(self, project_id: str) -> bool:
        """Delete a project together with its submissions and mail logs."""
        async with session_scope(self._sessionmaker) as db:
            await db.execute(delete(Submission).where(Submission.project_id == project_id))
            await db.execute(delete(MailLog).where(MailLog.project_id == project_id))
            result = await db.execute(delete(Project).where(Project.id == project_id))
            deleted = bool(result.rowcount)

        logger.info("Deleted project %s (found=%s)", project_id, deleted)
        return deleted


class SqlEmailTemplateStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def create(
        self, *, name: str, subject: str, html: str, owner_id: Optional[str] = None
    ) -> str:
        template = EmailTemplate(name=name, subject=subject, html=html, owner_id=owner_id)
        async with session_scope(self._sessionmaker) as db:
            db.add(template)
            await db.flush()
            return template.id


class SqlSubmissionStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def insert(self, record: SubmissionRecord) -> str:
        submission = Submission(
            project_id=record.project_id,
            data=record.data,
            ip=record.ip,
            user_agent=record.user_agent,
            referrer=record.referrer,
            spam_detected=record.spam_detected,
        )
        async with session_scope(self._sessionmaker) as db:
            db.add(submission)
            await db.flush()  # assign PK
            return submission.id


class SqlMailLogStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def insert(self, record: MailLogRecord) -> str:
        entry = MailLog(
            project_id=record.project_id,
            event=record.event,
            status=record.status[:255],
            subject=record.subject,
            recipient=record.recipient,
            meta=record.meta,
        )
        async with session_scope(self._sessionmaker) as db:
            db.add(entry)
            await db.flush()
            return entry.id
