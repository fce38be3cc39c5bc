# formrelay/intake/services.py
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from formrelay.intake.spam import SpamCheckInput, SpamFilter
from formrelay.intake.stores import (
    MailLogRecord,
    MailLogStore,
    ProjectStore,
    SubmissionRecord,
    SubmissionStore,
)
from formrelay.intake.validation import EMAIL_RE, sanitize_fields, validate_and_sanitize
from formrelay.mail.dispatcher import MailConfigurationError, MailDispatcher, MailPayload
from formrelay.mail.render import NotificationRenderer
from formrelay.schemas.intake import (
    IntakeReason,
    IntakeResult,
    MailEvent,
    MailOutcome,
    RequestContext,
)
from formrelay.schemas.project import FieldType, ProjectSnapshot

logger = logging.getLogger("formrelay.intake.services")


def _reply_to(project: ProjectSnapshot, data: Mapping[str, Any]) -> Optional[str]:
    """First submitted address that is a valid email, so the tenant can reply directly."""
    candidates = [f.id for f in project.form_schema if f.type is FieldType.EMAIL]
    if not project.form_schema:
        candidates.append("email")
    for key in candidates:
        value = data.get(key)
        if isinstance(value, str) and EMAIL_RE.fullmatch(value):
            return value
    return None


class IntakeService:
    """
    Runs one form submission through the intake pipeline.

    received -> project resolved -> spam checked -> validated -> persisted
    -> mail attempted -> logged. Each stage awaits the previous one; a stage
    that rejects stops the pipeline and names itself in ``IntakeResult.reason``.

    Spam-flagged attempts are stored with ``spam_detected=True`` (plus a
    "spam" mail log) so tenants can audit what was blocked; no mail is sent
    for them. Persistence errors are not caught here.
    """

    def __init__(
        self,
        *,
        projects: ProjectStore,
        submissions: SubmissionStore,
        mail_logs: MailLogStore,
        spam_filter: SpamFilter,
        dispatcher: MailDispatcher,
        renderer: Optional[NotificationRenderer] = None,
    ) -> None:
        self.projects = projects
        self.submissions = submissions
        self.mail_logs = mail_logs
        self.spam_filter = spam_filter
        self.dispatcher = dispatcher
        self.renderer = renderer or NotificationRenderer()

    async def submit(
        self,
        project_identifier: str,
        raw_data: Mapping[str, Any],
        context: RequestContext,
    ) -> IntakeResult:
        # 1) Resolve project
        project = await self.projects.find_by_api_key_or_id(project_identifier)
        if project is None:
            logger.warning("Submission for unknown project %r from %s", project_identifier, context.ip)
            return IntakeResult.rejected(IntakeReason.PROJECT_NOT_FOUND, "Project not found")

        # 2) Spam check
        verdict = self.spam_filter.check(
            SpamCheckInput(
                ip=context.ip,
                user_agent=context.user_agent,
                origin=context.declared_origin,
                body=raw_data,
                allowed_origins=project.allowed_origins,
                honeypot_field=project.honeypot_field,
            )
        )
        if verdict.is_spam:
            submission_id = await self._record_spam(project, raw_data, context, verdict.reason or "")
            return IntakeResult.rejected(
                verdict.code or IntakeReason.HONEYPOT_TRIGGERED,
                verdict.reason or "Rejected as spam",
                submission_id=submission_id,
            )

        # 3) Validate + sanitize (the honeypot never reaches stored data)
        fields = {k: v for k, v in raw_data.items() if k != project.honeypot_field}
        validation = validate_and_sanitize(fields, project.form_schema)
        if not validation.is_valid:
            logger.info(
                "Validation failed for project %s: %d error(s)", project.id, len(validation.errors)
            )
            return IntakeResult.rejected(
                IntakeReason.VALIDATION_FAILED,
                "Validation failed",
                errors=validation.errors,
            )

        # 4) Persist
        submission_id = await self.submissions.insert(
            SubmissionRecord(
                project_id=project.id,
                data=validation.sanitized_data,
                ip=context.ip,
                user_agent=context.user_agent,
                referrer=context.referrer or context.origin,
                spam_detected=False,
            )
        )
        logger.info("Stored submission %s for project %s", submission_id, project.id)

        # 5) Mail (non-fatal) + 6) log, always
        outcome, subject, meta = await self._notify(project, validation.sanitized_data, submission_id)
        await self.mail_logs.insert(
            MailLogRecord(
                project_id=project.id,
                event=outcome.event.value,
                status=outcome.status,
                subject=subject,
                recipient=outcome.recipient,
                meta=meta,
            )
        )

        return IntakeResult(accepted=True, submission_id=submission_id, mail_outcome=outcome)

    async def _record_spam(
        self,
        project: ProjectSnapshot,
        raw_data: Mapping[str, Any],
        context: RequestContext,
        reason: str,
    ) -> str:
        submission_id = await self.submissions.insert(
            SubmissionRecord(
                project_id=project.id,
                data=sanitize_fields(raw_data),
                ip=context.ip,
                user_agent=context.user_agent,
                referrer=context.referrer or context.origin,
                spam_detected=True,
            )
        )
        await self.mail_logs.insert(
            MailLogRecord(
                project_id=project.id,
                event=MailEvent.SPAM.value,
                status=f"quarantined: {reason}",
                recipient=project.smtp.to_email if project.smtp else None,
                meta={"submission_id": submission_id, "reason": reason, "ip": context.ip},
            )
        )
        logger.info(
            "Quarantined submission %s for project %s (%s)", submission_id, project.id, reason
        )
        return submission_id

    async def _notify(
        self,
        project: ProjectSnapshot,
        data: Dict[str, Any],
        submission_id: str,
    ) -> Tuple[MailOutcome, Optional[str], Dict[str, Any]]:
        smtp = project.smtp
        recipient = smtp.to_email if smtp else None
        subject: Optional[str] = None
        meta: Dict[str, Any] = {"submission_id": submission_id}

        try:
            if smtp is None:
                raise MailConfigurationError("Project has no SMTP configuration.")
            rendered = self.renderer.render(project, data, submission_id)
            subject = rendered.subject
            info = await self.dispatcher.send(
                smtp,
                MailPayload(
                    to=recipient or "",
                    cc=smtp.cc_email,
                    subject=rendered.subject,
                    html=rendered.html,
                    text=rendered.text,
                    reply_to=_reply_to(project, data),
                ),
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Submission %s stored but notification failed for project %s",
                submission_id,
                project.id,
            )
            meta.update({"error": type(exc).__name__, "detail": str(exc)[:500]})
            outcome = MailOutcome(
                sent=False,
                event=MailEvent.FAILED,
                status=f"failed: {type(exc).__name__}",
                recipient=recipient,
                error=IntakeReason.MAIL_SEND_FAILED,
            )
            return outcome, subject, meta

        meta.update(
            {
                "message_id": info.message_id,
                "accepted": info.accepted,
                "rejected": info.rejected,
                "response": info.response,
            }
        )
        if info.accepted:
            event, status = MailEvent.DELIVERED, "sent"
        else:
            event, status = MailEvent.BOUNCED, "rejected by server"
        outcome = MailOutcome(
            sent=bool(info.accepted),
            event=event,
            status=status,
            recipient=recipient,
            message_id=info.message_id,
            error=None if info.accepted else IntakeReason.MAIL_SEND_FAILED,
        )
        return outcome, subject, meta
