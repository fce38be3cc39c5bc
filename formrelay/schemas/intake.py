from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class IntakeReason(str, Enum):
    """Stable, machine-checkable reasons surfaced to API consumers."""

    PROJECT_NOT_FOUND = "project_not_found"
    ORIGIN_NOT_ALLOWED = "origin_not_allowed"
    HONEYPOT_TRIGGERED = "honeypot_triggered"
    RATE_LIMITED = "rate_limited"
    VALIDATION_FAILED = "validation_failed"
    MAIL_SEND_FAILED = "mail_send_failed"


class MailEvent(str, Enum):
    """Outcome recorded on a MailLog row."""

    DELIVERED = "delivered"
    BOUNCED = "bounced"
    BLOCKED = "blocked"
    SPAM = "spam"
    FAILED = "failed"


class RequestContext(BaseModel):
    """Transport-level facts about one inbound submission."""

    ip: str = "unknown"
    user_agent: str = ""
    origin: Optional[str] = None
    referrer: Optional[str] = None

    @property
    def declared_origin(self) -> Optional[str]:
        # Some browsers omit Origin on same-site form posts; fall back to Referer.
        return self.origin or self.referrer


class MailOutcome(BaseModel):
    """What happened when the notification email was attempted."""

    sent: bool
    event: MailEvent
    status: str
    recipient: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[IntakeReason] = None


class IntakeResult(BaseModel):
    """
    Result of one intake attempt.

    Either the submission was accepted (whatever the mail outcome) or it was
    rejected by exactly one stage, named by ``reason``.
    """

    accepted: bool
    reason: Optional[IntakeReason] = None
    message: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    submission_id: Optional[str] = None
    mail_outcome: Optional[MailOutcome] = None

    @classmethod
    def rejected(
        cls,
        reason: IntakeReason,
        message: str,
        *,
        errors: Optional[List[str]] = None,
        submission_id: Optional[str] = None,
    ) -> "IntakeResult":
        return cls(
            accepted=False,
            reason=reason,
            message=message,
            errors=errors or [],
            submission_id=submission_id,
        )


class SubmitResponse(BaseModel):
    """JSON envelope returned by the public submit endpoint."""

    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    submission_id: Optional[str] = None
    mail: Optional[Dict[str, Any]] = None
