from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from formrelay.intake.origin import check_origin
from formrelay.intake.rate_limit import RateLimiter
from formrelay.schemas.intake import IntakeReason

logger = logging.getLogger("formrelay.intake.spam")


@dataclass
class SpamCheckInput:
    ip: str
    user_agent: str
    origin: Optional[str]
    body: Mapping[str, Any]
    allowed_origins: List[str] = field(default_factory=list)
    honeypot_field: Optional[str] = None


@dataclass(frozen=True)
class SpamVerdict:
    is_spam: bool
    reason: Optional[str] = None
    code: Optional[IntakeReason] = None


NOT_SPAM = SpamVerdict(is_spam=False)


class SpamFilter:
    """
    Combines the origin guard, the honeypot and the rate limiter.

    Checks run cheapest first and stop at the first hit, so requests already
    rejected by origin or honeypot never spend rate-limit budget.
    """

    def __init__(self, rate_limiter: RateLimiter) -> None:
        self._rate_limiter = rate_limiter

    def check(self, data: SpamCheckInput) -> SpamVerdict:
        # 1. Allowed origin
        decision = check_origin(data.origin, data.allowed_origins)
        if not decision.trusted:
            logger.info("Blocked submission from %s: %s", data.ip, decision.reason)
            return SpamVerdict(True, decision.reason, IntakeReason.ORIGIN_NOT_ALLOWED)

        # 2. Honeypot
        if data.honeypot_field and data.body.get(data.honeypot_field):
            logger.info("Blocked submission from %s: honeypot filled", data.ip)
            return SpamVerdict(True, "Honeypot filled", IntakeReason.HONEYPOT_TRIGGERED)

        # 3. Rate limit
        if not self._rate_limiter.check(data.ip):
            return SpamVerdict(True, "Rate limit exceeded", IntakeReason.RATE_LIMITED)

        return NOT_SPAM
