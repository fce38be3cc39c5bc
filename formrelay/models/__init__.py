from __future__ import annotations

"""
Models package for formrelay.

Imports and exposes ORM models so they are registered with Base.metadata.
"""

from formrelay.db import Base
from .email_template import EmailTemplate  # noqa: F401
from .mail_log import MailLog  # noqa: F401
from .project import Project  # noqa: F401
from .submission import Submission  # noqa: F401

__all__ = [
    "Base",
    "EmailTemplate",
    "MailLog",
    "Project",
    "Submission",
]
