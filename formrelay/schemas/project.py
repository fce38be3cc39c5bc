from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FieldType(str, Enum):
    """Input types a project form schema may declare."""

    TEXT = "text"
    EMAIL = "email"
    NUMBER = "number"
    TEXTAREA = "textarea"
    CHECKBOX = "checkbox"
    SELECT = "select"
    DATE = "date"
    TIME = "time"


class FieldDefinition(BaseModel):
    """One entry of a project's form schema."""

    id: str = Field(..., min_length=1, description="Key of the value in submitted data.")
    label: str = Field(..., description="Human-readable label used in errors and emails.")
    type: FieldType = FieldType.TEXT
    required: bool = False
    options: Optional[List[str]] = None

    @field_validator("label", mode="before")
    @classmethod
    def default_label(cls, v):
        return v if v not in (None, "") else "Field"


class SmtpConfig(BaseModel):
    """
    SMTP settings a project sends its notifications through.

    No username means the transport connects without authenticating.
    """

    host: str
    port: int = 587
    secure: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    from_email: Optional[str] = None
    to_email: Optional[str] = None
    cc_email: Optional[str] = None


class EmailTemplateSnapshot(BaseModel):
    """Tenant-authored notification template (Jinja2 source strings)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    subject: str
    html: str


class ProjectSnapshot(BaseModel):
    """
    Read-only view of a project as the intake pipeline sees it.

    Loaded once per submission so the pipeline never holds an ORM session.
    """

    id: str
    name: str
    api_key: str
    allowed_origins: List[str] = Field(default_factory=list)
    form_schema: List[FieldDefinition] = Field(default_factory=list)
    honeypot_field: Optional[str] = None
    smtp: Optional[SmtpConfig] = None
    email_template: Optional[EmailTemplateSnapshot] = None

    @field_validator("form_schema")
    @classmethod
    def unique_field_ids(cls, v: List[FieldDefinition]) -> List[FieldDefinition]:
        seen = set()
        for field in v:
            if field.id in seen:
                raise ValueError(f"Duplicate field id in form schema: {field.id}")
            seen.add(field.id)
        return v
