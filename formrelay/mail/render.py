from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from jinja2.sandbox import SandboxedEnvironment
from markupsafe import escape

from formrelay.schemas.project import FieldDefinition, ProjectSnapshot

logger = logging.getLogger("formrelay.mail.render")

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def as_markup(value: Any) -> Any:
    """
    Turn sanitized submission values into ``Markup`` for the HTML templates.

    Stored values already have ``<``/``>`` replaced; those are restored and
    the whole string is escaped once, so autoescaping never doubles entities
    and quotes or ampersands are still escaped.
    """
    if isinstance(value, str):
        return escape(value.replace("&lt;", "<").replace("&gt;", ">"))
    if isinstance(value, (list, tuple)):
        return [as_markup(item) for item in value]
    if isinstance(value, dict):
        return {key: as_markup(item) for key, item in value.items()}
    return value


@dataclass
class RenderedEmail:
    subject: str
    html: str
    text: str


def _field_rows(
    data: Mapping[str, Any], schema: List[FieldDefinition]
) -> List[Dict[str, Any]]:
    """Pair submitted values with labels, in schema order when there is one."""
    if not schema:
        return [{"id": key, "label": key, "value": value} for key, value in data.items()]
    return [
        {"id": f.id, "label": f.label, "value": data[f.id]}
        for f in schema
        if f.id in data
    ]


class NotificationRenderer:
    """
    Renders the notification email for a new submission.

    The built-in templates live next to this module. A project may point at
    its own template; tenant source is rendered in a Jinja2 sandbox.
    """

    def __init__(self, templates_dir: Path = TEMPLATES_DIR) -> None:
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self._sandbox = SandboxedEnvironment(autoescape=True)
        self._subject_sandbox = SandboxedEnvironment(autoescape=False)

    def _context(
        self,
        project: ProjectSnapshot,
        data: Mapping[str, Any],
        submission_id: Optional[str],
        html: bool = False,
    ) -> Dict[str, Any]:
        if html:
            data = as_markup(dict(data))
        return {
            "project_name": project.name,
            "submission_id": submission_id,
            "fields": _field_rows(data, project.form_schema),
            "data": dict(data),
        }

    def render(
        self,
        project: ProjectSnapshot,
        data: Mapping[str, Any],
        submission_id: Optional[str] = None,
    ) -> RenderedEmail:
        context = self._context(project, data, submission_id)
        html_context = self._context(project, data, submission_id, html=True)
        text = self._env.get_template("submission_notification.txt").render(**context)

        custom = project.email_template
        if custom is not None:
            try:
                subject = self._subject_sandbox.from_string(custom.subject).render(**context)
                html = self._sandbox.from_string(custom.html).render(**html_context)
            except Exception:
                logger.error(
                    "Failed to render email template %s for project %s",
                    custom.id,
                    project.id,
                    exc_info=True,
                )
                raise
            return RenderedEmail(subject=" ".join(subject.split()), html=html, text=text)

        subject = f"New submission: {project.name}"
        html = self._env.get_template("submission_notification.html").render(**html_context)
        return RenderedEmail(subject=subject, html=html, text=text)
