from __future__ import annotations

from email.message import EmailMessage
from typing import Dict, List, Optional

import pytest

from formrelay.intake.rate_limit import RateLimiter
from formrelay.intake.services import IntakeService
from formrelay.intake.spam import SpamFilter
from formrelay.intake.stores import MailLogRecord, SubmissionRecord
from formrelay.mail.dispatcher import MailDispatcher
from formrelay.mail.transport import DeliveryInfo
from formrelay.schemas.project import FieldDefinition, ProjectSnapshot, SmtpConfig


class FakeClock:
    def __init__(self, start: float = 1_700_000_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeProjectStore:
    def __init__(self, *projects: ProjectSnapshot) -> None:
        self.projects = {p.id: p for p in projects}

    async def find_by_api_key_or_id(self, identifier: str) -> Optional[ProjectSnapshot]:
        for project in self.projects.values():
            if identifier in (project.id, project.api_key):
                return project
        return None


class FakeSubmissionStore:
    def __init__(self) -> None:
        self.records: List[SubmissionRecord] = []

    async def insert(self, record: SubmissionRecord) -> str:
        self.records.append(record)
        return f"sub-{len(self.records)}"


class FakeMailLogStore:
    def __init__(self) -> None:
        self.records: List[MailLogRecord] = []

    async def insert(self, record: MailLogRecord) -> str:
        self.records.append(record)
        return f"log-{len(self.records)}"


class FakeTransport:
    """Stands in for SmtpConnectionPool; records construction and sent messages."""

    instances: List["FakeTransport"] = []
    fail_next: List[Exception] = []

    def __init__(self, config: SmtpConfig, **options) -> None:
        self.config = config
        self.options = options
        self.sent: List[EmailMessage] = []
        self.closed = False
        FakeTransport.instances.append(self)

    async def send_message(self, message: EmailMessage) -> DeliveryInfo:
        if FakeTransport.fail_next:
            raise FakeTransport.fail_next.pop(0)
        self.sent.append(message)
        return DeliveryInfo(
            message_id=message["Message-ID"],
            accepted=[message["To"]],
            rejected=[],
            response="250 OK queued",
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_transport():
    FakeTransport.instances = []
    FakeTransport.fail_next = []
    yield FakeTransport
    FakeTransport.instances = []
    FakeTransport.fail_next = []


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def smtp_config() -> SmtpConfig:
    return SmtpConfig(
        host="smtp.example.com",
        port=587,
        username="mailer@example.com",
        password="secret",
        from_email="forms@example.com",
        to_email="owner@example.com",
    )


@pytest.fixture
def project(smtp_config: SmtpConfig) -> ProjectSnapshot:
    return ProjectSnapshot(
        id="proj-1",
        name="Contact form",
        api_key="fr_test_key",
        allowed_origins=["https://example.com"],
        form_schema=[
            FieldDefinition(id="name", label="Name", type="text", required=True),
            FieldDefinition(id="email", label="Email", type="email", required=True),
            FieldDefinition(id="message", label="Message", type="textarea"),
        ],
        honeypot_field="_gotcha",
        smtp=smtp_config,
    )


@pytest.fixture
def stores(project: ProjectSnapshot) -> Dict[str, object]:
    return {
        "projects": FakeProjectStore(project),
        "submissions": FakeSubmissionStore(),
        "mail_logs": FakeMailLogStore(),
    }


@pytest.fixture
def intake(stores, clock: FakeClock, fake_transport) -> IntakeService:
    limiter = RateLimiter.in_memory(clock=clock)
    return IntakeService(
        projects=stores["projects"],
        submissions=stores["submissions"],
        mail_logs=stores["mail_logs"],
        spam_filter=SpamFilter(limiter),
        dispatcher=MailDispatcher(transport_factory=fake_transport),
    )
