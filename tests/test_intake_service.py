from formrelay.schemas.intake import IntakeReason, MailEvent, RequestContext


def ctx(**overrides):
    values = dict(
        ip="198.51.100.4",
        user_agent="Mozilla/5.0",
        origin="https://example.com",
        referrer="https://example.com/contact",
    )
    values.update(overrides)
    return RequestContext(**values)


GOOD = {"name": " Ada <Lovelace> ", "email": "ada@example.org", "message": "Hello"}


async def test_accepted_submission_is_stored_mailed_and_logged(intake, stores, fake_transport):
    result = await intake.submit("fr_test_key", GOOD, ctx())

    assert result.accepted
    assert result.reason is None
    assert result.submission_id == "sub-1"
    assert result.mail_outcome.sent
    assert result.mail_outcome.event is MailEvent.DELIVERED

    [submission] = stores["submissions"].records
    assert submission.spam_detected is False
    assert submission.data == {
        "name": "Ada &lt;Lovelace&gt;",
        "email": "ada@example.org",
        "message": "Hello",
    }
    assert submission.ip == "198.51.100.4"
    assert submission.referrer == "https://example.com/contact"

    [sent] = fake_transport.instances[0].sent
    assert sent["To"] == "owner@example.com"
    assert sent["Reply-To"] == "ada@example.org"
    assert sent["Subject"] == "New submission: Contact form"

    [log] = stores["mail_logs"].records
    assert log.event == "delivered"
    assert log.recipient == "owner@example.com"
    assert log.meta["message_id"] == sent["Message-ID"]
    assert log.meta["submission_id"] == "sub-1"


async def test_project_can_be_resolved_by_id(intake):
    result = await intake.submit("proj-1", GOOD, ctx())
    assert result.accepted


async def test_unknown_project_persists_nothing(intake, stores, fake_transport):
    result = await intake.submit("nope", GOOD, ctx())
    assert not result.accepted
    assert result.reason is IntakeReason.PROJECT_NOT_FOUND
    assert stores["submissions"].records == []
    assert stores["mail_logs"].records == []
    assert fake_transport.instances == []


async def test_honeypot_is_quarantined_without_mail(intake, stores, fake_transport):
    result = await intake.submit("fr_test_key", {**GOOD, "_gotcha": "buy now"}, ctx())

    assert not result.accepted
    assert result.reason is IntakeReason.HONEYPOT_TRIGGERED
    assert result.message == "Honeypot filled"
    assert fake_transport.instances == []

    [submission] = stores["submissions"].records
    assert submission.spam_detected is True
    assert result.submission_id == "sub-1"

    [log] = stores["mail_logs"].records
    assert log.event == "spam"
    assert log.status == "quarantined: Honeypot filled"


async def test_disallowed_origin_rejected(intake, stores):
    result = await intake.submit("fr_test_key", GOOD, ctx(origin="https://evil.com", referrer=None))
    assert result.reason is IntakeReason.ORIGIN_NOT_ALLOWED
    assert "evil.com" in result.message
    assert stores["submissions"].records[0].spam_detected is True


async def test_referrer_used_when_origin_header_missing(intake):
    result = await intake.submit("fr_test_key", GOOD, ctx(origin=None))
    assert result.accepted


async def test_rate_limited_second_attempt(intake, stores, clock):
    assert (await intake.submit("fr_test_key", GOOD, ctx())).accepted
    clock.advance(5_000)
    second = await intake.submit("fr_test_key", GOOD, ctx())
    assert second.reason is IntakeReason.RATE_LIMITED

    clock.advance(7_000)
    assert (await intake.submit("fr_test_key", GOOD, ctx())).accepted


async def test_validation_failure_persists_nothing(intake, stores, fake_transport):
    result = await intake.submit("fr_test_key", {"email": "not-an-email"}, ctx())

    assert not result.accepted
    assert result.reason is IntakeReason.VALIDATION_FAILED
    assert result.errors == ["Name is required.", "Email must be a valid email."]
    assert stores["submissions"].records == []
    assert stores["mail_logs"].records == []
    assert fake_transport.instances == []


async def test_mail_failure_keeps_submission_and_logs_it(intake, stores, fake_transport):
    fake_transport.fail_next.append(ConnectionRefusedError("smtp down"))

    result = await intake.submit("fr_test_key", GOOD, ctx())

    assert result.accepted
    assert result.submission_id == "sub-1"
    assert not result.mail_outcome.sent
    assert result.mail_outcome.error is IntakeReason.MAIL_SEND_FAILED
    assert len(stores["submissions"].records) == 1

    [log] = stores["mail_logs"].records
    assert log.event == "failed"
    assert log.meta["error"] == "ConnectionRefusedError"
    assert fake_transport.instances[0].closed


async def test_project_without_smtp_still_accepts(intake, stores, project):
    stores["projects"].projects["proj-1"] = project.model_copy(update={"smtp": None})

    result = await intake.submit("fr_test_key", GOOD, ctx())

    assert result.accepted
    assert result.mail_outcome.event is MailEvent.FAILED
    assert stores["mail_logs"].records[0].meta["error"] == "MailConfigurationError"


async def test_legacy_project_keeps_all_fields_but_honeypot(intake, stores, project):
    stores["projects"].projects["proj-1"] = project.model_copy(
        update={"form_schema": [], "allowed_origins": []}
    )

    result = await intake.submit(
        "fr_test_key", {"anything": "<b>x</b>", "_gotcha": ""}, ctx(origin=None, referrer=None)
    )

    assert result.accepted
    assert stores["submissions"].records[0].data == {"anything": "&lt;b&gt;x&lt;/b&gt;"}


async def test_legacy_email_with_header_break_still_notifies(intake, stores, project, fake_transport):
    stores["projects"].projects["proj-1"] = project.model_copy(
        update={"form_schema": [], "allowed_origins": []}
    )

    result = await intake.submit(
        "fr_test_key",
        {"email": "a@b.com\r\nBcc: x@evil.com", "note": "hi"},
        ctx(origin=None, referrer=None),
    )

    assert result.accepted
    assert result.mail_outcome.sent
    assert result.mail_outcome.event is MailEvent.DELIVERED
    [sent] = fake_transport.instances[0].sent
    assert sent["Reply-To"] is None
    assert sent["Bcc"] is None


async def test_legacy_valid_email_becomes_reply_to(intake, stores, project, fake_transport):
    stores["projects"].projects["proj-1"] = project.model_copy(
        update={"form_schema": [], "allowed_origins": []}
    )

    await intake.submit(
        "fr_test_key", {"email": "visitor@example.org"}, ctx(origin=None, referrer=None)
    )

    [sent] = fake_transport.instances[0].sent
    assert sent["Reply-To"] == "visitor@example.org"
