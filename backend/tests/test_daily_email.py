import smtplib

import pytest

from helpers import NOW
from trackwatch.core.errors import InvalidInputError, MissingCredentialsError
from trackwatch.services import email_notify
from trackwatch.services.daily_email_service import (
    get_daily_email,
    get_pending_emails,
    run_send_phase,
    save_driver_content,
    save_mapper_content,
)

DAY = NOW.date()


class RecordingSender:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent: list[tuple[str, str, str]] = []

    def __call__(self, to, subject, body):
        if to in self.failing:
            raise smtplib.SMTPRecipientsRefused({to: (550, b"no such user")})
        self.sent.append((to, subject, body))
        return f"<msg-{len(self.sent)}@test>"


def test_phases_write_their_own_field_of_one_row(db_session):
    save_mapper_content(db_session, "Mapper", "m@example.com", "new records", day=DAY)
    save_driver_content(db_session, "Mapper", "m@example.com", "position changes", day=DAY)
    save_mapper_content(db_session, "Mapper", "m@example.com", "updated records", day=DAY)

    row = get_daily_email(db_session, "Mapper", DAY)
    assert row.mapper_content == "updated records"
    assert row.driver_content == "position changes"
    assert row.status == "pending"
    assert len(get_pending_emails(db_session, DAY)) == 1


def test_send_phase_subjects_and_counts(db_session):
    save_mapper_content(db_session, "both", "both@example.com", "mapper text", day=DAY)
    save_driver_content(db_session, "both", "both@example.com", "driver text", day=DAY)
    save_mapper_content(db_session, "mapper", "mapper@example.com", "mapper only", day=DAY)
    save_driver_content(db_session, "driver", "driver@example.com", "driver only", day=DAY)
    save_mapper_content(db_session, "quiet", "quiet@example.com", "", day=DAY)
    sender = RecordingSender()

    result = run_send_phase(db_session, day=DAY, send=sender)

    assert result == {"emails_sent": 3, "emails_skipped": 1, "total_processed": 4}
    subjects = {to: subject for to, subject, _body in sender.sent}
    assert subjects == {
        "both@example.com": "Daily Update: New Records & Position Changes",
        "mapper@example.com": "New times in mapper's maps",
        "driver@example.com": "Position Changes on Tracked Maps",
    }
    body = sender.sent[0][2]
    assert "mapper text" in body and "driver text" in body
    assert get_daily_email(db_session, "both", DAY).status == "sent"
    assert get_daily_email(db_session, "both", DAY).sent_at is not None
    assert get_daily_email(db_session, "quiet", DAY).status == "pending"


def test_sent_rows_are_not_sent_again(db_session):
    save_mapper_content(db_session, "mapper", "mapper@example.com", "text", day=DAY)
    sender = RecordingSender()
    run_send_phase(db_session, day=DAY, send=sender)

    result = run_send_phase(db_session, day=DAY, send=sender)

    assert result["total_processed"] == 0
    assert len(sender.sent) == 1


def test_failed_send_leaves_row_pending(db_session):
    save_mapper_content(db_session, "bad", "bad@example.com", "text", day=DAY)
    save_mapper_content(db_session, "good", "good@example.com", "text", day=DAY)

    result = run_send_phase(db_session, day=DAY, send=RecordingSender(failing={"bad@example.com"}))

    assert result["emails_sent"] == 1
    assert get_daily_email(db_session, "bad", DAY).status == "pending"
    assert get_daily_email(db_session, "good", DAY).status == "sent"


def test_send_phase_requires_smtp_credentials(db_session, monkeypatch):
    monkeypatch.setattr(email_notify.settings, "smtp_user", "")
    with pytest.raises(MissingCredentialsError):
        run_send_phase(db_session, day=DAY)


def test_send_email_validates_before_connecting(monkeypatch):
    def no_smtp(*args, **kwargs):
        raise AssertionError("SMTP must not be opened")

    monkeypatch.setattr(email_notify.smtplib, "SMTP", no_smtp)
    with pytest.raises(InvalidInputError):
        email_notify.send_email("  ", "subject", "text")
    monkeypatch.setattr(email_notify.settings, "smtp_password", "")
    with pytest.raises(MissingCredentialsError):
        email_notify.send_email("to@example.com", "subject", "text")


def test_send_email_uses_starttls_and_returns_message_id(monkeypatch):
    calls = []

    class FakeSMTP:
        def __init__(self, host, port, timeout):
            calls.append(("connect", host, port))

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            calls.append(("starttls",))

        def login(self, user, password):
            calls.append(("login", user))

        def sendmail(self, sender, recipients, message):
            calls.append(("sendmail", sender, recipients))

    monkeypatch.setattr(email_notify.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(email_notify.settings, "smtp_user", "bot@example.com")
    monkeypatch.setattr(email_notify.settings, "smtp_password", "app-password")

    message_id = email_notify.send_email("to@example.com", "Hello", "body")

    assert message_id.endswith("@example.com>")
    assert [c[0] for c in calls] == ["connect", "starttls", "login", "sendmail"]
    assert calls[-1][2] == ["to@example.com"]
